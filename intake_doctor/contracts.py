"""Shared versioned contracts for intake-doctor JSON outputs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

CONTRACT_VERSIONS = {
    "intake_doctor.validation": "1.0.0",
    "intake_doctor.export": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_table_overview(table: dict) -> dict[str, Any]:
    return {
        "name": table["name"],
        "kind": table["kind"],
        "rows": len(table["rows"]),
        "columns": list(table["columns"]),
        "detected_format": table.get("detected_format"),
        "sheet_name": table.get("sheet_name"),
        "warnings": list(table.get("warnings") or []),
        "error": table.get("error"),
    }


def build_run_summary(
    *,
    command: str,
    input_files: list[str],
    status: str = "ok",
    output_paths: list[str] | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "tool": "intake-doctor",
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "input_files": list(input_files),
        "output_files": list(output_paths or []),
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }
