"""
Export the reviewed tables and the prioritization/rule document.

Outputs:
    <kind>.xlsx  : one workbook per table, single sheet titled with the kind
    rules.json   : {"criteria": [{label, key, value}, ...], "rules": [...]}
"""

from __future__ import annotations

import json
from numbers import Real
from pathlib import Path
from typing import Any, Optional

import openpyxl
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from intake_doctor.cells import ABSENT, NULL, TEXT, cell_kind

DEFAULT_CRITERIA: list[dict[str, Any]] = [
    {"label": "Cost", "key": "cost", "value": 50},
    {"label": "Workload", "key": "workload", "value": 50},
    {"label": "Preference", "key": "preference", "value": 50},
    {"label": "Phase Balance", "key": "phaseBalance", "value": 50},
]

RULE_TYPES = {
    "co-run": "Co-run (tasks that must go together)",
    "load-limit": "Load Limit",
    "phase-window": "Phase Window",
}

WEIGHT_MIN = 0
WEIGHT_MAX = 100

HEADER_COLORS = {
    "clients": "1565C0",   # blue
    "workers": "4CAF50",   # green
    "tasks": "F57C00",     # orange
}


class ExportError(ValueError):
    pass


# ══════════════════════════════════════════════════════════════════════════════
# RULES DOCUMENT
# ══════════════════════════════════════════════════════════════════════════════

def _check_weight(key: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ExportError(f"Criterion '{key}' must have a numeric value, got {value!r}")
    if not WEIGHT_MIN <= value <= WEIGHT_MAX:
        raise ExportError(f"Criterion '{key}' must be between {WEIGHT_MIN} and {WEIGHT_MAX}, got {value}")


def _check_criteria(criteria: list[dict[str, Any]]) -> list[dict[str, Any]]:
    checked = []
    for item in criteria:
        if not isinstance(item, dict) or not {"label", "key", "value"} <= set(item):
            raise ExportError(f"Criterion must have label, key and value: {item!r}")
        _check_weight(str(item["key"]), item["value"])
        checked.append({"label": str(item["label"]), "key": str(item["key"]), "value": item["value"]})
    return checked


def _check_rules(rules: list[dict[str, Any]]) -> list[dict[str, Any]]:
    checked = []
    for rule in rules:
        if not isinstance(rule, dict) or rule.get("type") not in RULE_TYPES:
            raise ExportError(f"Rule type must be one of {sorted(RULE_TYPES)}: {rule!r}")
        params = rule.get("params", {})
        if not isinstance(params, dict):
            raise ExportError(f"Rule params must be an object: {rule!r}")
        checked.append({"type": rule["type"], "params": dict(params)})
    return checked


def apply_weights(criteria: list[dict[str, Any]], overrides: dict[str, Any]) -> list[dict[str, Any]]:
    """Return a copy of ``criteria`` with values replaced by key."""
    known = {item["key"] for item in criteria}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ExportError(f"Unknown criteria: {', '.join(unknown)}. Known: {', '.join(sorted(known))}")
    updated = []
    for item in criteria:
        value = overrides.get(item["key"], item["value"])
        _check_weight(item["key"], value)
        updated.append({**item, "value": value})
    return updated


def build_rules_document(
    criteria: Optional[list[dict[str, Any]]] = None,
    rules: Optional[list[dict[str, Any]]] = None,
) -> dict[str, Any]:
    return {
        "criteria": _check_criteria(DEFAULT_CRITERIA if criteria is None else criteria),
        "rules": _check_rules(rules or []),
    }


def load_rules_document(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ExportError(f"Rules file not found: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ExportError(f"Could not read rules file: {exc}") from exc
    if not isinstance(payload, dict):
        raise ExportError("Rules file root must be a JSON object.")
    return build_rules_document(payload.get("criteria"), payload.get("rules"))


def write_rules_document(document: dict[str, Any], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


# ══════════════════════════════════════════════════════════════════════════════
# TABLE WORKBOOKS
# ══════════════════════════════════════════════════════════════════════════════

def _infer_col_widths(rows: list[list], min_width: int = 10, max_width: int = 60, sample: int = 300) -> list[int]:
    if not rows:
        return []
    widths = [max(min_width, min(max_width, len(str(v)) + 2)) for v in rows[0]]
    for row in rows[1 : sample + 1]:
        for i, val in enumerate(row):
            widths[i] = max(widths[i], min(max_width, len(str(val)) + 2))
    return widths


def _style_sheet(ws, col_widths: list[int], header_color: str) -> None:
    """Bold coloured header, frozen first row, column widths."""
    fill = PatternFill("solid", fgColor=header_color)
    font = Font(bold=True, color="FFFFFF")
    for cell in ws[1]:
        cell.font = font
        cell.fill = fill
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=False)
    ws.freeze_panes = "A2"
    for i, width in enumerate(col_widths, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width


def _export_cell(value: Any) -> Any:
    if value is ABSENT or cell_kind(value) == NULL:
        return None
    if cell_kind(value) == TEXT:
        # openpyxl refuses control characters in cell text
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


def _export_columns(table: dict) -> list[str]:
    columns = list(table.get("columns") or [])
    for row in table["rows"]:
        for column in row:
            if column not in columns:
                columns.append(column)
    return columns


def write_table_workbook(table: dict, path: Path) -> None:
    columns = _export_columns(table)
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = table["kind"][:31]
    ws.append([_export_cell(column) for column in columns])
    rows_for_width = [columns]
    for row in table["rows"]:
        values = [_export_cell(row.get(column, ABSENT)) for column in columns]
        ws.append(values)
        rows_for_width.append(["" if v is None else v for v in values])
    if columns:
        _style_sheet(ws, _infer_col_widths(rows_for_width), HEADER_COLORS.get(table["kind"], "455A64"))
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)


def export_session(
    tables: list[dict],
    out_dir: Path,
    criteria: Optional[list[dict[str, Any]]] = None,
    rules: Optional[list[dict[str, Any]]] = None,
) -> dict[str, Any]:
    """
    Write one workbook per table plus rules.json into ``out_dir``.

    Workbooks are named after the table kind, so a later table of the same
    kind replaces an earlier one.
    """
    document = build_rules_document(criteria, rules)
    out_dir = Path(out_dir)
    written: dict[str, str] = {}
    for table in tables:
        path = out_dir / f"{table['kind']}.xlsx"
        write_table_workbook(table, path)
        written[table["kind"]] = str(path)
    rules_path = out_dir / "rules.json"
    write_rules_document(document, rules_path)
    return {"workbooks": written, "rules": str(rules_path), "document": document}
