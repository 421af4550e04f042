from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from intake_doctor import __version__ as TOOL_VERSION
from intake_doctor.contracts import build_contract, build_run_summary, build_table_overview
from intake_doctor.export import (
    DEFAULT_CRITERIA,
    ExportError,
    apply_weights,
    build_rules_document,
    export_session,
    load_rules_document,
    write_rules_document,
)
from intake_doctor.loader import load_batch
from intake_doctor.rules import ERROR, EXPLAIN_RULES
from intake_doctor.validator import summarize_findings, validate_tables


EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_VALIDATE_FAILED = 5
EXIT_PARTIAL = 6


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class IntakeDoctorArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def timestamp_token() -> str:
    override = os.environ.get("INTAKE_DOCTOR_OUTPUT_STAMP")
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def default_output_dir() -> Path:
    return Path.cwd() / "intake-doctor-output" / timestamp_token()


def determine_output_dir(args: argparse.Namespace) -> Path:
    if getattr(args, "out_dir", None):
        return Path(args.out_dir)
    return default_output_dir()


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json_dumps(payload), encoding="utf-8")


def remove_generated_at(value: Any) -> Any:
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            if key == "generated_at":
                result[key] = "1970-01-01T00:00:00Z"
            else:
                result[key] = remove_generated_at(item)
        return result
    if isinstance(value, list):
        return [remove_generated_at(item) for item in value]
    return value


def classify_backend_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, (ImportError, UnicodeDecodeError)):
        return EXIT_PARSE_FAILED
    if isinstance(exc, ExportError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, ValueError):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def check_inputs(paths: list[str]) -> list[Path]:
    inputs = [Path(path) for path in paths]
    missing = [str(path) for path in inputs if not path.exists()]
    if missing:
        raise CliError(f"File not found: {', '.join(missing)}", EXIT_COMMAND_ERROR)
    return inputs


def parse_weight_overrides(items: list[str] | None) -> dict[str, float]:
    overrides: dict[str, float] = {}
    for item in items or []:
        key, sep, raw = item.partition("=")
        if not sep or not key.strip():
            raise CliError(f"--weight expects key=value, got '{item}'", EXIT_COMMAND_ERROR)
        try:
            value = float(raw)
        except ValueError:
            raise CliError(f"--weight value for '{key}' must be a number, got '{raw}'", EXIT_COMMAND_ERROR)
        overrides[key.strip()] = int(value) if value.is_integer() else value
    return overrides


def build_validation_payload(inputs: list[Path], tables: list[dict], findings: list[dict]) -> dict[str, Any]:
    summary = summarize_findings(findings)
    load_failures = [table["name"] for table in tables if table.get("error")]
    warnings = [warning for table in tables for warning in table.get("warnings") or []]
    contract = build_contract("intake_doctor.validation")
    return {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
        "tables": [build_table_overview(table) for table in tables],
        "findings": findings,
        "summary": {**summary, "load_failures": load_failures},
        "run_summary": build_run_summary(
            command="validate",
            input_files=[str(path) for path in inputs],
            status="partial" if load_failures else "ok",
            metrics={
                "tables_loaded": len(tables) - len(load_failures),
                "errors": summary["error_count"],
                "warnings": summary["warning_count"],
            },
            warnings=warnings,
        ),
    }


def render_validate_text(payload: dict[str, Any]) -> str:
    summary = payload["summary"]
    lines = ["intake-doctor validate"]
    for table in payload["tables"]:
        status = f"FAILED ({table['error']})" if table["error"] else f"{table['rows']} rows"
        lines.append(f"{table['kind']:<8} {table['name']}: {status}")
    lines.append(f"Errors: {summary['error_count']}")
    lines.append(f"Warnings: {summary['warning_count']}")
    for finding in payload["findings"]:
        marker = "E" if finding["severity"] == ERROR else "W"
        lines.append(f"[{marker}] {finding['table']} row {finding['row']} {finding['column']}: {finding['message']}")
    lines.append("Next step: " + ("blocked" if summary["blocking"] else "allowed"))
    return "\n".join(lines) + "\n"


def exit_code_for_validation(payload: dict[str, Any]) -> int:
    summary = payload["summary"]
    if summary["blocking"]:
        return EXIT_VALIDATE_FAILED
    if summary["load_failures"]:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def build_parser() -> argparse.ArgumentParser:
    parser = IntakeDoctorArgumentParser(
        prog="intake-doctor",
        description="Normalize client/worker/task files and validate them before rule building.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Load files and report validation findings.")
    validate.add_argument("inputs", nargs="+", help="Input file paths (.csv/.tsv/.txt/.xlsx/.xlsm/.xls/.ods)")
    validate.add_argument("-o", "--out", dest="out_dir", help="Output directory for validation.json")
    validate.add_argument("--output", help="Explicit validation output path")
    validate.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    validate.add_argument("-j", "--jobs", type=int, default=1, help="Parse files on this many threads")
    validate.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    export = subparsers.add_parser("export", help="Write one workbook per table kind plus rules.json.")
    export.add_argument("inputs", nargs="+", help="Input file paths")
    export.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    export.add_argument("--rules", help="Existing rules.json to start from")
    export.add_argument("--weight", action="append", metavar="KEY=VALUE", help="Override a criterion weight (0-100)")
    export.add_argument("--allow-errors", action="store_true", help="Export even when error findings remain")
    export.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    export.add_argument("-j", "--jobs", type=int, default=1, help="Parse files on this many threads")
    export.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter rules.json.")
    config_init.add_argument("--path", default="rules.json", help="Config output path")

    explain = subparsers.add_parser("explain", help="Explain a finding rule id.")
    explain.add_argument("rule_id", help="Rule identifier")
    explain.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    subparsers.add_parser("version", help="Print version")
    return parser


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def run_validate(args: argparse.Namespace) -> int:
    try:
        inputs = check_inputs(args.inputs)
        tables = load_batch(inputs, max_workers=args.jobs)
        findings = validate_tables(tables)
        payload = remove_generated_at(build_validation_payload(inputs, tables, findings))
        if args.output or args.out_dir:
            output_path = Path(args.output) if args.output else determine_output_dir(args) / "validation.json"
            write_json(output_path, payload)
            emit_human(f"Validation report: {output_path}", quiet=args.quiet)
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_validate_text(payload).rstrip(), quiet=args.quiet)
        return exit_code_for_validation(payload)
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_export(args: argparse.Namespace) -> int:
    try:
        inputs = check_inputs(args.inputs)
        document = load_rules_document(Path(args.rules)) if args.rules else build_rules_document()
        criteria = apply_weights(document["criteria"], parse_weight_overrides(args.weight))

        tables = load_batch(inputs, max_workers=args.jobs)
        failed = [table["name"] for table in tables if table.get("error")]
        if failed:
            raise CliError(f"Could not load: {', '.join(failed)}", EXIT_PARSE_FAILED)
        findings = validate_tables(tables)
        summary = summarize_findings(findings)
        if summary["blocking"] and not args.allow_errors:
            emit_human(
                f"Export blocked: {summary['error_count']} error finding(s). "
                "Run 'intake-doctor validate' for details or pass --allow-errors.",
                quiet=args.quiet,
            )
            return EXIT_VALIDATE_FAILED

        out_dir = determine_output_dir(args)
        result = export_session(tables, out_dir, criteria=criteria, rules=document["rules"])
        outputs = [*result["workbooks"].values(), result["rules"]]
        contract = build_contract("intake_doctor.export")
        payload = remove_generated_at(
            {
                "contract": contract,
                "schema_version": contract["version"],
                "tool_version": TOOL_VERSION,
                "workbooks": result["workbooks"],
                "rules": result["rules"],
                "document": result["document"],
                "run_summary": build_run_summary(
                    command="export",
                    input_files=[str(path) for path in inputs],
                    output_paths=outputs,
                    metrics={"tables": len(tables), "errors": summary["error_count"], "warnings": summary["warning_count"]},
                ),
            }
        )
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            for path in outputs:
                emit_human(f"Written: {path}", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    write_rules_document(build_rules_document(DEFAULT_CRITERIA), config_path)
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_explain(args: argparse.Namespace) -> int:
    rule = EXPLAIN_RULES.get(args.rule_id)
    if rule is None:
        eprint(f"Unknown rule id: {args.rule_id}")
        return EXIT_COMMAND_ERROR
    payload = {"rule_id": args.rule_id, **rule}
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        print(
            "\n".join(
                [
                    f"Rule: {args.rule_id}",
                    f"What it checks: {payload['description']}",
                    f"What triggers it: {payload['evidence']}",
                    f"Blocks next step: {'yes' if payload['blocking'] else 'no'}",
                    f"How to fix it: {payload['fix_hint']}",
                ]
            )
        )
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if args.command == "validate":
            return run_validate(args)
        if args.command == "export":
            return run_export(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "explain":
            return run_explain(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
