"""
Rule-based validation for a batch of normalized tables.

validate_tables() is a pure function of the tables it is given: it never
raises for bad data, keeps no state between calls and returns findings in a
fixed order (tables in input order, checks in the order below, rows in row
order).

    1. identity column present        (stops the table when missing)
    2. identity values unique
    3. required name fields filled     (warning)
    4. task skills covered by workers
    5. numeric candidates non-negative numbers
    6. date candidates parseable
    7. free-text candidates not overlong (warning)
"""

from __future__ import annotations

import math
from collections import Counter
from typing import Any, Optional

from intake_doctor.cells import (
    ABSENT,
    TEXT,
    cell_kind,
    coerce_date,
    coerce_number,
    display_value,
    identity_key,
    is_blank,
    split_tokens,
)
from intake_doctor.rules import (
    DATE_FIELDS,
    ERROR,
    MAX_TEXT_LENGTH,
    NUMERIC_FIELDS,
    SKILL_SOURCE_COLUMN,
    SKILL_SOURCE_KIND,
    SKILL_TARGET_COLUMN,
    SKILL_TARGET_KIND,
    TABLE_LEVEL_ROW,
    TEXT_FIELDS,
    WARNING,
    build_finding,
    id_column_for,
    required_fields_for,
)


def collect_worker_skills(tables: list[dict]) -> set[str]:
    """Every skill token declared on any workers row, across all workers tables."""
    skills: set[str] = set()
    for table in tables:
        if table.get("kind") != SKILL_SOURCE_KIND:
            continue
        for row in table.get("rows") or []:
            skills.update(split_tokens(row.get(SKILL_SOURCE_COLUMN, ABSENT)))
    return skills


def check_id_column(table: dict) -> Optional[dict]:
    kind = table["kind"]
    id_col = id_column_for(kind)
    columns = table.get("columns")
    first_row = table["rows"][0]
    if id_col in first_row and (not columns or id_col in columns):
        return None
    return build_finding(
        rule_id="structural_missing_id_column",
        table=kind,
        row=TABLE_LEVEL_ROW,
        column=id_col,
        message=f"Missing required column: {id_col}. Please add this column to your data file.",
    )


def check_duplicate_ids(table: dict) -> list[dict]:
    kind = table["kind"]
    id_col = id_column_for(kind)
    findings = []
    seen: set[str] = set()
    for index, row in enumerate(table["rows"]):
        key = identity_key(row.get(id_col, ABSENT))
        if key is None:
            continue
        if key in seen:
            findings.append(
                build_finding(
                    rule_id="integrity_duplicate_id",
                    table=kind,
                    row=index,
                    column=id_col,
                    message=f"Duplicate {id_col}: {key}. Each row must have a unique ID.",
                )
            )
        else:
            seen.add(key)
    return findings


def check_required_fields(table: dict) -> list[dict]:
    kind = table["kind"]
    findings = []
    for field in required_fields_for(kind):
        for index, row in enumerate(table["rows"]):
            if is_blank(row.get(field, ABSENT)):
                findings.append(
                    build_finding(
                        rule_id="quality_empty_required",
                        table=kind,
                        row=index,
                        column=field,
                        message=f"Missing value for required field: {field}. Please fill in this field.",
                    )
                )
    return findings


def _required_skill_tokens(value: Any) -> list[str]:
    # Falsy cells (empty text, 0, false, null) declare nothing.
    if not value:
        return []
    if cell_kind(value) == TEXT:
        return split_tokens(value)
    return split_tokens(display_value(value))


def check_skill_coverage(table: dict, worker_skills: set[str]) -> list[dict]:
    if table["kind"] != SKILL_TARGET_KIND:
        return []
    findings = []
    for index, row in enumerate(table["rows"]):
        for skill in _required_skill_tokens(row.get(SKILL_TARGET_COLUMN, ABSENT)):
            if skill and skill not in worker_skills:
                findings.append(
                    build_finding(
                        rule_id="integrity_uncovered_skill",
                        table=table["kind"],
                        row=index,
                        column=SKILL_TARGET_COLUMN,
                        message=(
                            f"Required skill '{skill}' is not covered by any worker. "
                            "Please check your workers' skills."
                        ),
                    )
                )
    return findings


def check_numeric_fields(table: dict) -> list[dict]:
    findings = []
    for field in NUMERIC_FIELDS:
        for index, row in enumerate(table["rows"]):
            value = row.get(field, ABSENT)
            if is_blank(value):
                continue
            number = coerce_number(value)
            if math.isnan(number) or number < 0:
                findings.append(
                    build_finding(
                        rule_id="integrity_invalid_number",
                        table=table["kind"],
                        row=index,
                        column=field,
                        message=f"Invalid numeric value for {field}: {display_value(value)}",
                    )
                )
    return findings


def check_date_fields(table: dict) -> list[dict]:
    findings = []
    for field in DATE_FIELDS:
        for index, row in enumerate(table["rows"]):
            value = row.get(field, ABSENT)
            if is_blank(value):
                continue
            if coerce_date(value) is None:
                findings.append(
                    build_finding(
                        rule_id="integrity_invalid_date",
                        table=table["kind"],
                        row=index,
                        column=field,
                        message=f"Invalid date format for {field}: {display_value(value)}",
                    )
                )
    return findings


def check_text_lengths(table: dict) -> list[dict]:
    findings = []
    for field in TEXT_FIELDS:
        for index, row in enumerate(table["rows"]):
            value = row.get(field, ABSENT)
            if cell_kind(value) == TEXT and len(value) > MAX_TEXT_LENGTH:
                findings.append(
                    build_finding(
                        rule_id="quality_text_too_long",
                        table=table["kind"],
                        row=index,
                        column=field,
                        message=f"Text too long for {field}: {len(value)} characters",
                    )
                )
    return findings


def validate_table(table: dict, worker_skills: set[str]) -> list[dict]:
    if not table.get("rows"):
        return []

    missing = check_id_column(table)
    if missing is not None:
        return [missing]

    findings: list[dict] = []
    findings.extend(check_duplicate_ids(table))
    findings.extend(check_required_fields(table))
    findings.extend(check_skill_coverage(table, worker_skills))
    findings.extend(check_numeric_fields(table))
    findings.extend(check_date_fields(table))
    findings.extend(check_text_lengths(table))
    return findings


def validate_tables(tables: list[dict]) -> list[dict]:
    """Validate every table in order and return all findings."""
    worker_skills = collect_worker_skills(tables)
    findings: list[dict] = []
    for table in tables:
        findings.extend(validate_table(table, worker_skills))
    return findings


def has_blocking_findings(findings: list[dict]) -> bool:
    """Errors block the next step; warnings never do."""
    return any(finding["severity"] == ERROR for finding in findings)


def findings_for_cell(findings: list[dict], kind: str, row: int, column: str) -> list[dict]:
    return [
        finding
        for finding in findings
        if finding["table"] == kind and finding["row"] == row and finding["column"] == column
    ]


def summarize_findings(findings: list[dict]) -> dict[str, Any]:
    by_severity = Counter(finding["severity"] for finding in findings)
    return {
        "finding_count": len(findings),
        "error_count": by_severity.get(ERROR, 0),
        "warning_count": by_severity.get(WARNING, 0),
        "by_rule": dict(sorted(Counter(finding["rule_id"] for finding in findings).items())),
        "by_table": dict(sorted(Counter(finding["table"] for finding in findings).items())),
        "blocking": has_blocking_findings(findings),
    }
