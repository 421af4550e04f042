"""
Shared rule parameters and finding taxonomy.

Entity kinds are described by data, not code: adding a kind means adding an
entry to KIND_RULES. The validator and loader both read from here so the
keyword lists, identity columns and severities cannot drift apart.
"""

from __future__ import annotations

from typing import Any


KIND_RULES: dict[str, dict[str, Any]] = {
    "clients": {
        "keywords": ["client", "cliente", "clientes"],
        "id_column": "ClientID",
        "required_fields": ["ClientName"],
    },
    "workers": {
        "keywords": ["worker", "trabajador", "empleado", "workers"],
        "id_column": "WorkerID",
        "required_fields": ["WorkerName"],
    },
    "tasks": {
        "keywords": ["task", "tarea", "tasks", "tareas"],
        "id_column": "TaskID",
        "required_fields": ["TaskName"],
    },
}

DEFAULT_KIND = "tasks"
FALLBACK_ID_COLUMN = "id"

# Cross-entity skill coverage
SKILL_SOURCE_KIND = "workers"
SKILL_SOURCE_COLUMN = "Skills"
SKILL_TARGET_KIND = "tasks"
SKILL_TARGET_COLUMN = "RequiredSkills"

# Candidate columns probed on every table; absent columns are fine.
NUMERIC_FIELDS = ("priority", "duration", "cost")
DATE_FIELDS = ("start_date", "end_date", "deadline")
TEXT_FIELDS = ("name", "description", "notes")
MAX_TEXT_LENGTH = 500

ERROR = "error"
WARNING = "warning"
TABLE_LEVEL_ROW = 0

FINDING_DEFINITIONS = {
    "structural_missing_id_column": {"severity": ERROR, "category": "structural"},
    "integrity_duplicate_id": {"severity": ERROR, "category": "integrity"},
    "integrity_uncovered_skill": {"severity": ERROR, "category": "integrity"},
    "integrity_invalid_number": {"severity": ERROR, "category": "integrity"},
    "integrity_invalid_date": {"severity": ERROR, "category": "integrity"},
    "quality_empty_required": {"severity": WARNING, "category": "quality"},
    "quality_text_too_long": {"severity": WARNING, "category": "quality"},
}

EXPLAIN_RULES = {
    "structural_missing_id_column": {
        "description": "The table has no identity column for its kind.",
        "evidence": "The header (or the first row) lacks ClientID / WorkerID / TaskID.",
        "blocking": True,
        "fix_hint": "Add the identity column to the source file. No other checks run on that table until you do.",
    },
    "integrity_duplicate_id": {
        "description": "Two or more rows share the same identity value.",
        "evidence": "An identity value was already seen on an earlier row of the same table.",
        "blocking": True,
        "fix_hint": "Give every row a unique ID; the first occurrence is kept as the reference row.",
    },
    "integrity_uncovered_skill": {
        "description": "A task requires a skill no worker declares.",
        "evidence": "A RequiredSkills token is missing from every workers Skills list.",
        "blocking": True,
        "fix_hint": "Add the skill to a worker, or correct the spelling in RequiredSkills.",
    },
    "integrity_invalid_number": {
        "description": "A numeric column holds a non-number or a negative value.",
        "evidence": "priority / duration / cost could not be read as a non-negative number.",
        "blocking": True,
        "fix_hint": "Use plain non-negative numbers, or leave the cell empty.",
    },
    "integrity_invalid_date": {
        "description": "A date column holds text that is not a date.",
        "evidence": "start_date / end_date / deadline could not be parsed.",
        "blocking": True,
        "fix_hint": "Use ISO dates such as 2024-03-01, or leave the cell empty.",
    },
    "quality_empty_required": {
        "description": "A name field expected on every row is empty.",
        "evidence": "ClientName / WorkerName / TaskName is missing, null or empty.",
        "blocking": False,
        "fix_hint": "Fill in the name; this is a warning and does not block the next step.",
    },
    "quality_text_too_long": {
        "description": "A free-text field is unusually long.",
        "evidence": f"name / description / notes exceeds {MAX_TEXT_LENGTH} characters.",
        "blocking": False,
        "fix_hint": "Shorten the text or move long notes elsewhere.",
    },
}


def id_column_for(kind: str) -> str:
    return KIND_RULES.get(kind, {}).get("id_column", FALLBACK_ID_COLUMN)


def required_fields_for(kind: str) -> list[str]:
    return list(KIND_RULES.get(kind, {}).get("required_fields", []))


def build_finding(
    *,
    rule_id: str,
    table: str,
    row: int,
    column: str,
    message: str,
) -> dict[str, Any]:
    definition = FINDING_DEFINITIONS[rule_id]
    return {
        "table": table,
        "row": row,
        "column": column,
        "message": message,
        "severity": definition["severity"],
        "rule_id": rule_id,
        "category": definition["category"],
    }
