"""Caller-owned review state: loaded tables, current step and in-place edits."""

from __future__ import annotations

import copy
from typing import Any, Callable, Iterable, Optional

from intake_doctor.loader import BatchItem, load_batch
from intake_doctor.rules import ERROR
from intake_doctor.validator import has_blocking_findings, validate_tables

STEPS = ("upload", "review", "rules", "prioritize")


class SessionError(Exception):
    pass


class ReviewSession:
    """
    Holds one editing session's tables.

    Nothing here is module-global: each caller owns its session and hands the
    tables to the pure loader/validator functions. Findings are recomputed
    from scratch on every call to findings().
    """

    def __init__(self, tables: Optional[list[dict]] = None) -> None:
        self.tables: list[dict] = list(tables or [])
        self.step = 0

    @property
    def step_name(self) -> str:
        return STEPS[self.step]

    def load(self, files: Iterable[BatchItem], max_workers: Optional[int] = None) -> list[dict]:
        """Replace every table with a freshly loaded batch."""
        self.set_tables(load_batch(files, max_workers=max_workers))
        return self.tables

    def set_tables(self, tables: list[dict]) -> None:
        self.tables = list(tables)

    def _has_row(self, table_index: int, row_index: int) -> bool:
        if not 0 <= table_index < len(self.tables):
            return False
        return 0 <= row_index < len(self.tables[table_index]["rows"])

    def update_cell(self, table_index: int, row_index: int, column: str, value: Any) -> bool:
        if not self._has_row(table_index, row_index):
            return False
        table = self.tables[table_index]
        table["rows"][row_index][column] = value
        if column not in table["columns"]:
            table["columns"].append(column)
        return True

    def replace_row(self, table_index: int, row_index: int, row: dict) -> bool:
        if not self._has_row(table_index, row_index):
            return False
        self.tables[table_index]["rows"][row_index] = dict(row)
        return True

    def replace_rows(self, table_index: int, rows: list[dict]) -> bool:
        if not 0 <= table_index < len(self.tables):
            return False
        self.tables[table_index]["rows"] = [dict(row) for row in rows]
        return True

    def apply_modification(
        self,
        modify: Callable[[list[dict]], list[dict]],
        table_index: int = 0,
    ) -> bool:
        """Run ``modify`` over a copy of one table's rows and keep its result."""
        if not 0 <= table_index < len(self.tables):
            return False
        rows = copy.deepcopy(self.tables[table_index]["rows"])
        return self.replace_rows(table_index, modify(rows))

    def findings(self) -> list[dict]:
        return validate_tables(self.tables)

    def can_advance(self) -> bool:
        if self.step >= len(STEPS) - 1:
            return False
        if self.step_name == "upload":
            return bool(self.tables)
        if self.step_name == "review":
            return not has_blocking_findings(self.findings())
        return True

    def advance(self) -> int:
        if not self.can_advance():
            errors = [finding for finding in self.findings() if finding["severity"] == ERROR]
            if errors:
                raise SessionError(f"Cannot leave '{self.step_name}': {len(errors)} error(s) must be fixed first")
            raise SessionError(f"Cannot leave '{self.step_name}' yet")
        self.step += 1
        return self.step

    def back(self) -> int:
        if self.step > 0:
            self.step -= 1
        return self.step
