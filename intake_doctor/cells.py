"""
Cell values for normalized tables.

A row is a plain dict. Each cell holds one member of a small tagged union:

    text     str
    number   int / float (never bool)
    boolean  bool
    null     None
    absent   the key is missing from the row

Readers should fetch cells with ``row.get(column, ABSENT)`` and branch on
``cell_kind``. The coercion helpers below are what the validation rules use;
none of them raise for malformed data.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time, timezone
from typing import Any, Optional

import pandas as pd

TEXT = "text"
NUMBER = "number"
BOOLEAN = "boolean"
NULL = "null"
ABSENT_KIND = "absent"


class _Absent:
    __slots__ = ()

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


def cell_kind(value: Any) -> str:
    if value is ABSENT:
        return ABSENT_KIND
    if value is None:
        return NULL
    if isinstance(value, bool):
        return BOOLEAN
    if isinstance(value, (int, float)):
        return NUMBER
    return TEXT


def is_blank(value: Any) -> bool:
    """True for null, absent and empty text."""
    return value is None or value is ABSENT or (isinstance(value, str) and value == "")


def normalize_cell(value: Any) -> Any:
    """
    Map a spreadsheet-native value onto the cell union.

    Missing spreadsheet cells become empty text so every row has the same
    shape. Datetimes are rendered as ISO text.
    """
    if value is None or value is ABSENT:
        return ""
    dtype = getattr(value, "dtype", None)
    if dtype is not None and pd.api.types.is_datetime64_any_dtype(dtype):
        value = pd.Timestamp(value)
    elif hasattr(value, "item") and not isinstance(value, (str, bytes, datetime)):
        # numpy scalar
        value = value.item()
    if isinstance(value, pd.Timestamp):
        if pd.isna(value):
            return ""
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        return value
    if isinstance(value, int):
        return value
    return str(value).replace("\x00", "")


def display_value(value: Any) -> str:
    """Render a cell the way it is quoted in finding messages."""
    kind = cell_kind(value)
    if kind == ABSENT_KIND:
        return "undefined"
    if kind == NULL:
        return "null"
    if kind == BOOLEAN:
        return "true" if value else "false"
    if kind == NUMBER:
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)
    return value


def identity_key(value: Any) -> Optional[str]:
    """String key for duplicate detection; None when the value does not take part."""
    if cell_kind(value) not in (TEXT, NUMBER):
        return None
    return display_value(value)


def coerce_number(value: Any) -> float:
    """
    Coerce a cell to a float, returning NaN when it is not numeric.

    Whitespace-only text counts as zero and booleans as 0/1, matching the
    lenient reading spreadsheet users expect. Unsigned 0x/0o/0b literals are
    read as integers and only the spelling "Infinity" counts as infinite.
    Other exotic spellings (digit separators, "nan", "inf") are rejected.
    """
    kind = cell_kind(value)
    if kind == NUMBER:
        return float(value)
    if kind == BOOLEAN:
        return 1.0 if value else 0.0
    if kind != TEXT:
        return math.nan
    text = value.strip()
    if not text:
        return 0.0
    if "_" in text or text.lower() in {"nan", "+nan", "-nan"}:
        return math.nan
    if text[:2].lower() in {"0x", "0o", "0b"}:
        try:
            return float(int(text, 0))
        except (ValueError, OverflowError):
            return math.nan
    if text.lstrip("+-").lower() in {"inf", "infinity"} and text.lstrip("+-") != "Infinity":
        return math.nan
    try:
        return float(text)
    except ValueError:
        return math.nan


def coerce_date(value: Any) -> Optional[datetime]:
    """
    Parse a cell as a date/time; None when unparseable.

    Parsing is pandas.to_datetime, so a short bare number such as "5" is
    not read as a year and counts as invalid.
    """
    kind = cell_kind(value)
    if kind in (NULL, ABSENT_KIND, BOOLEAN):
        return None
    text = display_value(value).strip()
    if not text:
        return None
    try:
        parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def split_tokens(value: Any) -> list[str]:
    """Comma-separated list cell → trimmed tokens (empty tokens kept)."""
    if cell_kind(value) != TEXT:
        return []
    return [token.strip() for token in value.split(",")]
