"""
loader.py: turn uploaded client/worker/task files into normalized tables

Supports: .csv .tsv .txt .xlsx .xlsm .xls .ods (anything else is ignored)

Public API:
    table  = load_table("clientes.csv", raw_bytes)
    table  = load_file("path/to/workers.xlsx")
    tables = load_batch([("tasks.csv", raw_bytes), "path/to/clients.xlsx"])

Table dict keys:
    kind              : "clients", "workers" or "tasks" (guessed from the name)
    name              : original file name
    columns           : header names in file order
    rows              : list of dicts, column → cell value (see cells.py)
    detected_format   : "csv", "xlsx", ... ; None for ignored files
    detected_encoding : encoding name for text files; None otherwise
    delimiter         : delimiter char for text files; None otherwise
    sheet_name        : sheet that was read for spreadsheets; None otherwise
    sheet_names       : all sheets in the workbook; None otherwise
    warnings          : list of warning strings
    error             : None, or why the file could not be read (batch only)
"""

from __future__ import annotations

import csv
import io
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Iterable, Optional, Union

import chardet

from intake_doctor.cells import ABSENT, BOOLEAN, NULL, NUMBER, cell_kind, display_value, normalize_cell
from intake_doctor.rules import DEFAULT_KIND, KIND_RULES

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS  = {".csv", ".tsv", ".txt"}
EXCEL_FORMATS = {".xlsx", ".xlsm", ".xls"}
ODS_FORMATS   = {".ods"}
ALL_FORMATS   = TEXT_FORMATS | EXCEL_FORMATS | ODS_FORMATS

BatchItem = Union[str, Path, tuple[str, Union[bytes, str]]]


# ══════════════════════════════════════════════════════════════════════════════
# KIND INFERENCE
# ══════════════════════════════════════════════════════════════════════════════

def guess_table_kind(filename: str) -> str:
    """First kind whose keyword appears in the lower-cased name; DEFAULT_KIND otherwise."""
    lower = filename.lower()
    for kind, params in KIND_RULES.items():
        if any(keyword in lower for keyword in params["keywords"]):
            return kind
    return DEFAULT_KIND


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw)
    detected = result.get("encoding") or "unknown"
    return detected if detected != "unknown" else "utf-8"


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Strategy per line:
      1. Try UTF-8
      2. Try preferred_encoding (chardet result)
      3. CP1252 with replace (never crashes)

    Also strips embedded null bytes and a leading BOM.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding):
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines).lstrip("\ufeff")


# ══════════════════════════════════════════════════════════════════════════════
# DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_delimiter(text: str) -> str:
    """
    Infer the delimiter from sample lines.

    Uses csv.Sniffer first; falls back to scoring each candidate delimiter by
    column-count consistency and column width.
    """
    sample_lines = [l for l in text.splitlines() if l.strip()][:50]
    sample = "\n".join(sample_lines[:25])

    if sample:
        try:
            sniffed = csv.Sniffer().sniff(sample, delimiters=",;\t|")
            return sniffed.delimiter
        except csv.Error:
            pass

    best_delim = ","
    best_score = float("-inf")
    for delim in [",", ";", "\t", "|"]:
        rows = [
            row
            for row in csv.reader(io.StringIO(sample), delimiter=delim)
            if any(cell.strip() for cell in row)
        ]
        if len(rows) < 2:
            continue

        widths = [len(row) for row in rows]
        mode_width, mode_count = Counter(widths).most_common(1)[0]
        score = (mode_width * 2.0) + (mode_count / len(widths)) * mode_width
        if len(rows[0]) == mode_width:
            score += 1.0
        if mode_width == 1:
            score -= 10.0

        if score > best_score:
            best_score = score
            best_delim = delim

    return best_delim


def _header_width(text: str, delimiter: str) -> int:
    for row in csv.reader(io.StringIO(text), delimiter=delimiter):
        if row:
            return len(row)
    return 0


def _validate_txt_table(text: str, delimiter: str) -> None:
    """Reject .txt files that are prose rather than delimited rows."""
    lines = [line for line in text.splitlines() if line.strip()][:50]
    rows = list(csv.reader(io.StringIO("\n".join(lines)), delimiter=delimiter))
    if sum(1 for row in rows if len(row) > 1) < 1:
        raise ValueError(
            ".txt file does not appear to contain delimited/tabular data "
            f"(detected delimiter {delimiter!r} but no row contains multiple fields)"
        )


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _as_bytes(content: Union[bytes, str]) -> bytes:
    if isinstance(content, str):
        return content.encode("utf-8")
    return bytes(content)


def _table(name: str, **fields: Any) -> dict:
    table = {
        "kind":              guess_table_kind(name),
        "name":              name,
        "columns":           [],
        "rows":              [],
        "detected_format":   None,
        "detected_encoding": None,
        "delimiter":         None,
        "sheet_name":        None,
        "sheet_names":       None,
        "warnings":          [],
        "error":             None,
    }
    table.update(fields)
    return table


def _load_text(name: str, raw: bytes, suffix: str) -> dict:
    """Delimited text: header line → columns, each non-blank line → one row of text cells."""
    import pandas as pd

    encoding = _detect_encoding(raw)
    text = _read_text_safely(raw, encoding)
    delimiter = "\t" if suffix == ".tsv" else _detect_delimiter(text)
    fmt = suffix.lstrip(".")

    if not text.strip():
        return _table(name, detected_format=fmt, detected_encoding=encoding, delimiter=delimiter)

    if suffix == ".txt":
        _validate_txt_table(text, delimiter)

    width = _header_width(text, delimiter)
    overflow: list[int] = []

    def _truncate(bad_line: list[str]) -> list[str]:
        overflow.append(len(bad_line))
        return bad_line[:width]

    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            on_bad_lines=_truncate,
            sep=delimiter,
            engine="python",
        )
    except pd.errors.EmptyDataError:
        return _table(name, detected_format=fmt, detected_encoding=encoding, delimiter=delimiter)
    except (pd.errors.ParserError, csv.Error) as exc:
        raise ValueError(f"Could not parse {suffix} file: {exc}") from exc

    columns = [str(column) for column in df.columns]
    rows: list[dict] = []
    for record in df.itertuples(index=False, name=None):
        row = {}
        for column, value in zip(columns, record):
            # Short source lines leave trailing fields unset.
            if isinstance(value, str):
                row[column] = value
        rows.append(row)

    warnings: list[str] = []
    if overflow:
        warnings.append(
            f"{len(overflow)} row(s) had more fields than the {width}-column header; "
            "extra fields were dropped"
        )

    return _table(
        name,
        columns=columns,
        rows=rows,
        detected_format=fmt,
        detected_encoding=encoding,
        delimiter=delimiter,
        warnings=warnings,
    )


def _spreadsheet_headers(values: list[Any]) -> list[str]:
    """Name header cells: blanks become __EMPTY, repeats get a numeric suffix."""
    seen: Counter = Counter()
    headers = []
    for value in values:
        header = display_value(normalize_cell(value))
        if header == "":
            header = "__EMPTY"
        if seen[header]:
            deduped = f"{header}_{seen[header]}"
        else:
            deduped = header
        seen[header] += 1
        headers.append(deduped)
    return headers


def _load_spreadsheet(name: str, raw: bytes, suffix: str) -> dict:
    """
    Spreadsheet binary: only the first sheet is read.

    Missing cells become empty text so every row carries every column.
    Rows with no value in any cell are skipped.
    """
    import pandas as pd

    engine: Optional[str] = None
    if suffix == ".xls":
        try:
            import xlrd  # noqa: F401
        except ImportError:
            raise ImportError(".xls files require xlrd: run: pip install xlrd")
    if suffix in ODS_FORMATS:
        try:
            import odf  # noqa: F401
        except ImportError:
            raise ImportError(".ods files require odfpy: run: pip install odfpy")
        engine = "odf"

    try:
        with pd.ExcelFile(io.BytesIO(raw), engine=engine) as xf:
            sheet_names = [str(sheet) for sheet in xf.sheet_names]
            active_sheet = sheet_names[0]
            df = pd.read_excel(
                xf,
                sheet_name=xf.sheet_names[0],
                header=None,
                dtype=object,
                keep_default_na=False,
            )
    except Exception as exc:
        raise ValueError(f"Could not read workbook: {exc}") from exc

    warnings: list[str] = []
    if len(sheet_names) > 1:
        warnings.append(
            f"Multiple sheets found ({len(sheet_names)} total); "
            f"used '{active_sheet}'. Ignored: {sheet_names[1:]}"
        )

    records = list(df.itertuples(index=False, name=None))
    header = _spreadsheet_headers(list(records[0])) if records else []
    rows = []
    for record in records[1:]:
        row = {column: normalize_cell(value) for column, value in zip(header, record)}
        if any(value != "" for value in row.values()):
            rows.append(row)
    # Columns come from the first row; an empty sheet has none to offer.
    columns = list(rows[0].keys()) if rows else []
    if not rows and header:
        warnings.append(f"Sheet '{active_sheet}' has a header row but no data rows")

    return _table(
        name,
        columns=columns,
        rows=rows,
        detected_format=suffix.lstrip("."),
        sheet_name=active_sheet,
        sheet_names=sheet_names,
        warnings=warnings,
    )


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def load_table(name: str, content: Union[bytes, str]) -> dict:
    """
    Normalize one uploaded file into a table dict.

    Args:
        name:    Original file name; its extension picks the parser and its
                 words pick the entity kind.
        content: Raw file bytes (or already-decoded text for delimited files).

    Raises:
        ValueError   if the file claims a supported format but cannot be parsed.
        ImportError  if an optional spreadsheet engine is missing.
    """
    suffix = Path(name).suffix.lower()
    if suffix not in ALL_FORMATS:
        return _table(name)

    if suffix in TEXT_FORMATS:
        return _load_text(name, _as_bytes(content), suffix)

    return _load_spreadsheet(name, _as_bytes(content), suffix)


def load_file(path: "str | Path") -> dict:
    """Read a file from disk and normalize it. Raises FileNotFoundError if missing."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return load_table(path.name, path.read_bytes())


def _load_item(item: BatchItem) -> dict:
    if isinstance(item, tuple):
        name, content = item
        return load_table(name, content)
    return load_file(item)


def _item_name(item: BatchItem) -> str:
    if isinstance(item, tuple):
        return item[0]
    return Path(item).name


def _load_item_safely(item: BatchItem) -> dict:
    try:
        return _load_item(item)
    except Exception as exc:
        name = _item_name(item)
        return _table(name, error=f"{type(exc).__name__}: {exc}", warnings=[f"Could not load {name}: {exc}"])


def load_batch(files: Iterable[BatchItem], max_workers: Optional[int] = None) -> list[dict]:
    """
    Normalize an upload batch, one table per file, in upload order.

    A file that fails to load becomes a table with no rows and ``error`` set;
    the rest of the batch is still processed. With ``max_workers`` > 1 files
    are parsed on a thread pool.
    """
    items = list(files)
    if max_workers and max_workers > 1 and len(items) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(_load_item_safely, items))
    return [_load_item_safely(item) for item in items]


def _serialize_cell(value: Any) -> str:
    kind = cell_kind(value)
    if value is ABSENT or kind == NULL:
        return ""
    if kind in (NUMBER, BOOLEAN):
        return display_value(value)
    return value


def serialize_row(row: dict, columns: list[str], delimiter: str = ",") -> str:
    """Write one row back as a delimited line (no line terminator)."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=delimiter, lineterminator="")
    writer.writerow([_serialize_cell(row.get(column, ABSENT)) for column in columns])
    return buffer.getvalue()
