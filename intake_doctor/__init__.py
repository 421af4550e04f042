"""Entity table intake: normalize client/worker/task files and validate them."""

__version__ = "0.1.0"

from intake_doctor.loader import guess_table_kind, load_batch, load_file, load_table, serialize_row
from intake_doctor.session import ReviewSession, SessionError
from intake_doctor.validator import has_blocking_findings, validate_tables

__all__ = [
    "__version__",
    "ReviewSession",
    "SessionError",
    "guess_table_kind",
    "has_blocking_findings",
    "load_batch",
    "load_file",
    "load_table",
    "serialize_row",
    "validate_tables",
]
