"""Tagged error kinds raised across the engine, library and adapters.

Every exception carries a stable ``kind`` string so callers (CLI, API layers)
can branch on the failure category without importing concrete classes.
"""
from __future__ import annotations

from typing import Any, Optional


class FinAnalyzerError(Exception):
    """Base class for all tagged errors."""

    kind = "FinAnalyzerError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


# -------------
# Schema errors
# -------------
class SchemaError(FinAnalyzerError):
    """Raw record rejected by the report schema."""

    kind = "SchemaError"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


class SchemaIncomplete(SchemaError):
    kind = "SchemaIncomplete"

    def __init__(self, field: str) -> None:
        super().__init__(field, f"Required field '{field}' is missing.")


class SchemaTypeMismatch(SchemaError):
    kind = "SchemaTypeMismatch"

    def __init__(self, field: str, expected: str, got: Any) -> None:
        super().__init__(field, f"Field '{field}' expected {expected}, got {got!r}.")
        self.expected = expected
        self.got = got


# -----------------
# Extraction errors
# -----------------
class ExtractionError(FinAnalyzerError):
    kind = "ExtractionError"


class ExtractionUnavailable(ExtractionError):
    """Upstream service unreachable, unauthenticated or timed out."""

    kind = "ExtractionUnavailable"


class ExtractionRejected(ExtractionError):
    """Input is not a parseable PDF or not a recognizable earnings filing."""

    kind = "ExtractionRejected"


class EnrichmentFailed(FinAnalyzerError):
    """An optional capability (market context, audio, image, live) failed."""

    kind = "EnrichmentFailed"

    def __init__(self, capability: str, message: str) -> None:
        super().__init__(f"{capability}: {message}")
        self.capability = capability


# --------------
# Library errors
# --------------
class LibraryError(FinAnalyzerError):
    kind = "LibraryError"


class DuplicateIdentity(LibraryError):
    kind = "DuplicateIdentity"

    def __init__(self, report_id: str) -> None:
        super().__init__(f"Report id '{report_id}' already exists in the library.")
        self.report_id = report_id


class MissingIdentity(LibraryError):
    """Report has not been assigned an id by the extraction client."""

    kind = "MissingIdentity"

    def __init__(self) -> None:
        super().__init__("Reports must carry an id before entering the library.")


class UnknownReport(LibraryError):
    kind = "UnknownReport"

    def __init__(self, report_id: Optional[str]) -> None:
        super().__init__(f"No report with id '{report_id}' in the library.")
        self.report_id = report_id


class ImmutableFieldMutation(LibraryError):
    kind = "ImmutableFieldMutation"

    def __init__(self, report_id: str, field: str) -> None:
        super().__init__(f"Field '{field}' of report '{report_id}' cannot be changed after creation.")
        self.report_id = report_id
        self.field = field


# -----------------
# Comparison errors
# -----------------
class ComparisonInvalid(FinAnalyzerError):
    """Raised when a caller asks for rows of a comparison that failed validation."""

    kind = "ComparisonInvalid"

    def __init__(self, errors: Any) -> None:
        details = "; ".join(str(e) for e in errors) or "comparison is not valid"
        super().__init__(details)
        self.errors = list(errors)


# --------
# Warnings
# --------
class FinAnalyzerWarning(UserWarning):
    kind = "FinAnalyzerWarning"


class PersistenceCorrupt(FinAnalyzerWarning):
    """Persisted library blob could not be decoded; the library starts empty."""

    kind = "PersistenceCorrupt"
