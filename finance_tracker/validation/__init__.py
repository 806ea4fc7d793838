"""Input validation package."""

from finance_tracker.validation.validator import (
    EntryValidationError,
    LedgerEntryValidator,
    issues_from_pydantic,
    parse_model,
    schema_failure,
)

__all__ = [
    "EntryValidationError",
    "LedgerEntryValidator",
    "issues_from_pydantic",
    "parse_model",
    "schema_failure",
]
