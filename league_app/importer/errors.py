"""
Exception taxonomy for the import reconciliation engine.

Row-level failures are caught by the reconciler and reported in the batch
summary; only ``BatchInputError`` escapes to the caller, and only before any
row has been processed.
"""

from __future__ import annotations

from typing import Sequence


class ImporterError(Exception):
    """Base class for importer failures."""


class RowValidationError(ImporterError, ValueError):
    """Raised when a row lacks the identity fields needed to reconcile it."""

    def __init__(self, message: str, *, missing_fields: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.missing_fields = tuple(missing_fields)

    @classmethod
    def missing(cls, *fields: str) -> "RowValidationError":
        labels = ", ".join(field.replace("_", " ") for field in fields)
        return cls(f"Missing required fields: {labels}", missing_fields=fields)


class StoreWriteError(ImporterError):
    """A create/update for a single row failed (constraint violation, transient error)."""


class ChunkFatalError(ImporterError):
    """The store became unavailable for the remainder of a chunk."""


class BatchInputError(ImporterError, ValueError):
    """The top-level batch request is malformed; nothing was processed."""


class UnmatchedRecordNotFound(ImporterError, LookupError):
    """Raised when an unmatched record id does not exist."""

    def __init__(self, record_id: int) -> None:
        super().__init__(f"Unmatched record {record_id} not found.")
        self.record_id = record_id


class UnmatchedRecordAlreadyLinked(ImporterError):
    """Raised when linking a record that has already been matched."""

    def __init__(self, record_id: int, household_id: int | None) -> None:
        super().__init__(f"Unmatched record {record_id} is already linked to household {household_id}.")
        self.record_id = record_id
        self.household_id = household_id


class HouseholdNotFound(ImporterError, LookupError):
    """Raised when a household id supplied by a caller does not exist."""

    def __init__(self, household_id: int) -> None:
        super().__init__(f"Household {household_id} not found.")
        self.household_id = household_id


class MatchAmbiguityWarning(UserWarning):
    """More than one candidate matched; the first in store order was used."""


__all__ = [
    "BatchInputError",
    "ChunkFatalError",
    "HouseholdNotFound",
    "ImporterError",
    "MatchAmbiguityWarning",
    "RowValidationError",
    "StoreWriteError",
    "UnmatchedRecordAlreadyLinked",
    "UnmatchedRecordNotFound",
]
