"""
Exception taxonomy shared by every layer.

Empty results (no aggregate for a date, zero streak, zero completion rate)
are valid outcomes and never raise.
"""

from __future__ import annotations


class FocusLedgerError(Exception):
    """Base class for all application errors."""


class ValidationError(FocusLedgerError):
    """Malformed input: bad date string, unknown mode/status, negative minutes."""


class NotFoundError(FocusLedgerError):
    """A referenced task or session does not exist."""


class ConflictError(FocusLedgerError):
    """The requested transition is not allowed in the current state."""


class StorageError(FocusLedgerError):
    """A query, scan or write against the backing store failed."""


class StreakWalkError(StorageError):
    """The streak walk stopped on a failed day query.

    ``days`` holds the streak counted before the failure so callers can
    display a best-effort value while still logging the error.
    """

    def __init__(self, message: str, days: int) -> None:
        super().__init__(message)
        self.days = days
