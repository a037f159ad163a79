"""Typed errors raised by the reading core.

All errors are raised synchronously; nothing here is retried internally.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .db.schemas import ConflictingEntry, ValidationResult


class PagetrailError(Exception):
    """Base class for all pagetrail errors."""


class NotFoundError(PagetrailError):
    """A referenced book, session or progress entry does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class InvalidStateError(PagetrailError):
    """An operation was requested against a session in the wrong status."""


class NotArchivedError(InvalidStateError):
    """A re-read was requested while the book still has an active session."""


class NoCompletedSessionError(InvalidStateError):
    """A re-read was requested for a book that was never finished."""


class ValidationError(PagetrailError):
    """Progress input was rejected.

    When the rejection comes from the timeline check, ``result`` holds the
    full ``ValidationResult`` so callers can highlight the conflicting entry.
    """

    def __init__(self, message: str, result: Optional["ValidationResult"] = None):
        self.result = result
        super().__init__(message)

    @property
    def conflicting_entry(self) -> Optional["ConflictingEntry"]:
        return self.result.conflicting_entry if self.result else None
