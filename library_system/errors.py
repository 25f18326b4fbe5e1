"""Error taxonomy for the library core.

Every error carries an :class:`ErrorKind` so callers (the HTTP layer, the CLI)
can dispatch on the kind instead of inspecting message text.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    STORAGE = "storage"
    INCONSISTENT_STATE = "inconsistent_state"
    INTERNAL = "internal"


class LibraryError(Exception):
    """Base class for all errors raised by the library core."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, *, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


# --- Validation ---

class ValidationError(LibraryError):
    kind = ErrorKind.VALIDATION


class InvalidIdentifierError(ValidationError):
    """A patron identifier failed format validation or did not match."""


# --- Not found ---

class NotFoundError(LibraryError):
    kind = ErrorKind.NOT_FOUND


class BookNotFoundError(NotFoundError):
    pass


class PatronNotFoundError(NotFoundError):
    pass


class NoActiveLoanError(NotFoundError):
    """No open loan exists for the (book, patron) pair."""


class LoanNotFoundError(NotFoundError):
    pass


# --- Conflict ---

class ConflictError(LibraryError):
    kind = ErrorKind.CONFLICT


class DuplicateISBNError(ConflictError):
    pass


class AlreadyBorrowedError(ConflictError):
    pass


class BookNotAvailableError(ConflictError):
    pass


class EmailAlreadyRegisteredError(ConflictError):
    pass


class ConcurrentUpdateError(ConflictError):
    """A compare-and-swap write lost against a concurrent writer."""


# --- Storage ---

class StorageError(LibraryError):
    kind = ErrorKind.STORAGE


class InconsistentStateError(StorageError):
    """A compensating write failed, leaving book status and ledger out of sync."""

    kind = ErrorKind.INCONSISTENT_STATE
