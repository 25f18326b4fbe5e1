"""Checkout, return and reservation workflows.

The coordinator owns the book availability state machine::

    available --checkout--> borrowed --return--> available
    available --reserve---> reserved --return--> available

Each workflow is a two-phase write: the book status is written first with a
compare-and-swap on the book's version, then the ledger. If the ledger write
fails the status write is undone once. If that undo fails too, the caller gets
an InconsistentStateError instead of a silent mismatch.
"""

import logging
from typing import Callable, List, Optional

from library_system.book import Book, BookStatus
from library_system.clock import utcnow
from library_system.errors import (
    AlreadyBorrowedError,
    BookNotAvailableError,
    BookNotFoundError,
    ConcurrentUpdateError,
    InconsistentStateError,
    InvalidIdentifierError,
    LoanNotFoundError,
    NoActiveLoanError,
    NotFoundError,
    PatronNotFoundError,
    StorageError,
)
from library_system.loan import Loan, LoanKind, LoanRecord
from library_system.patron import Patron
from library_system.stores.base import CatalogStore, LedgerStore, PatronDirectory
from library_system.validators import EmailValidator, NameValidator

logger = logging.getLogger(__name__)

_TARGET_STATUS = {
    LoanKind.LOAN: BookStatus.BORROWED,
    LoanKind.RESERVATION: BookStatus.RESERVED,
}

_VERB = {
    LoanKind.LOAN: "checked out",
    LoanKind.RESERVATION: "reserved",
}


class LendingCoordinator:
    """Orchestrates lending across the catalog, the ledger and the patron directory.

    Patrons are identified by email everywhere. The email is trimmed and
    lower-cased before any lookup, so differently-cased inputs resolve to the
    same patron and the same active loan. An optional display name, when
    given, must match the registered name.
    """

    def __init__(self, catalog: CatalogStore, ledger: LedgerStore, patrons: PatronDirectory,
                 clock: Optional[Callable] = None) -> None:
        self.catalog = catalog
        self.ledger = ledger
        self.patrons = patrons
        self._now = clock or utcnow

    # ------------------------- Workflows ------------------------- #
    def check_out(self, book_id: str, email: str, patron_name: Optional[str] = None) -> LoanRecord:
        return self._open_loan(book_id, email, patron_name, LoanKind.LOAN)

    def reserve_book(self, book_id: str, email: str, patron_name: Optional[str] = None) -> LoanRecord:
        return self._open_loan(book_id, email, patron_name, LoanKind.RESERVATION)

    def return_book(self, book_id: str, email: str, patron_name: Optional[str] = None) -> LoanRecord:
        """Close the patron's active loan or reservation and make the book available again."""
        logger.info(f"Starting return for book {book_id} by {email}")
        patron = self._resolve_patron(email, patron_name)

        loan = self.ledger.find_active_loan(book_id, patron.id)
        if loan is None or loan.return_date is not None:
            logger.warning(f"No active loan for book {book_id} and patron {patron.email}")
            raise NoActiveLoanError(f"No active loan found for book {book_id} and patron {patron.email}")

        book = self._get_book(book_id)
        previous_status = book.status
        now = self._now()

        book.status = BookStatus.AVAILABLE
        book.updated_at = now
        written = self._write_status(book, expected_version=book.version)

        loan.return_date = now
        loan.updated_at = now
        try:
            self.ledger.update_loan(loan)
        except Exception as exc:
            logger.error(f"Error updating loan {loan.id} for book {book_id}: {exc}")
            self._compensate(written, previous_status, "return", exc)
            raise StorageError("Failed to update loan record", details=str(exc)) from exc

        logger.info(f"Book {book_id} returned by {patron.email} (loan {loan.id})")
        return LoanRecord(loan, BookStatus.AVAILABLE)

    def loans_for_patron(self, email: str) -> List[Loan]:
        """All loans and reservations of a patron, newest first."""
        patron = self._resolve_patron(email, None)
        return self.ledger.list_loans(patron_id=patron.id)

    def get_loan(self, loan_id: str) -> Loan:
        loan = self.ledger.get_loan(loan_id)
        if loan is None:
            raise LoanNotFoundError(f"Loan not found: {loan_id}")
        return loan

    # ------------------------- Internals ------------------------- #
    def _open_loan(self, book_id: str, email: str, patron_name: Optional[str], kind: LoanKind) -> LoanRecord:
        """Shared checkout/reserve path: available -> borrowed or reserved, plus a new ledger entry."""
        target = _TARGET_STATUS[kind]
        verb = _VERB[kind]
        logger.info(f"Starting {kind.value} for book {book_id} by {email}")

        patron = self._resolve_patron(email, patron_name)
        book = self._get_book(book_id)

        if book.status is not BookStatus.AVAILABLE:
            logger.warning(f"Book {book_id} is not available. Current status: {book.status.value}")
            raise BookNotAvailableError(f"Book is currently {book.status.value} and cannot be {verb}")

        existing = self.ledger.find_active_loan(book.id, patron.id)
        if existing is not None:
            logger.warning(f"Patron {patron.email} already holds active {existing.kind.value} {existing.id}")
            raise AlreadyBorrowedError(f"You already have an active {existing.kind.value} for this book")

        now = self._now()
        loan = Loan(book_id=book.id, patron_id=patron.id, patron_email=patron.email,
                    patron_name=patron.name, kind=kind, loan_date=now)

        book.status = target
        book.updated_at = now
        try:
            written = self._write_status(book, expected_version=book.version)
        except ConcurrentUpdateError as exc:
            current = self.catalog.get_book(book.id)
            current_status = current.status.value if current else "removed"
            logger.warning(f"Lost race on book {book_id}; status is now {current_status}")
            raise BookNotAvailableError(
                f"Book is currently {current_status} and cannot be {verb}",
                details="the book was modified concurrently",
            ) from exc

        try:
            self.ledger.add_loan(loan)
        except Exception as exc:
            logger.error(f"Error adding {kind.value} record for book {book_id}: {exc}")
            self._compensate(written, BookStatus.AVAILABLE, kind.value, exc)
            raise StorageError(f"Failed to create {kind.value} record", details=str(exc)) from exc

        logger.info(f"Book {book_id} {verb} by {patron.email} ({kind.value} {loan.id})")
        return LoanRecord(loan, target)

    def _resolve_patron(self, email: str, patron_name: Optional[str]) -> Patron:
        normalized = EmailValidator.normalize_email(email)
        if not EmailValidator.is_valid_email(normalized):
            raise InvalidIdentifierError(f"Invalid email address: {email!r}")

        patron = self.patrons.get_patron_by_email(normalized)
        if patron is None:
            logger.warning(f"No patron registered with email {normalized}")
            raise PatronNotFoundError(f"User not found: {normalized}")

        if patron_name is not None and patron_name.strip() and not NameValidator.names_match(patron.name, patron_name):
            logger.warning(f"User name mismatch for {normalized}: {patron_name!r}")
            raise InvalidIdentifierError("Invalid User Name")
        return patron

    def _get_book(self, book_id: str) -> Book:
        book = self.catalog.get_book(book_id)
        if book is None:
            raise BookNotFoundError(f"Book not found: {book_id}")
        return book

    def _write_status(self, book: Book, *, expected_version: int) -> Book:
        """Phase one: compare-and-swap the new status. Nothing has been written to the ledger yet."""
        try:
            return self.catalog.update_book(book, expected_version=expected_version)
        except (ConcurrentUpdateError, NotFoundError):
            raise
        except Exception as exc:
            logger.error(f"Error updating status of book {book.id} to {book.status.value}: {exc}")
            raise StorageError("Failed to update book status", details=str(exc)) from exc

    def _compensate(self, written: Book, restore: BookStatus, action: str, cause: Exception) -> None:
        """Undo phase one after phase two failed. Raises InconsistentStateError if the undo fails."""
        rollback = written.copy()
        rollback.status = restore
        rollback.updated_at = self._now()
        try:
            self.catalog.update_book(rollback, expected_version=written.version)
        except Exception as comp_exc:
            logger.error(
                f"Compensation failed for {action} on book {written.id}: status left at "
                f"{written.status.value}, expected {restore.value}: {comp_exc}"
            )
            raise InconsistentStateError(
                f"Book {written.id} is {written.status.value} but its {action} record was not saved",
                details=f"ledger error: {cause}; compensation error: {comp_exc}",
            ) from comp_exc
        logger.info(f"Compensated failed {action}: book {written.id} restored to {restore.value}")
