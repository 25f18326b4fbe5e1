"""Data-access interfaces consumed by the catalog, patron and lending services.

Reads return ``None`` when a record does not exist. Any other failure is
raised as :class:`~library_system.errors.StorageError` so the services can
tell the two apart.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from library_system.book import Book
from library_system.loan import Loan
from library_system.patron import Patron


class CatalogStore(ABC):

    @abstractmethod
    def add_book(self, book: Book) -> Book:
        """Persist a new book. Raises DuplicateISBNError if the ISBN is taken."""

    @abstractmethod
    def get_book(self, book_id: str) -> Optional[Book]:
        ...

    @abstractmethod
    def get_book_by_isbn(self, isbn: str) -> Optional[Book]:
        """Look up by normalized ISBN."""

    @abstractmethod
    def update_book(self, book: Book, *, expected_version: Optional[int] = None) -> Book:
        """Write all fields of ``book`` and return the stored copy with its new version.

        When ``expected_version`` is given the write only happens if the stored
        version still matches; otherwise ConcurrentUpdateError is raised.
        Raises BookNotFoundError if the book no longer exists and
        DuplicateISBNError if the new ISBN belongs to another book.
        """

    @abstractmethod
    def remove_book(self, book_id: str) -> Optional[Book]:
        """Delete a book and return it, or None if it did not exist."""

    @abstractmethod
    def search_books(self, query: str) -> List[Book]:
        """Case-insensitive substring match over title, author and ISBN."""

    @abstractmethod
    def list_books(self) -> List[Book]:
        """All books ordered by title."""


class LedgerStore(ABC):

    @abstractmethod
    def add_loan(self, loan: Loan) -> Loan:
        ...

    @abstractmethod
    def update_loan(self, loan: Loan) -> Loan:
        ...

    @abstractmethod
    def get_loan(self, loan_id: str) -> Optional[Loan]:
        ...

    @abstractmethod
    def find_active_loan(self, book_id: str, patron_id: str) -> Optional[Loan]:
        """The loan for (book, patron) whose return date is still null."""

    @abstractmethod
    def list_loans(self, *, book_id: Optional[str] = None, patron_id: Optional[str] = None) -> List[Loan]:
        """Loans matching the filters, newest first."""


class PatronDirectory(ABC):

    @abstractmethod
    def add_patron(self, patron: Patron) -> Patron:
        """Persist a patron. Raises EmailAlreadyRegisteredError on a taken email."""

    @abstractmethod
    def get_patron(self, patron_id: str) -> Optional[Patron]:
        ...

    @abstractmethod
    def get_patron_by_email(self, email: str) -> Optional[Patron]:
        """Look up by normalized email."""

    @abstractmethod
    def find_patrons_by_name(self, name: str) -> List[Patron]:
        """Case-insensitive, whitespace-trimmed exact name match."""
