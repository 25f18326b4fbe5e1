import threading
from typing import Dict, List, Optional

from library_system.book import Book
from library_system.errors import (
    BookNotFoundError,
    ConcurrentUpdateError,
    DuplicateISBNError,
    EmailAlreadyRegisteredError,
    StorageError,
)
from library_system.loan import Loan
from library_system.patron import Patron
from library_system.stores.base import CatalogStore, LedgerStore, PatronDirectory
from library_system.validators import ISBNValidator, NameValidator


class InMemoryCatalogStore(CatalogStore):
    """Thread-safe in-process catalog. Records are copied in and out so callers never alias stored state."""

    def __init__(self) -> None:
        self._books: Dict[str, Book] = {}
        self._lock = threading.RLock()

    def add_book(self, book: Book) -> Book:
        with self._lock:
            if self._find_by_isbn(book.isbn) is not None:
                raise DuplicateISBNError(f"duplicate ISBN: book with ISBN {book.isbn} already exists")
            self._books[book.id] = book.copy()
            return book.copy()

    def get_book(self, book_id: str) -> Optional[Book]:
        with self._lock:
            stored = self._books.get(book_id)
            return stored.copy() if stored else None

    def get_book_by_isbn(self, isbn: str) -> Optional[Book]:
        with self._lock:
            stored = self._find_by_isbn(isbn)
            return stored.copy() if stored else None

    def update_book(self, book: Book, *, expected_version: Optional[int] = None) -> Book:
        with self._lock:
            stored = self._books.get(book.id)
            if stored is None:
                raise BookNotFoundError(f"book not found with id: {book.id}")
            if expected_version is not None and stored.version != expected_version:
                raise ConcurrentUpdateError(
                    f"book {book.id} was modified concurrently "
                    f"(expected version {expected_version}, found {stored.version})"
                )
            other = self._find_by_isbn(book.isbn)
            if other is not None and other.id != book.id:
                raise DuplicateISBNError(f"duplicate ISBN: book with ISBN {book.isbn} already exists")
            updated = book.copy()
            updated.version = stored.version + 1
            self._books[book.id] = updated
            return updated.copy()

    def remove_book(self, book_id: str) -> Optional[Book]:
        with self._lock:
            removed = self._books.pop(book_id, None)
            return removed.copy() if removed else None

    def search_books(self, query: str) -> List[Book]:
        needle = query.strip().lower()
        isbn_needle = ISBNValidator.normalize_isbn(query)
        with self._lock:
            matches = [
                b.copy() for b in self._books.values()
                if needle in b.title.lower()
                or needle in b.author.lower()
                or needle in b.isbn.lower()
                or (isbn_needle and isbn_needle in b.isbn)
            ]
        return sorted(matches, key=lambda b: b.title.lower())

    def list_books(self) -> List[Book]:
        with self._lock:
            books = [b.copy() for b in self._books.values()]
        return sorted(books, key=lambda b: b.title.lower())

    def _find_by_isbn(self, isbn: str) -> Optional[Book]:
        for stored in self._books.values():
            if stored.isbn == isbn:
                return stored
        return None


class InMemoryLedgerStore(LedgerStore):

    def __init__(self) -> None:
        self._loans: Dict[str, Loan] = {}
        self._lock = threading.RLock()

    def add_loan(self, loan: Loan) -> Loan:
        with self._lock:
            if loan.id in self._loans:
                raise StorageError(f"loan {loan.id} already exists")
            self._loans[loan.id] = loan.copy()
            return loan.copy()

    def update_loan(self, loan: Loan) -> Loan:
        with self._lock:
            if loan.id not in self._loans:
                raise StorageError(f"loan {loan.id} not found")
            self._loans[loan.id] = loan.copy()
            return loan.copy()

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        with self._lock:
            stored = self._loans.get(loan_id)
            return stored.copy() if stored else None

    def find_active_loan(self, book_id: str, patron_id: str) -> Optional[Loan]:
        with self._lock:
            for loan in self._loans.values():
                if loan.book_id == book_id and loan.patron_id == patron_id and loan.return_date is None:
                    return loan.copy()
        return None

    def list_loans(self, *, book_id: Optional[str] = None, patron_id: Optional[str] = None) -> List[Loan]:
        with self._lock:
            loans = [
                loan.copy() for loan in self._loans.values()
                if (book_id is None or loan.book_id == book_id)
                and (patron_id is None or loan.patron_id == patron_id)
            ]
        return sorted(loans, key=lambda loan: loan.loan_date, reverse=True)


class InMemoryPatronDirectory(PatronDirectory):

    def __init__(self) -> None:
        self._patrons: Dict[str, Patron] = {}
        self._lock = threading.RLock()

    def add_patron(self, patron: Patron) -> Patron:
        with self._lock:
            if any(p.email == patron.email for p in self._patrons.values()):
                raise EmailAlreadyRegisteredError("email already registered")
            self._patrons[patron.id] = Patron.from_dict(patron.to_dict())
            return Patron.from_dict(patron.to_dict())

    def get_patron(self, patron_id: str) -> Optional[Patron]:
        with self._lock:
            stored = self._patrons.get(patron_id)
            return Patron.from_dict(stored.to_dict()) if stored else None

    def get_patron_by_email(self, email: str) -> Optional[Patron]:
        with self._lock:
            for stored in self._patrons.values():
                if stored.email == email:
                    return Patron.from_dict(stored.to_dict())
        return None

    def find_patrons_by_name(self, name: str) -> List[Patron]:
        with self._lock:
            return [
                Patron.from_dict(p.to_dict()) for p in self._patrons.values()
                if NameValidator.names_match(p.name, name)
            ]
