import logging
import sqlite3
from typing import List, Optional

from library_system.book import Book
from library_system.clock import format_timestamp
from library_system.database import get_db_connection, initialize_database
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

logger = logging.getLogger(__name__)

_BOOK_COLUMNS = "id, title, author, isbn, status, created_at, updated_at, version"
_LOAN_COLUMNS = ("id, book_id, patron_id, patron_email, patron_name, kind, "
                 "loan_date, return_date, created_at, updated_at")
_PATRON_COLUMNS = "id, name, email, created_at"


class _SQLiteStore:
    """Opens a fresh connection per operation, the same way for every table."""

    def __init__(self, db_file: str, *, initialize: bool = True) -> None:
        self.db_file = db_file
        if initialize:
            initialize_database(db_file)

    def _connect(self) -> sqlite3.Connection:
        try:
            return get_db_connection(self.db_file)
        except sqlite3.Error as e:
            raise StorageError("Could not open the database", details=str(e)) from e


class SQLiteCatalogStore(_SQLiteStore, CatalogStore):

    def add_book(self, book: Book) -> Book:
        data = book.to_dict()
        conn = self._connect()
        try:
            conn.execute(
                f"INSERT INTO books ({_BOOK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (data["id"], data["title"], data["author"], data["isbn"], data["status"],
                 data["created_at"], data["updated_at"], data["version"])
            )
            conn.commit()
            return book.copy()
        except sqlite3.IntegrityError as e:
            raise DuplicateISBNError(f"duplicate ISBN: book with ISBN {book.isbn} already exists") from e
        except sqlite3.Error as e:
            raise StorageError("Failed to add book", details=str(e)) from e
        finally:
            conn.close()

    def get_book(self, book_id: str) -> Optional[Book]:
        return self._fetch_one(f"SELECT {_BOOK_COLUMNS} FROM books WHERE id = ?", (book_id,))

    def get_book_by_isbn(self, isbn: str) -> Optional[Book]:
        return self._fetch_one(f"SELECT {_BOOK_COLUMNS} FROM books WHERE isbn = ?", (isbn,))

    def update_book(self, book: Book, *, expected_version: Optional[int] = None) -> Book:
        data = book.to_dict()
        sql = ("UPDATE books SET title = ?, author = ?, isbn = ?, status = ?, updated_at = ?, "
               "version = version + 1 WHERE id = ?")
        params: list = [data["title"], data["author"], data["isbn"], data["status"], data["updated_at"], data["id"]]
        if expected_version is not None:
            sql += " AND version = ?"
            params.append(expected_version)

        conn = self._connect()
        try:
            cursor = conn.execute(sql, params)
            if cursor.rowcount == 0:
                conn.rollback()
                row = conn.execute("SELECT version FROM books WHERE id = ?", (book.id,)).fetchone()
                if row is None:
                    raise BookNotFoundError(f"book not found with id: {book.id}")
                raise ConcurrentUpdateError(
                    f"book {book.id} was modified concurrently "
                    f"(expected version {expected_version}, found {row['version']})"
                )
            conn.commit()
            row = conn.execute(f"SELECT {_BOOK_COLUMNS} FROM books WHERE id = ?", (book.id,)).fetchone()
            return Book.from_dict(dict(row))
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e):
                raise DuplicateISBNError(f"duplicate ISBN: book with ISBN {book.isbn} already exists") from e
            raise StorageError("Failed to update book", details=str(e)) from e
        except sqlite3.Error as e:
            raise StorageError("Failed to update book", details=str(e)) from e
        finally:
            conn.close()

    def remove_book(self, book_id: str) -> Optional[Book]:
        conn = self._connect()
        try:
            row = conn.execute(f"SELECT {_BOOK_COLUMNS} FROM books WHERE id = ?", (book_id,)).fetchone()
            if row is None:
                return None
            conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
            conn.commit()
            return Book.from_dict(dict(row))
        except sqlite3.Error as e:
            raise StorageError("Failed to remove book", details=str(e)) from e
        finally:
            conn.close()

    def search_books(self, query: str) -> List[Book]:
        # instr() rather than LIKE: '%' and '_' in the query are literal characters
        needle = query.strip().lower()
        isbn_needle = ISBNValidator.normalize_isbn(query)
        return self._fetch_all(
            f"SELECT {_BOOK_COLUMNS} FROM books "
            "WHERE instr(unicode_lower(title), ?) > 0 OR instr(unicode_lower(author), ?) > 0 "
            "OR instr(unicode_lower(isbn), ?) > 0 OR (? != '' AND instr(isbn, ?) > 0) "
            "ORDER BY unicode_lower(title)",
            (needle, needle, needle, isbn_needle, isbn_needle)
        )

    def list_books(self) -> List[Book]:
        return self._fetch_all(f"SELECT {_BOOK_COLUMNS} FROM books ORDER BY unicode_lower(title)", ())

    def _fetch_one(self, sql: str, params: tuple) -> Optional[Book]:
        conn = self._connect()
        try:
            row = conn.execute(sql, params).fetchone()
            return Book.from_dict(dict(row)) if row else None
        except sqlite3.Error as e:
            raise StorageError("Failed to read book", details=str(e)) from e
        finally:
            conn.close()

    def _fetch_all(self, sql: str, params: tuple) -> List[Book]:
        conn = self._connect()
        try:
            return [Book.from_dict(dict(row)) for row in conn.execute(sql, params).fetchall()]
        except sqlite3.Error as e:
            raise StorageError("Failed to read books", details=str(e)) from e
        finally:
            conn.close()


class SQLiteLedgerStore(_SQLiteStore, LedgerStore):

    def add_loan(self, loan: Loan) -> Loan:
        data = loan.to_dict()
        conn = self._connect()
        try:
            conn.execute(
                f"INSERT INTO loans ({_LOAN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (data["id"], data["book_id"], data["patron_id"], data["patron_email"], data["patron_name"],
                 data["kind"], data["loan_date"], data["return_date"], data["created_at"], data["updated_at"])
            )
            conn.commit()
            return loan.copy()
        except sqlite3.Error as e:
            raise StorageError("Failed to create loan record", details=str(e)) from e
        finally:
            conn.close()

    def update_loan(self, loan: Loan) -> Loan:
        conn = self._connect()
        try:
            cursor = conn.execute(
                "UPDATE loans SET return_date = ?, updated_at = ? WHERE id = ?",
                (format_timestamp(loan.return_date), format_timestamp(loan.updated_at), loan.id)
            )
            if cursor.rowcount == 0:
                raise StorageError(f"loan {loan.id} not found")
            conn.commit()
            return loan.copy()
        except sqlite3.Error as e:
            raise StorageError("Failed to update loan record", details=str(e)) from e
        finally:
            conn.close()

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        loans = self._fetch_all(f"SELECT {_LOAN_COLUMNS} FROM loans WHERE id = ?", (loan_id,))
        return loans[0] if loans else None

    def find_active_loan(self, book_id: str, patron_id: str) -> Optional[Loan]:
        loans = self._fetch_all(
            f"SELECT {_LOAN_COLUMNS} FROM loans "
            "WHERE book_id = ? AND patron_id = ? AND return_date IS NULL "
            "ORDER BY loan_date DESC LIMIT 1",
            (book_id, patron_id)
        )
        return loans[0] if loans else None

    def list_loans(self, *, book_id: Optional[str] = None, patron_id: Optional[str] = None) -> List[Loan]:
        clauses = []
        params = []
        if book_id is not None:
            clauses.append("book_id = ?")
            params.append(book_id)
        if patron_id is not None:
            clauses.append("patron_id = ?")
            params.append(patron_id)
        where = f"WHERE {' AND '.join(clauses)} " if clauses else ""
        return self._fetch_all(f"SELECT {_LOAN_COLUMNS} FROM loans {where}ORDER BY loan_date DESC", tuple(params))

    def _fetch_all(self, sql: str, params: tuple) -> List[Loan]:
        conn = self._connect()
        try:
            return [Loan.from_dict(dict(row)) for row in conn.execute(sql, params).fetchall()]
        except sqlite3.Error as e:
            raise StorageError("Failed to read loans", details=str(e)) from e
        finally:
            conn.close()


class SQLitePatronDirectory(_SQLiteStore, PatronDirectory):

    def add_patron(self, patron: Patron) -> Patron:
        data = patron.to_dict()
        conn = self._connect()
        try:
            conn.execute(
                f"INSERT INTO patrons ({_PATRON_COLUMNS}) VALUES (?, ?, ?, ?)",
                (data["id"], data["name"], data["email"], data["created_at"])
            )
            conn.commit()
            return patron
        except sqlite3.IntegrityError as e:
            raise EmailAlreadyRegisteredError("email already registered") from e
        except sqlite3.Error as e:
            raise StorageError("Failed to add patron", details=str(e)) from e
        finally:
            conn.close()

    def get_patron(self, patron_id: str) -> Optional[Patron]:
        patrons = self._fetch_all(f"SELECT {_PATRON_COLUMNS} FROM patrons WHERE id = ?", (patron_id,))
        return patrons[0] if patrons else None

    def get_patron_by_email(self, email: str) -> Optional[Patron]:
        patrons = self._fetch_all(f"SELECT {_PATRON_COLUMNS} FROM patrons WHERE email = ?", (email,))
        return patrons[0] if patrons else None

    def find_patrons_by_name(self, name: str) -> List[Patron]:
        # SQL lower() only folds ASCII, so the comparison happens in Python
        candidates = self._fetch_all(f"SELECT {_PATRON_COLUMNS} FROM patrons ORDER BY name", ())
        return [p for p in candidates if NameValidator.names_match(p.name, name)]

    def _fetch_all(self, sql: str, params: tuple) -> List[Patron]:
        conn = self._connect()
        try:
            return [Patron.from_dict(dict(row)) for row in conn.execute(sql, params).fetchall()]
        except sqlite3.Error as e:
            raise StorageError("Failed to read patrons", details=str(e)) from e
        finally:
            conn.close()
