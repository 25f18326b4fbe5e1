import logging
from typing import Callable, List, Optional

from library_system.book import Book, BookStatus
from library_system.clock import utcnow
from library_system.errors import BookNotFoundError, DuplicateISBNError, ValidationError
from library_system.stores.base import CatalogStore
from library_system.validators import ISBNValidator, TextValidator

logger = logging.getLogger(__name__)


class CatalogService:
    """Manages the book catalog: validation, duplicate-ISBN checks and CRUD."""

    def __init__(self, store: CatalogStore, clock: Optional[Callable] = None) -> None:
        self.store = store
        self._now = clock or utcnow

    # ------------------------- Core operations ------------------------- #
    def add_book(self, title: str, author: str, isbn: str, status: Optional[str] = None) -> Book:
        """Validate and add a new book. New books always start out available."""
        title = TextValidator.require(title, "title")
        author = TextValidator.require(author, "author")
        isbn = ISBNValidator.ensure_valid(isbn)

        initial = BookStatus.parse(status) if status else BookStatus.AVAILABLE
        if initial is not BookStatus.AVAILABLE:
            raise ValidationError(f"New books must start as available, not {initial.value}")

        if self.store.get_book_by_isbn(isbn) is not None:
            raise DuplicateISBNError(f"duplicate ISBN: book with ISBN {isbn} already exists")

        now = self._now()
        book = Book(title=title, author=author, isbn=isbn, status=initial, created_at=now, updated_at=now)
        stored = self.store.add_book(book)
        logger.info(f"Book added: {stored}")
        return stored

    def update_book(self, *, book_id: Optional[str] = None, isbn: Optional[str] = None,
                    title: Optional[str] = None, author: Optional[str] = None,
                    status: Optional[str] = None) -> Book:
        """Update a book looked up by id, or by ISBN when no id is given.

        Blank title/author keep the stored values. On the ISBN-keyed path the
        ISBN is the lookup key and cannot change.
        """
        if book_id:
            existing = self.store.get_book(book_id)
            if existing is None:
                raise BookNotFoundError(f"book not found with id: {book_id}")
        elif isbn and isbn.strip():
            normalized = ISBNValidator.ensure_valid(isbn)
            existing = self.store.get_book_by_isbn(normalized)
            if existing is None:
                raise BookNotFoundError(f"book with ISBN {normalized} not found")
            isbn = None
        else:
            raise ValidationError("book id or ISBN is required")

        book = existing.copy()
        if isbn and isbn.strip():
            new_isbn = ISBNValidator.ensure_valid(isbn)
            if new_isbn != existing.isbn:
                owner = self.store.get_book_by_isbn(new_isbn)
                if owner is not None and owner.id != existing.id:
                    raise DuplicateISBNError(f"duplicate ISBN: book with ISBN {new_isbn} already exists")
                book.isbn = new_isbn

        book.title = TextValidator.clean(title) or existing.title
        book.author = TextValidator.clean(author) or existing.author
        if status is not None and status.strip():
            book.status = BookStatus.parse(status)
        book.updated_at = self._now()

        stored = self.store.update_book(book, expected_version=existing.version)
        logger.info(f"Book updated: {stored}")
        return stored

    def remove_book(self, book_id: str) -> Book:
        removed = self.store.remove_book(book_id)
        if removed is None:
            raise BookNotFoundError(f"book not found with id: {book_id}")
        logger.info(f"Book removed: {removed}")
        return removed

    def get_book_by_id(self, book_id: str) -> Book:
        book = self.store.get_book(book_id)
        if book is None:
            raise BookNotFoundError(f"book not found with id: {book_id}")
        return book

    def search_books(self, query: str) -> List[Book]:
        """Search by title, author or ISBN (case-insensitive substring)."""
        if query is None or not query.strip():
            raise ValidationError("search query cannot be empty")
        return self.store.search_books(query.strip())

    def get_all_books(self) -> List[Book]:
        return self.store.list_books()
