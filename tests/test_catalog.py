import pytest

from library_system.book import BookStatus
from library_system.errors import BookNotFoundError, DuplicateISBNError, ValidationError


def test_add_list_and_find(catalog):
    assert catalog.get_all_books() == []

    book = catalog.add_book("Ulysses", "James Joyce", "9780199535675")

    assert catalog.get_book_by_id(book.id).title == "Ulysses"
    assert len(catalog.get_all_books()) == 1
    assert book.status is BookStatus.AVAILABLE
    assert book.version == 1


def test_add_normalizes_isbn(catalog):
    book = catalog.add_book("Harry Potter", "J.K. Rowling", "0-7475-3269-9")
    assert book.isbn == "0747532699"


def test_add_duplicate_isbn(catalog):
    catalog.add_book("Test Book", "Test Author", "1234567890")

    with pytest.raises(DuplicateISBNError, match="duplicate ISBN"):
        catalog.add_book("Other Book", "Other Author", "123-456-789-0")

    assert len(catalog.get_all_books()) == 1


@pytest.mark.parametrize("title, author, isbn, message", [
    ("", "Author", "1234567890", "title is required"),
    ("Title", "  ", "1234567890", "author is required"),
    ("Title", "Author", "", "ISBN is required"),
    ("Title", "Author", "12-34", "Invalid ISBN format"),
])
def test_add_rejects_invalid_input(catalog, title, author, isbn, message):
    with pytest.raises(ValidationError, match=message):
        catalog.add_book(title, author, isbn)


def test_add_only_accepts_available_status(catalog):
    with pytest.raises(ValidationError, match="must start as available"):
        catalog.add_book("Dune", "Frank Herbert", "9780441172719", status="borrowed")
    with pytest.raises(ValidationError, match="Invalid status"):
        catalog.add_book("Dune", "Frank Herbert", "9780441172719", status="lost")


def test_update_by_id_is_partial(catalog, book):
    updated = catalog.update_book(book_id=book.id, title="Philosopher's Stone")

    assert updated.title == "Philosopher's Stone"
    assert updated.author == book.author
    assert updated.isbn == book.isbn
    assert updated.version == book.version + 1


def test_update_by_id_can_change_isbn_and_status(catalog, book):
    updated = catalog.update_book(book_id=book.id, isbn="978-0-7475-3269-9", status="RESERVED")

    assert updated.isbn == "9780747532699"
    assert updated.status is BookStatus.RESERVED


def test_update_by_isbn_keeps_isbn(catalog, book):
    updated = catalog.update_book(isbn="0747532699", author="Joanne Rowling")

    assert updated.id == book.id
    assert updated.isbn == "0747532699"
    assert updated.author == "Joanne Rowling"


def test_update_errors(catalog, book):
    other = catalog.add_book("Dune", "Frank Herbert", "9780441172719")

    with pytest.raises(ValidationError, match="book id or ISBN is required"):
        catalog.update_book(title="Nothing")
    with pytest.raises(BookNotFoundError):
        catalog.update_book(book_id="missing", title="x")
    with pytest.raises(BookNotFoundError):
        catalog.update_book(isbn="9999999999", title="x")
    with pytest.raises(DuplicateISBNError):
        catalog.update_book(book_id=other.id, isbn=book.isbn)
    with pytest.raises(ValidationError, match="Invalid status"):
        catalog.update_book(book_id=book.id, status="lost")


def test_remove(catalog, book):
    removed = catalog.remove_book(book.id)

    assert removed.id == book.id
    assert catalog.get_all_books() == []
    with pytest.raises(BookNotFoundError):
        catalog.remove_book(book.id)
    with pytest.raises(BookNotFoundError):
        catalog.get_book_by_id(book.id)


def test_search(catalog):
    catalog.add_book("Dune", "Frank Herbert", "9780441172719")
    catalog.add_book("The Hobbit", "J.R.R. Tolkien", "9780547928227")
    catalog.add_book("Children of Dune", "Frank Herbert", "9780593098240")

    assert [b.title for b in catalog.search_books("dune")] == ["Children of Dune", "Dune"]
    assert [b.title for b in catalog.search_books("TOLKIEN")] == ["The Hobbit"]
    assert [b.title for b in catalog.search_books("978-0547")] == ["The Hobbit"]
    assert catalog.search_books("nothing matches this") == []


def test_search_rejects_blank_query(catalog):
    with pytest.raises(ValidationError, match="search query cannot be empty"):
        catalog.search_books("   ")


def test_list_is_sorted_by_title(catalog):
    catalog.add_book("zebra tales", "A", "1111111111")
    catalog.add_book("Apple Stories", "B", "2222222222")

    assert [b.title for b in catalog.get_all_books()] == ["Apple Stories", "zebra tales"]
