from datetime import timedelta

import pytest

from library_system.book import BookStatus
from library_system.clock import utcnow
from library_system.errors import (
    AlreadyBorrowedError,
    BookNotAvailableError,
    BookNotFoundError,
    InconsistentStateError,
    InvalidIdentifierError,
    LoanNotFoundError,
    NoActiveLoanError,
    PatronNotFoundError,
    StorageError,
)
from library_system.loan import LoanKind
from library_system.services import LendingCoordinator, build_services
from library_system.stores import InMemoryCatalogStore, InMemoryLedgerStore, InMemoryPatronDirectory, Stores


class FailingLedger(InMemoryLedgerStore):
    """Ledger whose writes can be switched off to exercise compensation."""

    def __init__(self, fail_add=False, fail_update=False, on_failure=None):
        super().__init__()
        self.fail_add = fail_add
        self.fail_update = fail_update
        self.on_failure = on_failure

    def _fail(self, what):
        if self.on_failure:
            self.on_failure()
        raise StorageError(f"disk full while trying to {what}")

    def add_loan(self, loan):
        if self.fail_add:
            self._fail("add loan")
        return super().add_loan(loan)

    def update_loan(self, loan):
        if self.fail_update:
            self._fail("update loan")
        return super().update_loan(loan)


class BrokenCatalog(InMemoryCatalogStore):
    """Catalog that refuses every write once `broken` is set."""

    broken = False

    def update_book(self, book, *, expected_version=None):
        if self.broken:
            raise StorageError("catalog is read-only")
        return super().update_book(book, expected_version=expected_version)


class RacingCatalog(InMemoryCatalogStore):
    """Runs `before_write` once, right before the next status write."""

    before_write = None

    def update_book(self, book, *, expected_version=None):
        hook, self.before_write = self.before_write, None
        if hook:
            hook()
        return super().update_book(book, expected_version=expected_version)


def _services_with(catalog=None, ledger=None):
    stores = Stores(catalog or InMemoryCatalogStore(), ledger or InMemoryLedgerStore(), InMemoryPatronDirectory())
    return build_services(stores=stores)


def _seed(services):
    book = services.catalog.add_book("Dune", "Frank Herbert", "9780441172719")
    services.patrons.register("Jane Doe", "jane@x.com")
    services.patrons.register("Bob Stone", "bob@x.com")
    return book


def test_checkout_and_return_round_trip(catalog, lending, book, jane):
    record = lending.check_out(book.id, "jane@x.com", "Jane Doe")

    assert record.status is BookStatus.BORROWED
    assert record.kind is LoanKind.LOAN
    assert record.patron_id == jane.id
    assert record.return_date is None
    assert catalog.get_book_by_id(book.id).status is BookStatus.BORROWED

    returned = lending.return_book(book.id, "jane@x.com")

    assert returned.id == record.id
    assert returned.status is BookStatus.AVAILABLE
    assert returned.return_date is not None
    assert catalog.get_book_by_id(book.id).status is BookStatus.AVAILABLE


def test_email_lookup_is_case_insensitive(lending, book, jane):
    record = lending.check_out(book.id, "  JANE@X.COM ")
    assert record.patron_email == "jane@x.com"
    assert lending.return_book(book.id, "Jane@x.com").status is BookStatus.AVAILABLE


def test_double_return_fails(lending, book, jane):
    lending.check_out(book.id, "jane@x.com")
    lending.return_book(book.id, "jane@x.com")

    with pytest.raises(NoActiveLoanError):
        lending.return_book(book.id, "jane@x.com")


def test_checkout_unavailable_book(lending, patrons, book, jane):
    patrons.register("Bob Stone", "bob@x.com")
    lending.check_out(book.id, "jane@x.com")

    with pytest.raises(BookNotAvailableError, match="currently borrowed"):
        lending.check_out(book.id, "bob@x.com")
    with pytest.raises(BookNotAvailableError, match="currently borrowed and cannot be reserved"):
        lending.reserve_book(book.id, "bob@x.com")


def test_checkout_twice_by_same_patron(lending, book, jane):
    lending.check_out(book.id, "jane@x.com")

    # The book is already borrowed, so availability is checked first
    with pytest.raises(BookNotAvailableError):
        lending.check_out(book.id, "jane@x.com")


def test_active_loan_blocks_new_checkout_when_status_was_reset(catalog, lending, book, jane):
    lending.check_out(book.id, "jane@x.com")
    catalog.update_book(book_id=book.id, status="available")

    with pytest.raises(AlreadyBorrowedError):
        lending.check_out(book.id, "jane@x.com")


def test_reservation_then_return_releases_book(catalog, lending, book, jane):
    record = lending.reserve_book(book.id, "jane@x.com")

    assert record.kind is LoanKind.RESERVATION
    assert record.status is BookStatus.RESERVED
    assert catalog.get_book_by_id(book.id).status is BookStatus.RESERVED

    with pytest.raises(BookNotAvailableError, match="currently reserved"):
        lending.check_out(book.id, "jane@x.com")

    released = lending.return_book(book.id, "jane@x.com")
    assert released.kind is LoanKind.RESERVATION
    assert released.status is BookStatus.AVAILABLE
    assert catalog.get_book_by_id(book.id).status is BookStatus.AVAILABLE


def test_identification_errors(lending, book, jane):
    with pytest.raises(InvalidIdentifierError):
        lending.check_out(book.id, "not-an-email")
    with pytest.raises(PatronNotFoundError, match="User not found"):
        lending.check_out(book.id, "ghost@x.com")
    with pytest.raises(InvalidIdentifierError, match="Invalid User Name"):
        lending.check_out(book.id, "jane@x.com", "John Doe")
    with pytest.raises(BookNotFoundError):
        lending.check_out("missing-book", "jane@x.com")


def test_return_without_loan(lending, book, jane):
    with pytest.raises(NoActiveLoanError):
        lending.return_book(book.id, "jane@x.com")


def test_loans_for_patron_newest_first(stores, catalog, book, jane):
    start = utcnow()
    ticks = iter(start + timedelta(minutes=n) for n in range(10))
    lending = LendingCoordinator(stores.catalog, stores.ledger, stores.patrons, clock=lambda: next(ticks))
    other = catalog.add_book("Dune", "Frank Herbert", "9780441172719")
    first = lending.check_out(book.id, "jane@x.com")
    second = lending.reserve_book(other.id, "jane@x.com")

    loans = lending.loans_for_patron("jane@x.com")

    assert [loan.id for loan in loans] == [second.id, first.id]
    assert all(loan.is_active for loan in loans)


def test_failed_ledger_write_is_compensated():
    ledger = FailingLedger(fail_add=True)
    services = _services_with(ledger=ledger)
    book = _seed(services)

    with pytest.raises(StorageError, match="Failed to create loan record"):
        services.lending.check_out(book.id, "jane@x.com")

    assert services.catalog.get_book_by_id(book.id).status is BookStatus.AVAILABLE
    assert ledger.list_loans() == []


def test_failed_return_restores_previous_status():
    ledger = FailingLedger()
    services = _services_with(ledger=ledger)
    book = _seed(services)
    services.lending.reserve_book(book.id, "jane@x.com")

    ledger.fail_update = True
    with pytest.raises(StorageError, match="Failed to update loan record"):
        services.lending.return_book(book.id, "jane@x.com")

    assert services.catalog.get_book_by_id(book.id).status is BookStatus.RESERVED
    assert ledger.find_active_loan(book.id, services.patrons.get_patron_by_email("jane@x.com").id) is not None


def test_failed_compensation_reports_inconsistent_state():
    catalog = BrokenCatalog()

    def break_catalog():
        catalog.broken = True

    services = _services_with(catalog=catalog, ledger=FailingLedger(fail_add=True, on_failure=break_catalog))
    book = _seed(services)

    with pytest.raises(InconsistentStateError) as excinfo:
        services.lending.check_out(book.id, "jane@x.com")

    assert "disk full" in excinfo.value.details
    assert services.catalog.get_book_by_id(book.id).status is BookStatus.BORROWED


def test_lost_update_race_has_single_winner():
    catalog = RacingCatalog()
    services = _services_with(catalog=catalog)
    book = _seed(services)

    # Bob checks the book out between Jane's availability check and her status write
    catalog.before_write = lambda: services.lending.check_out(book.id, "bob@x.com")

    with pytest.raises(BookNotAvailableError) as excinfo:
        services.lending.check_out(book.id, "jane@x.com")

    assert excinfo.value.details == "the book was modified concurrently"
    loans = services.lending.ledger.list_loans(book_id=book.id)
    assert len(loans) == 1
    assert loans[0].patron_email == "bob@x.com"
    assert services.catalog.get_book_by_id(book.id).status is BookStatus.BORROWED


def test_end_to_end_return_date_is_now(catalog, patrons, lending):
    book = catalog.add_book("Harry Potter", "J.K. Rowling", "0-7475-3269-9")
    patrons.register("Jane", "jane@x.com")

    lending.check_out(book.id, "jane@x.com", "Jane")
    returned = lending.return_book(book.id, "jane@x.com", "Jane")

    assert returned.status is BookStatus.AVAILABLE
    assert abs(utcnow() - returned.return_date) < timedelta(seconds=1)
    assert lending.check_out(book.id, "jane@x.com").status is BookStatus.BORROWED


def test_injected_clock_is_used(stores):
    fixed = utcnow() - timedelta(days=3)
    services = build_services(stores=stores)
    lending = LendingCoordinator(stores.catalog, stores.ledger, stores.patrons, clock=lambda: fixed)
    book = services.catalog.add_book("Dune", "Frank Herbert", "9780441172719")
    services.patrons.register("Jane Doe", "jane@x.com")

    record = lending.check_out(book.id, "jane@x.com")

    assert record.loan_date == fixed


def test_failed_reservation_is_compensated():
    ledger = FailingLedger(fail_add=True)
    services = _services_with(ledger=ledger)
    book = _seed(services)

    with pytest.raises(StorageError, match="Failed to create reservation record"):
        services.lending.reserve_book(book.id, "jane@x.com")

    assert services.catalog.get_book_by_id(book.id).status is BookStatus.AVAILABLE
    # The restored book can still be checked out once the ledger recovers
    ledger.fail_add = False
    assert services.lending.check_out(book.id, "bob@x.com").status is BookStatus.BORROWED


def test_reserved_book_cannot_be_checked_out_by_another_patron(catalog, lending, patrons, book, jane):
    patrons.register("Bob Stone", "bob@x.com")
    lending.reserve_book(book.id, "jane@x.com")

    with pytest.raises(BookNotAvailableError, match="currently reserved and cannot be checked out"):
        lending.check_out(book.id, "bob@x.com")

    assert catalog.get_book_by_id(book.id).status is BookStatus.RESERVED
    bob = patrons.get_patron_by_email("bob@x.com")
    assert lending.ledger.find_active_loan(book.id, bob.id) is None


def test_get_loan(lending, book, jane):
    record = lending.check_out(book.id, "jane@x.com")

    assert lending.get_loan(record.id).book_id == book.id
    with pytest.raises(LoanNotFoundError):
        lending.get_loan("missing")
