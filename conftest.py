import pytest

from library_system.config import Settings
from library_system.services import build_services
from library_system.stores import Stores, build_stores


@pytest.fixture
def memory_settings():
    return Settings(storage_backend="memory")


@pytest.fixture
def db_file(tmp_path, request):
    # Unique database file per test
    return str(tmp_path / f"test_{request.node.name}.db")


@pytest.fixture
def sqlite_settings(db_file):
    return Settings(storage_backend="sqlite", database_file=db_file)


@pytest.fixture
def stores(memory_settings) -> Stores:
    return build_stores(memory_settings)


@pytest.fixture
def services(memory_settings, stores):
    return build_services(memory_settings, stores)


@pytest.fixture
def catalog(services):
    return services.catalog


@pytest.fixture
def patrons(services):
    return services.patrons


@pytest.fixture
def lending(services):
    return services.lending


@pytest.fixture
def book(catalog):
    return catalog.add_book("Harry Potter and the Philosopher's Stone", "J.K. Rowling", "0-7475-3269-9")


@pytest.fixture
def jane(patrons):
    return patrons.register("Jane Doe", "jane@x.com")
