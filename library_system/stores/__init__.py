"""Library System - Storage Package

Store interfaces and their in-memory and SQLite implementations.
"""

from typing import NamedTuple, Optional

from library_system.config import Settings, settings as default_settings
from library_system.stores.base import CatalogStore, LedgerStore, PatronDirectory
from library_system.stores.memory import InMemoryCatalogStore, InMemoryLedgerStore, InMemoryPatronDirectory
from library_system.stores.sqlite import SQLiteCatalogStore, SQLiteLedgerStore, SQLitePatronDirectory


class Stores(NamedTuple):
    catalog: CatalogStore
    ledger: LedgerStore
    patrons: PatronDirectory


def build_stores(config: Optional[Settings] = None) -> Stores:
    """Construct the three stores for the configured backend."""
    config = config or default_settings
    backend = config.storage_backend.lower()
    if backend == "memory":
        return Stores(InMemoryCatalogStore(), InMemoryLedgerStore(), InMemoryPatronDirectory())
    if backend == "sqlite":
        return Stores(
            SQLiteCatalogStore(config.database_file),
            SQLiteLedgerStore(config.database_file, initialize=False),
            SQLitePatronDirectory(config.database_file, initialize=False),
        )
    raise ValueError(f"Unknown storage backend: {config.storage_backend!r}. Use 'sqlite' or 'memory'.")


__all__ = [
    "CatalogStore",
    "LedgerStore",
    "PatronDirectory",
    "InMemoryCatalogStore",
    "InMemoryLedgerStore",
    "InMemoryPatronDirectory",
    "SQLiteCatalogStore",
    "SQLiteLedgerStore",
    "SQLitePatronDirectory",
    "Stores",
    "build_stores",
]
