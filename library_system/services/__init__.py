"""Library System - Services Package

This package contains the business-rule layer:
- Catalog service (book CRUD and validation)
- Patron service (registration and lookup)
- Lending coordinator (checkout / return / reserve workflows)
"""

from typing import NamedTuple, Optional

from library_system.config import Settings
from library_system.services.catalog import CatalogService
from library_system.services.lending import LendingCoordinator
from library_system.services.patrons import PatronService
from library_system.stores import Stores, build_stores


class Services(NamedTuple):
    catalog: CatalogService
    patrons: PatronService
    lending: LendingCoordinator


def build_services(config: Optional[Settings] = None, stores: Optional[Stores] = None) -> Services:
    """Wire the services to their stores. Called once at startup by the API and the CLI."""
    stores = stores or build_stores(config)
    return Services(
        catalog=CatalogService(stores.catalog),
        patrons=PatronService(stores.patrons),
        lending=LendingCoordinator(stores.catalog, stores.ledger, stores.patrons),
    )


__all__ = ["CatalogService", "PatronService", "LendingCoordinator", "Services", "build_services"]
