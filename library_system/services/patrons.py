import logging
from typing import Callable, Optional

from library_system.clock import utcnow
from library_system.errors import EmailAlreadyRegisteredError, PatronNotFoundError, ValidationError
from library_system.patron import Patron
from library_system.stores.base import PatronDirectory
from library_system.validators import EmailValidator, NameValidator

logger = logging.getLogger(__name__)


class PatronService:
    """Patron registration and lookup."""

    def __init__(self, directory: PatronDirectory, clock: Optional[Callable] = None) -> None:
        self.directory = directory
        self._now = clock or utcnow

    def register(self, name: str, email: str) -> Patron:
        normalized_name = NameValidator.normalize_name(name)
        if not NameValidator.is_valid_name(normalized_name):
            raise ValidationError("Invalid Name")

        normalized_email = EmailValidator.normalize_email(email)
        if not EmailValidator.is_valid_email(normalized_email):
            raise ValidationError("Invalid Email Address")

        if self.directory.get_patron_by_email(normalized_email) is not None:
            raise EmailAlreadyRegisteredError("email already registered")

        patron = Patron(name=normalized_name, email=normalized_email, created_at=self._now())
        stored = self.directory.add_patron(patron)
        logger.info(f"Patron registered: {stored}")
        return stored

    def get_patron(self, patron_id: str) -> Patron:
        patron = self.directory.get_patron(patron_id)
        if patron is None:
            raise PatronNotFoundError(f"patron not found with id: {patron_id}")
        return patron

    def get_patron_by_email(self, email: str) -> Patron:
        normalized = EmailValidator.normalize_email(email)
        patron = self.directory.get_patron_by_email(normalized)
        if patron is None:
            raise PatronNotFoundError(f"no patron registered with email {normalized}")
        return patron
