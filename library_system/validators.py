import re
from typing import Optional

from library_system.errors import ValidationError


class ISBNValidator:
    """ISBN-10 / ISBN-13 format validator.

    Only the shape is checked: hyphens and spaces are ignored, ISBN-10 may end
    with 'X' or 'x', ISBN-13 is all digits. Checksums are not verified.
    """

    _ISBN10 = re.compile(r"^\d{9}[\dX]$")
    _ISBN13 = re.compile(r"^\d{13}$")

    @staticmethod
    def normalize_isbn(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        s = raw.replace("-", "").replace(" ", "")
        return s.upper()

    @staticmethod
    def is_valid_isbn(isbn: Optional[str]) -> bool:
        if not isbn:
            return False
        s = ISBNValidator.normalize_isbn(isbn)
        return bool(ISBNValidator._ISBN10.match(s) or ISBNValidator._ISBN13.match(s))

    @staticmethod
    def ensure_valid(raw: Optional[str]) -> str:
        """Return the normalized ISBN or raise ValidationError."""
        if raw is None or not raw.strip():
            raise ValidationError("ISBN is required")
        if not ISBNValidator.is_valid_isbn(raw):
            raise ValidationError(f"Invalid ISBN format: {raw!r}")
        return ISBNValidator.normalize_isbn(raw)


class EmailValidator:
    EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

    @staticmethod
    def normalize_email(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        return raw.strip().lower()

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        if not email:
            return False
        return bool(EmailValidator.EMAIL_PATTERN.match(email))


class NameValidator:
    """Display-name rules for patrons."""

    # Letters (any script), spaces, hyphens, apostrophes and periods
    _ALLOWED = re.compile(r"^[^\W\d_]+(?:[ '\-.][^\W\d_]*)*$")

    @staticmethod
    def normalize_name(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        return " ".join(raw.split())

    @staticmethod
    def is_valid_name(name: Optional[str]) -> bool:
        if not name:
            return False
        return bool(NameValidator._ALLOWED.match(name))

    @staticmethod
    def names_match(left: Optional[str], right: Optional[str]) -> bool:
        return NameValidator.normalize_name(left).lower() == NameValidator.normalize_name(right).lower()


class TextValidator:
    """Basic checks for free-text catalog fields."""

    @staticmethod
    def clean(text: Optional[str]) -> str:
        if text is None:
            return ""
        return text.strip()

    @staticmethod
    def require(text: Optional[str], field_name: str) -> str:
        cleaned = TextValidator.clean(text)
        if not cleaned:
            raise ValidationError(f"{field_name} is required")
        return cleaned
