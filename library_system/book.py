from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from library_system.clock import format_timestamp, parse_timestamp, utcnow
from library_system.errors import ValidationError


class BookStatus(str, Enum):
    AVAILABLE = "available"
    BORROWED = "borrowed"
    RESERVED = "reserved"

    @classmethod
    def parse(cls, value: str | BookStatus) -> BookStatus:
        """Parse a status value case-insensitively; raise ValidationError for anything else."""
        if isinstance(value, cls):
            return value
        normalized = (value or "").strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            allowed = ", ".join(s.value for s in cls)
            raise ValidationError(f"Invalid status {value!r}. Allowed: {allowed}") from None


class Book:
    """A single book in the catalog."""

    def __init__(self, title: str, author: str, isbn: str,
                 status: BookStatus | str = BookStatus.AVAILABLE,
                 id: str | None = None,
                 created_at: datetime | None = None,
                 updated_at: datetime | None = None,
                 version: int = 1) -> None:
        now = utcnow()
        self.id = id or str(uuid.uuid4())
        self.title = title.strip()
        self.author = author.strip()
        self.isbn = isbn.strip()
        self.status = BookStatus.parse(status)
        self.created_at = created_at or now
        self.updated_at = updated_at or self.created_at
        # Bumped by the store on every successful update; used for compare-and-swap
        self.version = version

    def __str__(self) -> str:
        return f"{self.title} by {self.author} (ISBN: {self.isbn}) [{self.status.value}]"

    def __repr__(self) -> str:
        return f"Book(id={self.id!r}, isbn={self.isbn!r}, status={self.status.value!r}, version={self.version})"

    def copy(self) -> Book:
        return Book.from_dict(self.to_dict())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "status": self.status.value,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
            "version": self.version,
        }

    @staticmethod
    def from_dict(data: dict) -> Book:
        return Book(
            id=data["id"],
            title=data["title"],
            author=data["author"],
            isbn=data["isbn"],
            status=data.get("status") or BookStatus.AVAILABLE,
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
            version=int(data.get("version") or 1),
        )
