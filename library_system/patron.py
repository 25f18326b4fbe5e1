from __future__ import annotations

import uuid
from datetime import datetime

from library_system.clock import format_timestamp, parse_timestamp, utcnow


class Patron:
    """A registered library user. Immutable once registered."""

    def __init__(self, name: str, email: str, id: str | None = None,
                 created_at: datetime | None = None) -> None:
        self.id = id or str(uuid.uuid4())
        self.name = name
        self.email = email
        self.created_at = created_at or utcnow()

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>"

    def __repr__(self) -> str:
        return f"Patron(id={self.id!r}, email={self.email!r})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "created_at": format_timestamp(self.created_at),
        }

    @staticmethod
    def from_dict(data: dict) -> Patron:
        return Patron(
            id=data["id"],
            name=data["name"],
            email=data["email"],
            created_at=parse_timestamp(data.get("created_at")),
        )
