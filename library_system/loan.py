from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from library_system.book import BookStatus
from library_system.clock import format_timestamp, parse_timestamp, utcnow


class LoanKind(str, Enum):
    LOAN = "loan"
    RESERVATION = "reservation"


class Loan:
    """A ledger entry for a checkout or a reservation.

    A loan is active while ``return_date`` is None. Patron email and name are
    denormalized copies taken at creation time for response convenience.
    """

    def __init__(self, book_id: str, patron_id: str, patron_email: str, patron_name: str,
                 kind: LoanKind | str = LoanKind.LOAN,
                 id: str | None = None,
                 loan_date: datetime | None = None,
                 return_date: datetime | None = None,
                 created_at: datetime | None = None,
                 updated_at: datetime | None = None) -> None:
        now = utcnow()
        self.id = id or str(uuid.uuid4())
        self.book_id = book_id
        self.patron_id = patron_id
        self.patron_email = patron_email
        self.patron_name = patron_name
        self.kind = LoanKind(kind)
        self.loan_date = loan_date or now
        self.return_date = return_date
        self.created_at = created_at or self.loan_date
        self.updated_at = updated_at or self.created_at

    @property
    def is_active(self) -> bool:
        return self.return_date is None

    def __repr__(self) -> str:
        return (f"Loan(id={self.id!r}, book_id={self.book_id!r}, patron_id={self.patron_id!r}, "
                f"kind={self.kind.value!r}, active={self.is_active})")

    def copy(self) -> Loan:
        return Loan.from_dict(self.to_dict())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "patron_id": self.patron_id,
            "patron_email": self.patron_email,
            "patron_name": self.patron_name,
            "kind": self.kind.value,
            "loan_date": format_timestamp(self.loan_date),
            "return_date": format_timestamp(self.return_date),
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }

    @staticmethod
    def from_dict(data: dict) -> Loan:
        return Loan(
            id=data["id"],
            book_id=data["book_id"],
            patron_id=data["patron_id"],
            patron_email=data["patron_email"],
            patron_name=data["patron_name"],
            kind=data.get("kind") or LoanKind.LOAN,
            loan_date=parse_timestamp(data.get("loan_date")),
            return_date=parse_timestamp(data.get("return_date")),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
        )


class LoanRecord:
    """Outcome of a lending action: the loan plus the book status it produced."""

    def __init__(self, loan: Loan, status: BookStatus) -> None:
        self.id = loan.id
        self.book_id = loan.book_id
        self.patron_id = loan.patron_id
        self.patron_email = loan.patron_email
        self.patron_name = loan.patron_name
        self.kind = loan.kind
        self.status = status
        self.loan_date = loan.loan_date
        self.return_date = loan.return_date

    def __repr__(self) -> str:
        return f"LoanRecord(id={self.id!r}, book_id={self.book_id!r}, status={self.status.value!r})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "patron_id": self.patron_id,
            "patron_email": self.patron_email,
            "patron_name": self.patron_name,
            "kind": self.kind.value,
            "status": self.status.value,
            "loan_date": self.loan_date,
            "return_date": self.return_date,
        }
