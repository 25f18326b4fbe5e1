from __future__ import annotations

import json
import os
from typing import Any, Dict, Iterable, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from library_system.book import Book
from library_system.loan import Loan, LoanRecord
from library_system.patron import Patron

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _json_default(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return str(value)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, default=_json_default))


def print_books(books: List[Book], title: str = "Books") -> None:
    """Print books in the current output mode.
    - plain: 'id - ISBN - Title by Author [status]' lines, or 'No books in library.'
    - json: JSON array of book objects
    - rich: Rich table
    """
    mode = get_output_mode()

    if not books:
        print("No books in library.")
        return

    if mode == "json":
        _print_json([b.to_dict() for b in books])
    elif mode == "rich":
        table = Table(title=f"📚 {title}", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("ISBN", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Status", style="green")
        for b in books:
            table.add_row(b.id, b.isbn, b.title, b.author, b.status.value)
        _console.print(table)
    else:
        for b in books:
            print(f"{b.id} - {b.isbn} - {b.title} by {b.author} [{b.status.value}]")


def print_book(book: Book) -> None:
    mode = get_output_mode()
    if mode == "json":
        _print_json(book.to_dict())
    elif mode == "rich":
        content = (f"[bold]Title:[/] {book.title}\n[bold]Author:[/] {book.author}\n"
                   f"[bold]ISBN:[/] {book.isbn}\n[bold]Status:[/] {book.status.value}")
        _console.print(Panel.fit(content, title=f"📖 {book.id}", border_style="blue"))
    else:
        print(f"ID: {book.id}")
        print(f"Title: {book.title}")
        print(f"Author: {book.author}")
        print(f"ISBN: {book.isbn}")
        print(f"Status: {book.status.value}")


def print_patron(patron: Patron) -> None:
    if get_output_mode() == "json":
        _print_json(patron.to_dict())
    else:
        print(f"Registered: {patron.name} <{patron.email}> (id {patron.id})")


def print_loan_record(record: LoanRecord) -> None:
    mode = get_output_mode()
    if mode == "json":
        _print_json(record.to_dict())
        return
    line = f"{record.kind.value} {record.id}: book {record.book_id} is now {record.status.value}"
    if record.return_date is not None:
        line += f" (returned {record.return_date.isoformat()})"
    if mode == "rich":
        _console.print(Panel.fit(line, title=f"👤 {record.patron_email}", border_style="green"))
    else:
        print(line)


def print_loans(loans: Iterable[Loan]) -> None:
    loans = list(loans)
    mode = get_output_mode()
    if not loans:
        print("No loans found.")
        return
    if mode == "json":
        _print_json([loan.to_dict() for loan in loans])
    elif mode == "rich":
        table = Table(title="📒 Loans", header_style="bold cyan")
        for column in ("ID", "Book", "Kind", "Loaned", "Returned"):
            table.add_column(column)
        for loan in loans:
            returned = loan.return_date.isoformat() if loan.return_date else "-"
            table.add_row(loan.id, loan.book_id, loan.kind.value, loan.loan_date.isoformat(), returned)
        _console.print(table)
    else:
        for loan in loans:
            state = "active" if loan.is_active else f"returned {loan.return_date.isoformat()}"
            print(f"{loan.id} - {loan.kind.value} of {loan.book_id} since {loan.loan_date.isoformat()} ({state})")


def print_error(message: str, details: Dict[str, Any] | None = None) -> None:
    if get_output_mode() == "json":
        _print_json({"error": message, **(details or {})})
    else:
        print(f"Error: {message}")
