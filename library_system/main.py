import dataclasses
import os
import subprocess
import sys
from functools import wraps
from typing import Optional

import typer

from library_system.config import Settings, configure_logging, settings
from library_system.errors import LibraryError
from library_system.services import Services, build_services
from library_system.stores import build_stores
from library_system.ui_helpers import (
    print_book,
    print_books,
    print_error,
    print_loan_record,
    print_loans,
    print_patron,
    set_output_mode,
)

app = typer.Typer(help="Library management CLI")


class CLIState:
    """Per-invocation configuration; services are built on first use."""

    def __init__(self, config: Settings) -> None:
        self.config = config
        self._services: Optional[Services] = None

    @property
    def services(self) -> Services:
        if self._services is None:
            self._services = build_services(self.config)
        return self._services


def _services(ctx: typer.Context) -> Services:
    return ctx.obj.services


def handle_library_errors(func):
    """Print core errors as 'Error: ...' and exit with status 1."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LibraryError as e:
            print_error(e.message, {"kind": e.kind.value})
            raise typer.Exit(code=1)
    return wrapper


@app.callback()
def _global_options(
    ctx: typer.Context,
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database file (default: LIBRARY_DB_FILE or library.db)"),
    storage: Optional[str] = typer.Option(None, "--storage", help="Storage backend: sqlite | memory"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output format: plain | json | rich (default: plain)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show INFO logs"),
):
    """Global options for the CLI (database, output mode)."""
    if output:
        set_output_mode(output)
    configure_logging("INFO" if verbose else "WARNING")
    config = dataclasses.replace(
        settings,
        database_file=db or settings.database_file,
        storage_backend=storage or settings.storage_backend,
    )
    ctx.obj = CLIState(config)


@app.command("init-db")
def cli_init_db(ctx: typer.Context):
    """Create the database schema if it does not exist."""
    config = ctx.obj.config
    build_stores(config)
    print(f"Database ready at {config.database_file}")


# --- Catalog ---
@app.command("list")
@handle_library_errors
def cli_list(ctx: typer.Context):
    """List all books."""
    print_books(_services(ctx).catalog.get_all_books())


@app.command("add")
@handle_library_errors
def cli_add(ctx: typer.Context, title: str, author: str, isbn: str):
    """Add a book (it starts out available)."""
    book = _services(ctx).catalog.add_book(title, author, isbn)
    print(f"Successfully added: {book.title} by {book.author} (id {book.id})")


@app.command("find")
@handle_library_errors
def cli_find(ctx: typer.Context, book_id: str):
    """Show a book by id."""
    print_book(_services(ctx).catalog.get_book_by_id(book_id))


@app.command("search")
@handle_library_errors
def cli_search(ctx: typer.Context, query: str):
    """Search books by title, author or ISBN."""
    print_books(_services(ctx).catalog.search_books(query), title=f"Results for '{query}'")


@app.command("update")
@handle_library_errors
def cli_update(
    ctx: typer.Context,
    book_id: str,
    title: Optional[str] = typer.Option(None, "--title"),
    author: Optional[str] = typer.Option(None, "--author"),
    isbn: Optional[str] = typer.Option(None, "--isbn"),
    status: Optional[str] = typer.Option(None, "--status", help="available | borrowed | reserved"),
):
    """Update a book's details by id."""
    book = _services(ctx).catalog.update_book(book_id=book_id, isbn=isbn, title=title, author=author, status=status)
    print_book(book)


@app.command("remove")
@handle_library_errors
def cli_remove(ctx: typer.Context, book_id: str):
    """Remove a book by id."""
    book = _services(ctx).catalog.remove_book(book_id)
    print(f"Book {book.title} ({book.id}) has been removed.")


# --- Patrons and lending ---
@app.command("register")
@handle_library_errors
def cli_register(ctx: typer.Context, name: str, email: str):
    """Register a patron."""
    print_patron(_services(ctx).patrons.register(name, email))


@app.command("checkout")
@handle_library_errors
def cli_checkout(ctx: typer.Context, book_id: str, email: str,
                 name: Optional[str] = typer.Option(None, "--name", help="Patron name to confirm")):
    """Check out an available book."""
    print_loan_record(_services(ctx).lending.check_out(book_id, email, name))


@app.command("return")
@handle_library_errors
def cli_return(ctx: typer.Context, book_id: str, email: str,
               name: Optional[str] = typer.Option(None, "--name", help="Patron name to confirm")):
    """Return a borrowed book or release a reservation."""
    print_loan_record(_services(ctx).lending.return_book(book_id, email, name))


@app.command("reserve")
@handle_library_errors
def cli_reserve(ctx: typer.Context, book_id: str, email: str,
                name: Optional[str] = typer.Option(None, "--name", help="Patron name to confirm")):
    """Reserve an available book."""
    print_loan_record(_services(ctx).lending.reserve_book(book_id, email, name))


@app.command("loans")
@handle_library_errors
def cli_loans(ctx: typer.Context, email: str):
    """Show a patron's loan history."""
    print_loans(_services(ctx).lending.loans_for_patron(email))


@app.command("serve")
def cli_serve(ctx: typer.Context, reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes")):
    """Start the HTTP API with uvicorn."""
    config = ctx.obj.config
    host = config.api_host
    port = int(config.api_port)
    print(f"Starting API on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "library_system.api:create_app",
        "--factory",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    env = dict(os.environ, LIBRARY_DB_FILE=config.database_file, LIBRARY_STORAGE=config.storage_backend)
    try:
        subprocess.run(args, env=env, check=False)
    except FileNotFoundError:
        print("Error: could not launch uvicorn. Make sure it is installed in this environment.")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        print("API stopped.")


if __name__ == "__main__":
    app()
