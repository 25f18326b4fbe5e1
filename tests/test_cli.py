import json
import subprocess
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from library_system.main import app
from library_system.services import build_services
from library_system.ui_helpers import OUTPUT_MODE_ENV

runner = CliRunner()


@pytest.fixture(autouse=True)
def plain_output(monkeypatch):
    # --output writes to the environment; keep it from leaking between tests
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")


@pytest.fixture
def seeded(sqlite_settings):
    services = build_services(sqlite_settings)
    book = services.catalog.add_book("Dune", "Frank Herbert", "9780441172719")
    services.patrons.register("Jane Doe", "jane@x.com")
    return book


def invoke(db_file, *args):
    return runner.invoke(app, ["--db", db_file, "--storage", "sqlite", *args])


def test_list_no_books(db_file):
    result = invoke(db_file, "list")
    assert result.exit_code == 0
    assert "No books in library." in result.stdout


def test_init_db(db_file):
    result = invoke(db_file, "init-db")
    assert result.exit_code == 0
    assert f"Database ready at {db_file}" in result.stdout


def test_add_and_list(db_file):
    result = invoke(db_file, "add", "The Hobbit", "J.R.R. Tolkien", "978-0-547-92822-7")
    assert result.exit_code == 0
    assert "Successfully added: The Hobbit by J.R.R. Tolkien" in result.stdout

    result = invoke(db_file, "list")
    assert result.exit_code == 0
    assert "9780547928227 - The Hobbit by J.R.R. Tolkien [available]" in result.stdout


def test_add_invalid_isbn(db_file):
    result = invoke(db_file, "add", "The Hobbit", "J.R.R. Tolkien", "123")
    assert result.exit_code == 1
    assert "Error: Invalid ISBN format" in result.stdout


def test_find_and_remove(db_file, seeded):
    result = invoke(db_file, "find", seeded.id)
    assert result.exit_code == 0
    assert "Title: Dune" in result.stdout

    result = invoke(db_file, "remove", seeded.id)
    assert result.exit_code == 0
    assert f"Book Dune ({seeded.id}) has been removed." in result.stdout

    result = invoke(db_file, "find", seeded.id)
    assert result.exit_code == 1
    assert "Error: book not found" in result.stdout


def test_search_and_update(db_file, seeded):
    result = invoke(db_file, "search", "herbert")
    assert result.exit_code == 0
    assert "Dune by Frank Herbert" in result.stdout

    result = invoke(db_file, "update", seeded.id, "--title", "Dune Messiah")
    assert result.exit_code == 0
    assert "Title: Dune Messiah" in result.stdout
    assert "Author: Frank Herbert" in result.stdout


def test_register(db_file):
    result = invoke(db_file, "register", "John Smith", "John@X.com")
    assert result.exit_code == 0
    assert "Registered: John Smith <john@x.com>" in result.stdout

    result = invoke(db_file, "register", "John Smith", "john@x.com")
    assert result.exit_code == 1
    assert "Error: email already registered" in result.stdout


def test_checkout_return_and_loans(db_file, seeded):
    result = invoke(db_file, "checkout", seeded.id, "jane@x.com", "--name", "Jane Doe")
    assert result.exit_code == 0
    assert f"book {seeded.id} is now borrowed" in result.stdout

    result = invoke(db_file, "reserve", seeded.id, "jane@x.com")
    assert result.exit_code == 1
    assert "Error: Book is currently borrowed and cannot be reserved" in result.stdout

    result = invoke(db_file, "return", seeded.id, "jane@x.com")
    assert result.exit_code == 0
    assert "is now available (returned" in result.stdout

    result = invoke(db_file, "loans", "jane@x.com")
    assert result.exit_code == 0
    assert f"loan of {seeded.id}" in result.stdout


def test_json_output(db_file, seeded):
    result = invoke(db_file, "--output", "json", "list")
    assert result.exit_code == 0
    books = json.loads(result.stdout)
    assert books[0]["id"] == seeded.id
    assert books[0]["status"] == "available"


def test_serve_launches_uvicorn(db_file, monkeypatch):
    run_mock = MagicMock()
    monkeypatch.setattr(subprocess, "run", run_mock)

    result = invoke(db_file, "serve")

    assert result.exit_code == 0
    args = run_mock.call_args.args[0]
    assert args[1:5] == ["-m", "uvicorn", "library_system.api:create_app", "--factory"]
    assert run_mock.call_args.kwargs["env"]["LIBRARY_DB_FILE"] == db_file
