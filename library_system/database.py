import logging
import os
import sqlite3

logger = logging.getLogger(__name__)


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def get_db_connection(db_file: str) -> sqlite3.Connection:
    """Open a connection to the SQLite database with dict-like rows.

    Registers `unicode_lower()`, since the built-in lower() only folds ASCII.
    """
    conn = sqlite3.connect(db_file, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.create_function("unicode_lower", 1, _unicode_lower, deterministic=True)
    return conn


def create_tables(db_file: str) -> None:
    """Create the books, patrons and loans tables if they do not exist yet."""
    directory = os.path.dirname(os.path.abspath(db_file))
    os.makedirs(directory, exist_ok=True)

    conn = get_db_connection(db_file)
    try:
        cursor = conn.cursor()
        # WAL lets readers proceed while a writer holds the lock
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                isbn TEXT NOT NULL UNIQUE,
                status TEXT NOT NULL DEFAULT 'available'
                    CHECK(status IN ('available', 'borrowed', 'reserved')),
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 1
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS patrons (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE,
                created_at TEXT NOT NULL
            )
        """)
        # No foreign keys: loan history outlives removed books
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS loans (
                id TEXT PRIMARY KEY,
                book_id TEXT NOT NULL,
                patron_id TEXT NOT NULL,
                patron_email TEXT NOT NULL,
                patron_name TEXT NOT NULL,
                kind TEXT NOT NULL DEFAULT 'loan' CHECK(kind IN ('loan', 'reservation')),
                loan_date TEXT NOT NULL,
                return_date TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_author ON books(author)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_loans_book_patron ON loans(book_id, patron_id, return_date)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_loans_patron ON loans(patron_id)")
        conn.commit()
    finally:
        conn.close()


def initialize_database(db_file: str) -> None:
    """Create the schema if needed."""
    create_tables(db_file)
    logger.info(f"SQLite database ready at {db_file}")
