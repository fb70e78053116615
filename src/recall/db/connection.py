"""SQLite connection layer with the sqlite-vec extension loaded."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import sqlite_vec

from recall.errors import StoreIOError

# Seconds a writer waits on a locked database before raising.
_BUSY_TIMEOUT_S = 5.0


class Database:
    """Per-deployment SQLite database file.

    Each thread opens its own connection via :meth:`connect`; the embedding
    worker and the ingest/query paths never share one.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Store the database path. Call connect() to open a connection.

        Args:
            db_path: Path to the SQLite database file (created if missing).
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open a connection, load sqlite-vec, and return the connection."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=_BUSY_TIMEOUT_S)
            conn.row_factory = sqlite3.Row
            conn.enable_load_extension(True)
            sqlite_vec.load(conn)
            conn.enable_load_extension(False)
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode = WAL")
        except sqlite3.Error as exc:
            raise StoreIOError(f"Cannot open database '{self.db_path}': {exc}") from exc
        return conn

    def __enter__(self) -> sqlite3.Connection:
        """Open the database and return the connection (context manager support)."""
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        """Close the connection when leaving the context manager."""
        if self._conn:
            self._conn.close()
            self._conn = None


@contextmanager
def store_io(action: str) -> Iterator[None]:
    """Re-raise ``sqlite3.Error`` from the wrapped block as :class:`StoreIOError`."""
    try:
        yield
    except sqlite3.Error as exc:
        raise StoreIOError(f"Failed to {action}: {exc}") from exc
