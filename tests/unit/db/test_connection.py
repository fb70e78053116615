"""Tests for the Database connection layer."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from recall.db.connection import Database, store_io
from recall.errors import StoreIOError


def test_connect_creates_file(tmp_path):
    db_path = tmp_path / ".recall.db"
    conn = Database(db_path).connect()
    conn.close()
    assert db_path.exists()


def test_sqlite_vec_loads(tmp_path):
    conn = Database(tmp_path / ".recall.db").connect()
    version = conn.execute("SELECT vec_version()").fetchone()[0]
    conn.close()
    assert version.startswith("v")


def test_foreign_keys_enabled(tmp_path):
    conn = Database(tmp_path / ".recall.db").connect()
    result = conn.execute("PRAGMA foreign_keys").fetchone()[0]
    conn.close()
    assert result == 1


def test_wal_journal_mode(tmp_path):
    conn = Database(tmp_path / ".recall.db").connect()
    mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
    conn.close()
    assert mode == "wal"


def test_row_factory_set(tmp_path):
    conn = Database(tmp_path / ".recall.db").connect()
    conn.execute("CREATE TABLE t (x INTEGER)")
    conn.execute("INSERT INTO t VALUES (42)")
    row = conn.execute("SELECT x FROM t").fetchone()
    conn.close()
    assert row["x"] == 42


def test_context_manager_closes_connection(tmp_path):
    db = Database(tmp_path / ".recall.db")
    with db as conn:
        conn.execute("CREATE TABLE t (x INTEGER)")
    with pytest.raises(sqlite3.ProgrammingError):
        conn.execute("SELECT 1")


def test_accepts_path_str(tmp_path):
    db = Database(str(tmp_path / ".recall.db"))
    assert isinstance(db.db_path, Path)
    with db as conn:
        assert conn.execute("SELECT 1").fetchone()[0] == 1


def test_unopenable_path_raises_store_error(tmp_path):
    db = Database(tmp_path / "missing-dir" / ".recall.db")
    with pytest.raises(StoreIOError, match="Cannot open database"):
        db.connect()


def test_store_io_wraps_sqlite_errors(tmp_db):
    with pytest.raises(StoreIOError, match="Failed to read widgets"):
        with store_io("read widgets"):
            tmp_db.execute("SELECT * FROM no_such_table")


def test_store_io_passes_other_errors_through():
    with pytest.raises(KeyError):
        with store_io("anything"):
            raise KeyError("x")
