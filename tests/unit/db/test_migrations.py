"""Tests for the forward-only migration runner."""

from __future__ import annotations

import sqlite3

import pytest

from recall.db.connection import Database
from recall.db.migrations import MIGRATIONS, run_migrations
from recall.db.schema import CURRENT_VERSION, initialize


def _fresh_conn(tmp_path):
    """Open a new connection without running migrations."""
    return Database(tmp_path / "test.db").connect()


def _table_exists(conn, name: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
    ).fetchone() is not None


# --- Bootstrap ---

def test_run_migrations_records_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    version = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    assert version == MIGRATIONS[-1][0] == CURRENT_VERSION
    conn.close()


def test_run_migrations_idempotent(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    initialize(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


def test_migration_versions_strictly_increasing():
    versions = [v for v, _ in MIGRATIONS]
    assert versions == sorted(set(versions))


# --- Tables created ---

@pytest.mark.parametrize(
    "table",
    ["meetings", "transcripts", "chunks", "meeting_summaries", "embedding_queue", "interactions"],
)
def test_run_migrations_creates_table(tmp_path, table):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, table)
    conn.close()


# --- Constraints ---

def test_chunk_index_unique_per_meeting(tmp_db):
    tmp_db.execute("INSERT INTO meetings (id) VALUES ('m1')")
    sql = (
        "INSERT INTO chunks (meeting_id, chunk_index, start_timestamp_ms, end_timestamp_ms, "
        "cleaned_text, token_count) VALUES ('m1', 0, 0, 0, 'x', 1)"
    )
    tmp_db.execute(sql)
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(sql)


def test_only_one_in_progress_job_per_target(tmp_db):
    sql = (
        "INSERT INTO embedding_queue (meeting_id, target_kind, chunk_id, status, created_at) "
        "VALUES ('m1', 'chunk', 7, ?, 0)"
    )
    tmp_db.execute(sql, ("in_progress",))
    tmp_db.execute(sql, ("pending",))
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(sql, ("in_progress",))


def test_summary_jobs_unique_in_progress_without_chunk_id(tmp_db):
    sql = (
        "INSERT INTO embedding_queue (meeting_id, target_kind, status, created_at) "
        "VALUES (?, 'summary', 'in_progress', 0)"
    )
    tmp_db.execute(sql, ("m1",))
    tmp_db.execute(sql, ("m2",))
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(sql, ("m1",))


def test_queue_rejects_unknown_status(tmp_db):
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(
            "INSERT INTO embedding_queue (meeting_id, target_kind, status, created_at) "
            "VALUES ('m1', 'chunk', 'exploded', 0)"
        )
