"""Forward-only migration runner for recall's database schema."""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS meetings (
    id              TEXT PRIMARY KEY,
    title           TEXT NOT NULL DEFAULT '',
    started_at_ms   INTEGER,
    ended_at_ms     INTEGER,
    overview        TEXT NOT NULL DEFAULT '',
    key_points      TEXT NOT NULL DEFAULT '[]',
    action_items    TEXT NOT NULL DEFAULT '[]',
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS transcripts (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    meeting_id      TEXT NOT NULL REFERENCES meetings(id) ON DELETE CASCADE,
    speaker         TEXT NOT NULL,
    content         TEXT NOT NULL,
    timestamp_ms    INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_transcripts_meeting
    ON transcripts(meeting_id, timestamp_ms);

CREATE TABLE IF NOT EXISTS chunks (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    meeting_id          TEXT NOT NULL REFERENCES meetings(id) ON DELETE CASCADE,
    chunk_index         INTEGER NOT NULL,
    speaker             TEXT,
    start_timestamp_ms  INTEGER NOT NULL,
    end_timestamp_ms    INTEGER NOT NULL,
    cleaned_text        TEXT NOT NULL,
    token_count         INTEGER NOT NULL,
    embedding           BLOB,
    created_at          DATETIME NOT NULL DEFAULT (datetime('now')),
    UNIQUE (meeting_id, chunk_index)
);

CREATE TABLE IF NOT EXISTS meeting_summaries (
    meeting_id          TEXT PRIMARY KEY REFERENCES meetings(id) ON DELETE CASCADE,
    summary_text        TEXT NOT NULL,
    covered_chunk_index INTEGER NOT NULL DEFAULT -1,
    embedding           BLOB,
    updated_at          DATETIME NOT NULL DEFAULT (datetime('now'))
);

-- Weak relation: no foreign key, jobs may outlive their target.
CREATE TABLE IF NOT EXISTS embedding_queue (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    meeting_id      TEXT NOT NULL,
    target_kind     TEXT NOT NULL CHECK (target_kind IN ('chunk', 'summary')),
    chunk_id        INTEGER,
    status          TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'in_progress', 'completed', 'failed')),
    retry_count     INTEGER NOT NULL DEFAULT 0,
    error_message   TEXT,
    not_before      REAL,
    claimed_at      REAL,
    created_at      REAL NOT NULL,
    processed_at    REAL
);

CREATE INDEX IF NOT EXISTS idx_queue_status
    ON embedding_queue(status, created_at);

CREATE UNIQUE INDEX IF NOT EXISTS idx_queue_one_in_progress
    ON embedding_queue(target_kind, meeting_id, COALESCE(chunk_id, -1))
    WHERE status = 'in_progress';

CREATE TABLE IF NOT EXISTS interactions (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    meeting_id      TEXT NOT NULL REFERENCES meetings(id) ON DELETE CASCADE,
    kind            TEXT NOT NULL,
    created_at_ms   INTEGER NOT NULL,
    question        TEXT,
    answer          TEXT,
    used_fallback   INTEGER NOT NULL DEFAULT 0,
    items           TEXT
);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
