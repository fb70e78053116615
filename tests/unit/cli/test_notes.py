"""Tests for recall notes."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from recall.cli.main import app
from recall.db.connection import Database
from recall.db.repository import Repository
from recall.db.schema import initialize

runner = CliRunner()


@pytest.fixture
def db(cli_env: Path) -> Path:
    path = cli_env / "meetings.db"
    conn = Database(path).connect()
    initialize(conn)
    Repository(conn).ensure_meeting("standup", title="Daily standup")
    conn.close()
    return path


def _meeting(path: Path):
    conn = Database(path).connect()
    try:
        return Repository(conn).get_meeting("standup")
    finally:
        conn.close()


def test_notes_shows_empty_notes(db: Path) -> None:
    result = runner.invoke(app, ["notes", "standup", "--db", str(db)])
    assert result.exit_code == 0, result.output
    assert "Daily standup" in result.output
    assert "(none)" in result.output


def test_notes_sets_all_fields(db: Path) -> None:
    result = runner.invoke(
        app,
        [
            "notes", "standup", "--db", str(db),
            "--overview", "Release sync",
            "-k", "Ship Friday", "-k", "QA by Thursday",
            "--action-item", "Alice: QA run",
        ],
    )
    assert result.exit_code == 0, result.output
    assert "Notes updated: standup" in result.output
    assert "- Alice: QA run" in result.output

    meeting = _meeting(db)
    assert meeting.overview == "Release sync"
    assert meeting.key_points == ["Ship Friday", "QA by Thursday"]
    assert meeting.action_items == ["Alice: QA run"]


def test_notes_keeps_fields_without_options(db: Path) -> None:
    runner.invoke(app, ["notes", "standup", "--db", str(db), "-k", "Ship Friday"])
    result = runner.invoke(app, ["notes", "standup", "--db", str(db), "-o", "Release sync"])
    assert result.exit_code == 0, result.output

    meeting = _meeting(db)
    assert meeting.overview == "Release sync"
    assert meeting.key_points == ["Ship Friday"]


def test_notes_unknown_meeting(db: Path) -> None:
    result = runner.invoke(app, ["notes", "nope", "--db", str(db), "-o", "x"])
    assert result.exit_code == 1
    assert "nope" in result.output
