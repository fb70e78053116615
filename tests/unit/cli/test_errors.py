"""Tests for recall rich error messages."""

from __future__ import annotations

import pytest

from recall.cli.errors import (
    err_config,
    err_meeting_not_found,
    err_no_answer,
    err_no_api_key,
    err_no_db,
    err_store,
    err_transcript_file,
)
from recall.errors import AnswerUnavailable


def _has_action(msg: str) -> bool:
    """Every error must pair a cause with something the user can do."""
    lower = msg.lower()
    return any(kw in lower for kw in ["run:", "set:", "export ", "fix ", "retry", "expected", "--verbose"])


@pytest.mark.parametrize(
    "msg",
    [
        err_no_api_key("openai"),
        err_no_db(),
        err_config("queue.batch_size must be > 0"),
        err_store("database is locked"),
        err_meeting_not_found("standup"),
        err_transcript_file("t.json", "not a list"),
        err_no_answer(),
    ],
)
def test_every_error_has_action(msg: str) -> None:
    assert _has_action(msg)


def test_err_no_api_key_contains_env_var() -> None:
    assert "OPENAI_API_KEY" in err_no_api_key("openai")


def test_err_no_api_key_unknown_provider_fallback() -> None:
    assert "MYPROVIDER_API_KEY" in err_no_api_key("myprovider")


def test_err_no_db_names_path() -> None:
    assert "meetings.db" in err_no_db("meetings.db")


def test_err_meeting_not_found_names_meeting() -> None:
    assert "'standup'" in err_meeting_not_found("standup")


def test_err_no_answer_uses_user_message() -> None:
    assert AnswerUnavailable.USER_MESSAGE in err_no_answer()
