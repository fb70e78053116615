"""recall followups — suggest follow-up questions for a meeting.

Uses the generation model over the meeting's context window (summary, notes,
recent transcript); the suggestions are stored with the meeting's interactions.

Usage:
  recall followups standup-0412
  recall followups standup-0412 --count 5
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from recall.cli.common import (
    DEFAULT_DB,
    console,
    load_config_or_exit,
    open_db,
    require_api_key,
)
from recall.cli.errors import err_meeting_not_found, err_no_answer, err_store
from recall.errors import AnswerUnavailable, StoreIOError
from recall.service import MeetingMemory


def followups_cmd(
    meeting_id: Annotated[str, typer.Argument(help="Meeting to suggest questions for.")],
    count: Annotated[
        int,
        typer.Option("--count", "-n", min=1, max=10, help="Maximum number of questions."),
    ] = 3,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .recall.db."),
    ] = DEFAULT_DB,
) -> None:
    """Suggest follow-up questions about a meeting."""
    cfg = load_config_or_exit()
    require_api_key(cfg.generation.model)

    conn = open_db(db)
    try:
        memory = MeetingMemory.from_config(conn, cfg)
        if memory.repo.get_meeting(meeting_id) is None:
            console.print(err_meeting_not_found(meeting_id))
            raise typer.Exit(1)

        followups = memory.suggest_followups(meeting_id, count=count)
        for item in followups.items:
            console.print(f"  ? {item}", markup=False, highlight=False)
    except AnswerUnavailable as exc:
        console.print(err_no_answer())
        raise typer.Exit(1) from exc
    except StoreIOError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1) from exc
    finally:
        conn.close()
