"""recall ask — answer a question about one meeting, streamed to the terminal."""

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


def ask_cmd(
    meeting_id: Annotated[str, typer.Argument(help="Meeting to ask about.")],
    question: Annotated[str, typer.Argument(help="Question, in quotes.")],
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .recall.db."),
    ] = DEFAULT_DB,
    show_context: Annotated[
        bool,
        typer.Option("--show-context", help="Print the prompt context before the answer."),
    ] = False,
) -> None:
    """Ask a question about a meeting."""
    cfg = load_config_or_exit()
    require_api_key(cfg.generation.model)

    conn = open_db(db)
    try:
        memory = MeetingMemory.from_config(conn, cfg)
        if memory.repo.get_meeting(meeting_id) is None:
            console.print(err_meeting_not_found(meeting_id))
            raise typer.Exit(1)

        result = memory.query_meeting(meeting_id, question)
        if show_context:
            console.rule("context")
            console.print(result.context_text, markup=False, highlight=False)
            console.rule()
        if result.used_fallback:
            console.print("[dim](answered from recent transcript)[/]")
        for fragment in result.answer_stream:
            console.print(fragment, end="", markup=False, highlight=False)
        console.print()
    except AnswerUnavailable as exc:
        console.print()
        console.print(err_no_answer())
        raise typer.Exit(1) from exc
    except StoreIOError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1) from exc
    finally:
        conn.close()
