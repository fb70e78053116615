"""recall ingest — replay a recorded transcript through the live ingest path.

The file is a JSON list of utterances::

    [{"speaker": "user", "text": "Let's start.", "timestamp_ms": 1700000000000}, ...]

``speaker`` values "user"/"me"/"self" are the local user, anything else is
another participant. ``content`` is accepted in place of ``text``.

Usage:
  recall ingest standup-0412 --file standup.json --title "Standup"
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer

from recall.cli.common import DEFAULT_DB, console, load_config_or_exit, open_db
from recall.cli.errors import err_store, err_transcript_file
from recall.db.models import Speaker, Utterance
from recall.errors import StoreIOError
from recall.service import MeetingMemory


def ingest_cmd(
    meeting_id: Annotated[str, typer.Argument(help="Meeting id to append to.")],
    file: Annotated[
        Path,
        typer.Option("--file", "-f", help="JSON transcript file."),
    ],
    title: Annotated[
        str,
        typer.Option("--title", "-t", help="Meeting title (new meetings only)."),
    ] = "",
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .recall.db (created if missing)."),
    ] = DEFAULT_DB,
    end: Annotated[
        bool,
        typer.Option("--end/--no-end", help="Mark the meeting ended after the replay."),
    ] = True,
) -> None:
    """Append a transcript file to a meeting, chunking and enqueueing embeddings."""
    try:
        utterances = _load_transcript(file)
    except (OSError, ValueError, KeyError, TypeError) as exc:
        console.print(err_transcript_file(str(file), str(exc)))
        raise typer.Exit(1) from exc

    cfg = load_config_or_exit()
    conn = open_db(db, create=True)
    memory = MeetingMemory.from_config(conn, cfg)

    try:
        chunk_count = 0
        for utterance in utterances:
            chunk_count += len(memory.on_transcript_append(meeting_id, utterance, title=title))
        if end:
            if memory.on_meeting_end(meeting_id) is not None:
                chunk_count += 1
    except StoreIOError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1) from exc
    finally:
        conn.close()

    console.print(
        f"[green]✓[/] {meeting_id}: {len(utterances)} utterances, "
        f"{chunk_count} chunks queued for embedding"
    )
    if not end:
        console.print("[dim]Meeting left open; the last partial chunk is still buffered.[/]")
    console.print("  Run:  recall drain  to compute embeddings.")


def _load_transcript(path: Path) -> list[Utterance]:
    raw: Any = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError("top-level JSON value must be a list")
    utterances = []
    for item in raw:
        text = item.get("text", item.get("content"))
        if text is None:
            raise KeyError("text")
        utterances.append(
            Utterance(
                speaker=Speaker.parse(item.get("speaker", "")),
                text=str(text),
                timestamp_ms=int(item["timestamp_ms"]),
            )
        )
    return utterances
