"""recall delete — remove a meeting and everything derived from it.

Cascades to the transcript, chunks, summary, and interactions. Queued
embedding jobs for the meeting are left in place and complete as no-ops.

Usage:
  recall delete standup-0412
  recall delete standup-0412 --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from recall.cli.common import DEFAULT_DB, console, open_db
from recall.cli.errors import err_meeting_not_found, err_store
from recall.db.repository import Repository
from recall.errors import StoreIOError


def delete_cmd(
    meeting_id: Annotated[str, typer.Argument(help="Meeting to delete.")],
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .recall.db."),
    ] = DEFAULT_DB,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Delete a meeting and all of its data."""
    conn = open_db(db)
    repo = Repository(conn)

    try:
        meeting = repo.get_meeting(meeting_id)
        if meeting is None:
            console.print(err_meeting_not_found(meeting_id))
            raise typer.Exit(0)

        chunk_count = repo.count_chunks(meeting_id)
        has_summary = repo.get_summary(meeting_id) is not None
        console.print(f"\nDelete meeting: [bold]{meeting.title or meeting_id}[/]")
        console.print(
            f"  Chunks: {chunk_count}  |  Summary: {'yes' if has_summary else 'no'}"
        )

        if not yes:
            if not typer.confirm("Confirm deletion?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        repo.delete_meeting(meeting_id)
        console.print(f"\n[green]✓[/] Deleted: {meeting_id}")
    except StoreIOError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1) from exc
    finally:
        conn.close()
