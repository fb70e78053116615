"""recall notes — show or edit a meeting's overview, key points, and action items.

Notes are user-owned: they are never generated, and they feed the context
window used when retrieval is unavailable. Options replace the matching field;
fields without an option are left as they are. With no options, the current
notes are printed.

Usage:
  recall notes standup-0412
  recall notes standup-0412 --overview "Release sync"
  recall notes standup-0412 -k "Ship Friday" -k "QA by Thursday" -a "Alice: QA run"
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from recall.cli.common import DEFAULT_DB, console, open_db
from recall.cli.errors import err_meeting_not_found, err_store
from recall.db.models import Meeting
from recall.db.repository import Repository
from recall.errors import StoreIOError


def notes_cmd(
    meeting_id: Annotated[str, typer.Argument(help="Meeting whose notes to show or edit.")],
    overview: Annotated[
        str | None,
        typer.Option("--overview", "-o", help="Replace the overview."),
    ] = None,
    key_points: Annotated[
        list[str] | None,
        typer.Option("--key-point", "-k", help="Key point (repeatable; replaces the list)."),
    ] = None,
    action_items: Annotated[
        list[str] | None,
        typer.Option("--action-item", "-a", help="Action item (repeatable; replaces the list)."),
    ] = None,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .recall.db."),
    ] = DEFAULT_DB,
) -> None:
    """Show or edit meeting notes."""
    conn = open_db(db)
    repo = Repository(conn)

    try:
        editing = overview is not None or key_points or action_items
        if editing:
            found = repo.update_notes(
                meeting_id,
                overview=overview,
                key_points=key_points or None,
                action_items=action_items or None,
            )
        else:
            found = repo.get_meeting(meeting_id) is not None
        if not found:
            console.print(err_meeting_not_found(meeting_id))
            raise typer.Exit(1)

        if editing:
            console.print(f"[green]✓[/] Notes updated: {meeting_id}")
        _print_notes(repo.get_meeting(meeting_id))
    except StoreIOError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1) from exc
    finally:
        conn.close()


def _print_notes(meeting: Meeting) -> None:
    console.print(f"\n[bold]{meeting.title or meeting.id}[/]")
    console.print(f"  Overview: {meeting.overview or '[dim](none)[/]'}")
    sections = (("Key points", meeting.key_points), ("Action items", meeting.action_items))
    for heading, items in sections:
        console.print(f"  {heading}:")
        if not items:
            console.print("    [dim](none)[/]")
        for item in items:
            console.print(f"    - {item}", markup=False, highlight=False)
