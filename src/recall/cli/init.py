"""recall init — create or migrate the meeting database."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from recall.cli.common import DEFAULT_DB, console, open_db
from recall.db.schema import CURRENT_VERSION


def init_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .recall.db (created if missing)."),
    ] = DEFAULT_DB,
) -> None:
    """Create the recall database, or migrate an existing one."""
    existed = db.exists()
    conn = open_db(db, create=True)
    conn.close()
    verb = "Migrated" if existed else "Created"
    console.print(f"[green]✓[/] {verb} {db} (schema v{CURRENT_VERSION})")
