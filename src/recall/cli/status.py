"""recall status — meetings, chunk/embedding coverage, and queue health."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from recall.cli.common import DEFAULT_DB, console, load_config_or_exit, open_db
from recall.cli.errors import err_meeting_not_found, err_store
from recall.db.models import JobStatus, Meeting
from recall.db.repository import Repository
from recall.db.vectors import VectorStore
from recall.errors import StoreIOError
from recall.queue.embedding_queue import EmbeddingQueue
from recall.rag.llm_client import LiteLLMEmbedder


def status_cmd(
    meeting_id: Annotated[
        str | None,
        typer.Argument(help="Show detail for one meeting."),
    ] = None,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .recall.db."),
    ] = DEFAULT_DB,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", min=1, help="Meetings to list."),
    ] = 20,
) -> None:
    """Show meetings and embedding queue status."""
    cfg = load_config_or_exit()
    conn = open_db(db)
    try:
        repo = Repository(conn)
        store = VectorStore(conn, cfg.embedding.dimensions)
        embedder = LiteLLMEmbedder(cfg.embedding.model, cfg.embedding.dimensions)
        queue = EmbeddingQueue(conn, store, embedder, cfg.queue)

        if meeting_id is None:
            _show_meetings(repo, store, limit)
            _show_queue(queue.stats(), title="Embedding queue")
            return

        meeting = repo.get_meeting(meeting_id)
        if meeting is None:
            console.print(err_meeting_not_found(meeting_id))
            raise typer.Exit(1)
        _show_meeting(meeting, repo, store)
        _show_queue(queue.stats(meeting_id), title=f"Embedding queue — {meeting_id}")
        failed = [j for j in queue.list_jobs(meeting_id) if j.status is JobStatus.FAILED]
        for job in failed:
            console.print(
                f"  [red]✗[/] job {job.id} ({job.target.kind}, {job.retry_count} tries): "
                f"{job.error_message}"
            )
    except StoreIOError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1) from exc
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def _show_meetings(repo: Repository, store: VectorStore, limit: int) -> None:
    meetings = repo.list_meetings(limit=limit)
    if not meetings:
        console.print(
            Panel(
                "[yellow]No meetings yet.[/]\n"
                "  Run:  recall ingest MEETING_ID --file transcript.json",
                title="[bold]Meetings[/]",
                expand=False,
            )
        )
        return

    table = Table(title="Meetings", show_header=True, header_style="bold")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Started")
    table.add_column("Chunks", justify="right")
    table.add_column("Embedded", justify="right")
    table.add_column("State")
    for meeting in meetings:
        chunks = repo.count_chunks(meeting.id)
        embedded = store.count_embedded(meeting.id)
        coverage = f"{embedded}" if embedded == chunks else f"[yellow]{embedded}[/]"
        table.add_row(
            meeting.id,
            meeting.title or "[dim]—[/]",
            _fmt_ms(meeting.started_at_ms),
            str(chunks),
            coverage,
            "ended" if meeting.is_ended else "[green]live[/]",
        )
    console.print(table)


def _show_meeting(meeting: Meeting, repo: Repository, store: VectorStore) -> None:
    summary = repo.get_summary(meeting.id)
    chunks = repo.count_chunks(meeting.id)
    lines = [
        f"Title:     [bold]{meeting.title or meeting.id}[/]",
        f"Started:   {_fmt_ms(meeting.started_at_ms)}",
        f"Ended:     {_fmt_ms(meeting.ended_at_ms)}",
        f"Chunks:    {chunks}  |  Embedded: {store.count_embedded(meeting.id)}",
    ]
    if summary is not None:
        embedded = "[green]✓[/]" if summary.embedding is not None else "[yellow]pending[/]"
        lines.append(
            f"Summary:   covers chunks 0-{summary.covered_chunk_index}  |  embedding {embedded}"
        )
    else:
        lines.append("Summary:   [dim]none yet[/]")
    console.print(Panel("\n".join(lines), title=f"[bold]{meeting.id}[/]", expand=False))


def _show_queue(counts: dict[JobStatus, int], title: str) -> None:
    table = Table(title=title, show_header=True, header_style="bold")
    for status in JobStatus:
        table.add_column(status.value, justify="right")
    table.add_row(*(str(counts[s]) for s in JobStatus))
    console.print(table)


def _fmt_ms(ts_ms: int | None) -> str:
    if ts_ms is None:
        return "—"
    return datetime.fromtimestamp(ts_ms / 1000).strftime("%Y-%m-%d %H:%M")
