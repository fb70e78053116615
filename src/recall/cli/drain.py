"""recall drain — compute pending embeddings.

Without ``--watch`` the queue is drained until nothing is eligible (jobs
waiting out a backoff are left for the next run). With ``--watch`` the
background worker keeps polling until interrupted.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from recall.cli.common import DEFAULT_DB, console, load_config_or_exit, open_db, require_api_key
from recall.cli.errors import err_no_db, err_store
from recall.config import RecallConfig
from recall.db.connection import Database
from recall.db.models import JobStatus
from recall.db.vectors import VectorStore
from recall.errors import StoreIOError
from recall.queue.embedding_queue import EmbeddingQueue
from recall.queue.worker import EmbeddingWorker
from recall.rag.llm_client import LiteLLMEmbedder


def drain_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .recall.db."),
    ] = DEFAULT_DB,
    watch: Annotated[
        bool,
        typer.Option("--watch", "-w", help="Keep draining every poll interval until Ctrl-C."),
    ] = False,
    batch_size: Annotated[
        int | None,
        typer.Option("--batch-size", min=1, help="Jobs per drain (default: queue.batch_size)."),
    ] = None,
) -> None:
    """Embed pending chunks and summaries."""
    cfg = load_config_or_exit()
    if batch_size is not None:
        cfg.queue.batch_size = batch_size
    require_api_key(cfg.embedding.model)
    embedder = LiteLLMEmbedder(
        cfg.embedding.model, cfg.embedding.dimensions, cfg.embedding.timeout_s
    )

    if watch:
        if not db.exists():
            console.print(err_no_db(str(db)))
            raise typer.Exit(1)
        _watch(Database(db), embedder, cfg)

    conn = open_db(db)
    try:
        queue = EmbeddingQueue(
            conn, VectorStore(conn, cfg.embedding.dimensions), embedder, cfg.queue
        )
        if not watch:
            report = queue.recover()
            if report.reset or report.enqueued:
                console.print(
                    f"[dim]Recovered {report.reset} stale jobs, "
                    f"enqueued {report.enqueued} missing targets.[/]"
                )
            total = 0
            with console.status("Embedding…"):
                while processed := queue.drain():
                    total += processed
            console.print(f"[green]✓[/] Processed {total} jobs")
        _print_stats(queue.stats())
    except StoreIOError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1) from exc
    finally:
        conn.close()


def _watch(database: Database, embedder: LiteLLMEmbedder, cfg: RecallConfig) -> None:
    worker = EmbeddingWorker(database, embedder, cfg.embedding.dimensions, cfg.queue)
    worker.start()
    console.print(
        f"Draining every {cfg.queue.poll_interval_s:g}s. Press Ctrl-C to stop."
    )
    try:
        while worker.running:
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        worker.stop(timeout=cfg.embedding.timeout_s + 5)


def _print_stats(counts: dict[JobStatus, int]) -> None:
    table = Table(title="Embedding queue", show_header=True, header_style="bold")
    table.add_column("Status")
    table.add_column("Jobs", justify="right")
    for status in JobStatus:
        style = "red" if status is JobStatus.FAILED and counts[status] else ""
        table.add_row(status.value, f"[{style}]{counts[status]}[/]" if style else str(counts[status]))
    console.print(table)
