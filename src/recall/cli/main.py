"""recall CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from recall.cli.ask import ask_cmd
from recall.cli.delete import delete_cmd
from recall.cli.drain import drain_cmd
from recall.cli.followups import followups_cmd
from recall.cli.ingest import ingest_cmd
from recall.cli.init import init_cmd
from recall.cli.notes import notes_cmd
from recall.cli.status import status_cmd


def _version_callback(value: bool) -> None:
    if value:
        try:
            ver = importlib.metadata.version("recall")
        except importlib.metadata.PackageNotFoundError:
            ver = "dev"
        typer.echo(f"recall {ver}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    if not verbose:
        logging.getLogger("LiteLLM").setLevel(logging.ERROR)


app = typer.Typer(
    name="recall",
    help=(
        "recall — meeting memory: chunk live transcripts, embed them, and ask questions.\n\n"
        "  recall ingest   Replay a transcript into a meeting.\n"
        "  recall drain    Compute pending embeddings.\n"
        "  recall ask      Ask about a meeting (falls back to the recent transcript).\n"
        "  recall notes    Show or edit a meeting's notes."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
) -> None:
    """recall — meeting memory CLI."""
    _configure_logging(verbose)


app.command("init")(init_cmd)
app.command("ingest")(ingest_cmd)
app.command("drain")(drain_cmd)
app.command("ask")(ask_cmd)
app.command("status")(status_cmd)
app.command("notes")(notes_cmd)
app.command("followups")(followups_cmd)
app.command("delete")(delete_cmd)


if __name__ == "__main__":
    app()
