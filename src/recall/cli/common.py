"""Helpers shared by the recall CLI commands."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
import yaml
from rich.console import Console

from recall.cli.errors import err_config, err_no_api_key, err_no_db, err_store
from recall.config import ConfigError, RecallConfig, load_config
from recall.db.connection import Database
from recall.db.schema import initialize
from recall.errors import StoreIOError
from recall.rag.llm_client import validate_api_key

console = Console()

DEFAULT_DB = Path(".recall.db")


def load_config_or_exit() -> RecallConfig:
    try:
        return load_config()
    except (ConfigError, yaml.YAMLError) as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc


def open_db(db_path: Path, *, create: bool = False) -> sqlite3.Connection:
    """Open *db_path* with the schema migrated; exit if it is missing and not *create*."""
    if not create and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    try:
        conn = Database(db_path).connect()
        initialize(conn)
    except StoreIOError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1) from exc
    return conn


def require_api_key(model: str) -> None:
    try:
        validate_api_key(model)
    except EnvironmentError as exc:
        provider = model.split("/")[0] if "/" in model else "openai"
        console.print(err_no_api_key(provider))
        raise typer.Exit(1) from exc
