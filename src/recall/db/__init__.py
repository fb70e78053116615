"""recall database layer."""

from recall.db.connection import Database, store_io
from recall.db.migrations import MIGRATIONS, run_migrations
from recall.db.repository import Repository
from recall.db.schema import initialize
from recall.db.vectors import ScanRow, VectorStore, cosine_similarity

__all__ = [
    "Database",
    "MIGRATIONS",
    "Repository",
    "ScanRow",
    "VectorStore",
    "cosine_similarity",
    "initialize",
    "run_migrations",
    "store_io",
]
