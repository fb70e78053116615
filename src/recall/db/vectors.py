"""Embedding storage and brute-force similarity scan.

Embeddings live in BLOB columns on ``chunks`` and ``meeting_summaries`` as
float32 vectors (sqlite-vec's wire format). There is no ANN index: a meeting
holds at most a few hundred chunks, so a full per-meeting scan followed by
exact cosine scoring is both simple and correct.
"""

from __future__ import annotations

import math
import sqlite3
import struct
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass

import sqlite_vec

from recall.db.connection import store_io
from recall.db.models import Chunk, ChunkTarget, JobTarget, MeetingSummary, Speaker
from recall.errors import EmbeddingBackendError, EmbeddingDimensionError

# ------------------------------------------------------------------
# Codec + math
# ------------------------------------------------------------------


def check_vector(embedding: Sequence[float], dimensions: int) -> list[float]:
    """Validate *embedding* and return it as a list of floats.

    Raises:
        EmbeddingDimensionError: Length differs from *dimensions*.
        EmbeddingBackendError: Values are not finite numbers.
    """
    if len(embedding) != dimensions:
        raise EmbeddingDimensionError(dimensions, len(embedding))
    try:
        values = [float(v) for v in embedding]
    except (TypeError, ValueError) as exc:
        raise EmbeddingBackendError(f"Malformed embedding values: {exc}") from exc
    if not all(math.isfinite(v) for v in values):
        raise EmbeddingBackendError("Embedding contains NaN or infinite values.")
    return values


def encode(embedding: Sequence[float]) -> bytes:
    """Serialize *embedding* to a float32 blob."""
    return sqlite_vec.serialize_float32(list(embedding))


def decode(blob: bytes) -> list[float]:
    """Deserialize a float32 blob written by :func:`encode`."""
    return list(struct.unpack(f"<{len(blob) // 4}f", blob))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the cosine similarity of *a* and *b* (0.0 if either is all zeros)."""
    if len(a) != len(b):
        raise EmbeddingDimensionError(len(a), len(b))
    dot = math.fsum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(math.fsum(x * x for x in a))
    norm_b = math.sqrt(math.fsum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


# ------------------------------------------------------------------
# Store
# ------------------------------------------------------------------


@dataclass(frozen=True)
class ScanRow:
    """One embedded unit returned by :meth:`VectorStore.scan`.

    Attributes:
        kind: ``"chunk"`` or ``"summary"``.
        target_id: Chunk id for chunks, meeting id for the summary.
        embedding: Decoded vector.
        chunk: The chunk row (kind == "chunk").
        summary: The summary row (kind == "summary").
    """

    kind: str
    target_id: int | str
    embedding: list[float]
    chunk: Chunk | None = None
    summary: MeetingSummary | None = None


class VectorStore:
    """Read/write embeddings for chunks and meeting summaries.

    Args:
        conn: Open connection with sqlite-vec loaded and schema initialised.
        dimensions: Embedding length for this deployment. Stored vectors of any
            other length are ignored by :meth:`scan`.
    """

    def __init__(self, conn: sqlite3.Connection, dimensions: int) -> None:
        if dimensions < 1:
            raise ValueError(f"dimensions must be >= 1, got {dimensions}")
        self._conn = conn
        self.dimensions = dimensions

    def upsert(self, target: JobTarget, embedding: Sequence[float]) -> bool:
        """Attach *embedding* to *target*. Returns False if the target no longer exists."""
        blob = encode(check_vector(embedding, self.dimensions))
        with store_io("store embedding"):
            if isinstance(target, ChunkTarget):
                cur = self._conn.execute(
                    "UPDATE chunks SET embedding = ? WHERE id = ? AND meeting_id = ?",
                    (blob, target.chunk_id, target.meeting_id),
                )
            else:
                cur = self._conn.execute(
                    "UPDATE meeting_summaries SET embedding = ? WHERE meeting_id = ?",
                    (blob, target.meeting_id),
                )
            self._conn.commit()
        return cur.rowcount > 0

    def target_text(self, target: JobTarget) -> str | None:
        """Return the text to embed for *target*, or None if it was deleted."""
        with store_io("read embedding target"):
            if isinstance(target, ChunkTarget):
                row = self._conn.execute(
                    "SELECT cleaned_text AS text FROM chunks WHERE id = ? AND meeting_id = ?",
                    (target.chunk_id, target.meeting_id),
                ).fetchone()
            else:
                row = self._conn.execute(
                    "SELECT summary_text AS text FROM meeting_summaries WHERE meeting_id = ?",
                    (target.meeting_id,),
                ).fetchone()
        return row["text"] if row else None

    def scan(self, meeting_id: str) -> list[ScanRow]:
        """Return every embedded chunk and the embedded summary for *meeting_id*.

        Chunks come first in ``chunk_index`` order; the summary, if embedded,
        is last. Both reads share one snapshot. Rows whose embedding is still
        NULL are skipped.
        """
        with store_io("scan embeddings"), self._snapshot():
            chunk_rows = self._conn.execute(
                f"""
                SELECT {CHUNK_COLUMNS} FROM chunks
                WHERE meeting_id = ? AND embedding IS NOT NULL
                  AND vec_length(embedding) = ?
                ORDER BY chunk_index
                """,
                (meeting_id, self.dimensions),
            ).fetchall()
            summary_row = self._conn.execute(
                """
                SELECT meeting_id, summary_text, covered_chunk_index, embedding, updated_at
                FROM meeting_summaries
                WHERE meeting_id = ? AND embedding IS NOT NULL
                  AND vec_length(embedding) = ?
                """,
                (meeting_id, self.dimensions),
            ).fetchone()

        rows = []
        for r in chunk_rows:
            chunk = row_to_chunk(r)
            rows.append(ScanRow("chunk", chunk.id, chunk.embedding, chunk=chunk))
        if summary_row is not None:
            summary = row_to_summary(summary_row)
            rows.append(ScanRow("summary", meeting_id, summary.embedding, summary=summary))
        return rows

    def get_chunks_ordered(self, meeting_id: str) -> list[Chunk]:
        """Return all chunks of *meeting_id* by ``chunk_index``, embedded or not."""
        with store_io("read chunks"):
            rows = self._conn.execute(
                f"SELECT {CHUNK_COLUMNS} FROM chunks WHERE meeting_id = ? ORDER BY chunk_index",
                (meeting_id,),
            ).fetchall()
        return [row_to_chunk(r) for r in rows]

    def count_embedded(self, meeting_id: str) -> int:
        """Number of chunks of *meeting_id* with a usable embedding."""
        with store_io("count embeddings"):
            return self._conn.execute(
                """
                SELECT COUNT(*) FROM chunks
                WHERE meeting_id = ? AND embedding IS NOT NULL
                  AND vec_length(embedding) = ?
                """,
                (meeting_id, self.dimensions),
            ).fetchone()[0]

    @contextmanager
    def _snapshot(self) -> Iterator[None]:
        if self._conn.in_transaction:
            yield
            return
        self._conn.execute("BEGIN")
        try:
            yield
        finally:
            self._conn.commit()


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

CHUNK_COLUMNS = (
    "id, meeting_id, chunk_index, speaker, start_timestamp_ms, end_timestamp_ms, "
    "cleaned_text, token_count, embedding, created_at"
)


def row_to_chunk(row: sqlite3.Row) -> Chunk:
    blob = row["embedding"]
    return Chunk(
        id=row["id"],
        meeting_id=row["meeting_id"],
        chunk_index=row["chunk_index"],
        speaker=Speaker(row["speaker"]) if row["speaker"] else None,
        start_ts=row["start_timestamp_ms"],
        end_ts=row["end_timestamp_ms"],
        cleaned_text=row["cleaned_text"],
        token_count=row["token_count"],
        embedding=decode(blob) if blob is not None else None,
        created_at=row["created_at"],
    )


def row_to_summary(row: sqlite3.Row) -> MeetingSummary:
    blob = row["embedding"]
    return MeetingSummary(
        meeting_id=row["meeting_id"],
        summary_text=row["summary_text"],
        covered_chunk_index=row["covered_chunk_index"],
        embedding=decode(blob) if blob is not None else None,
        updated_at=row["updated_at"],
    )
