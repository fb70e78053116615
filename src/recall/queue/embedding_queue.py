"""Durable embedding work queue backed by the ``embedding_queue`` table.

Job lifecycle::

    pending ──claim──▶ in_progress ──▶ completed
       ▲                    │
       └── backoff ◀── failed (retry_count < max_retries)
                            │
                            └──▶ failed (terminal, kept for diagnostics)

Claiming runs inside ``BEGIN IMMEDIATE`` so concurrent drains never take the
same job, and a partial unique index allows at most one ``in_progress`` job
per target. Jobs move to ``in_progress`` before the backend is called; a
crash leaves them there until :meth:`EmbeddingQueue.reset_stale` returns them
to ``pending``.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from recall.config import QueueCfg
from recall.db.connection import store_io
from recall.db.models import ChunkTarget, EmbeddingJob, JobStatus, JobTarget, SummaryTarget
from recall.db.vectors import VectorStore
from recall.errors import EmbeddingBackendError, EmbeddingDimensionError, StoreIOError
from recall.rag.llm_client import EmbeddingClient

logger = logging.getLogger(__name__)

_JOB_COLUMNS = (
    "id, meeting_id, target_kind, chunk_id, status, retry_count, error_message, "
    "not_before, claimed_at, created_at, processed_at"
)

_TARGET_DELETED = "target no longer exists"


@dataclass(frozen=True)
class RecoveryReport:
    """Outcome of :meth:`EmbeddingQueue.recover`."""

    reset: int
    enqueued: int


class EmbeddingQueue:
    """Enqueue embedding jobs and drain them through an :class:`EmbeddingClient`.

    Args:
        conn: Open connection; must not be shared with another thread.
        store: Vector store used to read target text and write embeddings.
        embedder: Embedding backend.
        config: Retry/backoff policy.
        clock: Returns the current time in epoch seconds (injectable for tests).
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        store: VectorStore,
        embedder: EmbeddingClient,
        config: QueueCfg | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._conn = conn
        self._store = store
        self._embedder = embedder
        self._config = config or QueueCfg()
        self._clock = clock

    # ------------------------------------------------------------------
    # Producing
    # ------------------------------------------------------------------

    def enqueue(self, target: JobTarget) -> int:
        """Add a pending job for *target*; reuse an existing pending job if any.

        Returns:
            The id of the pending job.
        """
        chunk_id = target.chunk_id if isinstance(target, ChunkTarget) else None
        with store_io("enqueue embedding job"), self._immediate():
            existing = self._conn.execute(
                """
                SELECT id FROM embedding_queue
                WHERE status = 'pending' AND target_kind = ? AND meeting_id = ?
                  AND COALESCE(chunk_id, -1) = COALESCE(?, -1)
                ORDER BY id LIMIT 1
                """,
                (target.kind, target.meeting_id, chunk_id),
            ).fetchone()
            if existing is not None:
                return existing["id"]
            cur = self._conn.execute(
                """
                INSERT INTO embedding_queue (meeting_id, target_kind, chunk_id, status, created_at)
                VALUES (?, ?, ?, 'pending', ?)
                """,
                (target.meeting_id, target.kind, chunk_id, self._clock()),
            )
        logger.debug("Enqueued %s job %d for meeting %s", target.kind, cur.lastrowid, target.meeting_id)
        return cur.lastrowid

    # ------------------------------------------------------------------
    # Consuming
    # ------------------------------------------------------------------

    def drain(self, batch_size: int | None = None) -> int:
        """Claim up to *batch_size* eligible jobs (oldest first) and process them.

        Returns:
            Number of jobs processed; 0 with no side effects when nothing is
            eligible.

        Raises:
            StoreIOError: The store failed mid-drain. Jobs already claimed stay
                ``in_progress`` until :meth:`reset_stale` recovers them.
        """
        jobs = self.claim(batch_size or self._config.batch_size)
        for job in jobs:
            self._process(job)
        return len(jobs)

    def claim(self, batch_size: int) -> list[EmbeddingJob]:
        """Atomically move up to *batch_size* eligible pending jobs to ``in_progress``."""
        if batch_size < 1:
            return []
        now = self._clock()
        claimed: list[EmbeddingJob] = []
        with store_io("claim embedding jobs"), self._immediate():
            rows = self._conn.execute(
                f"""
                SELECT {_JOB_COLUMNS} FROM embedding_queue AS q
                WHERE q.status = 'pending'
                  AND (q.not_before IS NULL OR q.not_before <= ?)
                  AND NOT EXISTS (
                      SELECT 1 FROM embedding_queue AS r
                      WHERE r.status = 'in_progress'
                        AND r.target_kind = q.target_kind
                        AND r.meeting_id = q.meeting_id
                        AND COALESCE(r.chunk_id, -1) = COALESCE(q.chunk_id, -1)
                  )
                ORDER BY q.created_at, q.id
                LIMIT ?
                """,
                (now, batch_size * 4),
            ).fetchall()

            seen: set[JobTarget] = set()
            for row in rows:
                job = _row_to_job(row)
                if job.target in seen:
                    continue
                cur = self._conn.execute(
                    """
                    UPDATE embedding_queue SET status = 'in_progress', claimed_at = ?
                    WHERE id = ? AND status = 'pending'
                    """,
                    (now, job.id),
                )
                if cur.rowcount != 1:
                    continue
                seen.add(job.target)
                job.status = JobStatus.IN_PROGRESS
                job.claimed_at = now
                claimed.append(job)
                if len(claimed) >= batch_size:
                    break
        return claimed

    def _process(self, job: EmbeddingJob) -> None:
        text = self._store.target_text(job.target)
        if text is None:
            self._complete(job, error_message=_TARGET_DELETED)
            return

        try:
            vector = self._embedder.embed(text)
            stored = self._store.upsert(job.target, vector)
        except EmbeddingDimensionError as exc:
            self._fail(job, str(exc), retryable=False)
            return
        except EmbeddingBackendError as exc:
            self._fail(job, str(exc), retryable=True)
            return
        except StoreIOError:
            raise
        except Exception as exc:
            self._fail(job, f"{type(exc).__name__}: {exc}", retryable=True)
            return

        self._complete(job, error_message=None if stored else _TARGET_DELETED)

    def _complete(self, job: EmbeddingJob, error_message: str | None) -> None:
        with store_io("complete embedding job"):
            self._conn.execute(
                """
                UPDATE embedding_queue
                SET status = 'completed', processed_at = ?, error_message = ?, not_before = NULL
                WHERE id = ?
                """,
                (self._clock(), error_message, job.id),
            )
            self._conn.commit()
        if error_message:
            logger.debug("Job %d skipped: %s", job.id, error_message)
        else:
            logger.debug("Job %d completed (%s, meeting %s)", job.id, job.target.kind, job.meeting_id)

    def _fail(self, job: EmbeddingJob, message: str, retryable: bool) -> None:
        retry_count = job.retry_count + 1
        now = self._clock()
        if retryable and retry_count < self._config.max_retries:
            delay = self.backoff_delay(retry_count)
            with store_io("reschedule embedding job"):
                self._conn.execute(
                    """
                    UPDATE embedding_queue
                    SET status = 'pending', retry_count = ?, error_message = ?,
                        not_before = ?, claimed_at = NULL
                    WHERE id = ?
                    """,
                    (retry_count, message, now + delay, job.id),
                )
                self._conn.commit()
            logger.warning(
                "Embedding job %d failed (attempt %d/%d), retrying in %.1fs: %s",
                job.id,
                retry_count,
                self._config.max_retries,
                delay,
                message,
            )
            return

        with store_io("fail embedding job"):
            self._conn.execute(
                """
                UPDATE embedding_queue
                SET status = 'failed', retry_count = ?, error_message = ?,
                    processed_at = ?, not_before = NULL
                WHERE id = ?
                """,
                (retry_count, message, now, job.id),
            )
            self._conn.commit()
        logger.error(
            "Embedding job %d for %s in meeting %s failed permanently: %s",
            job.id,
            job.target.kind,
            job.meeting_id,
            message,
        )

    def backoff_delay(self, retry_count: int) -> float:
        """Seconds to wait after the *retry_count*-th failure (capped)."""
        return min(self._config.base_delay_s * (2 ** retry_count), self._config.max_delay_s)

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def reset_stale(self) -> int:
        """Return ``in_progress`` jobs claimed longer ago than ``stale_after_s`` to pending."""
        cutoff = self._clock() - self._config.stale_after_s
        with store_io("reset stale embedding jobs"):
            cur = self._conn.execute(
                """
                UPDATE embedding_queue SET status = 'pending', claimed_at = NULL
                WHERE status = 'in_progress' AND claimed_at < ?
                """,
                (cutoff,),
            )
            self._conn.commit()
        if cur.rowcount:
            logger.warning("Reset %d stale in-progress embedding jobs", cur.rowcount)
        return cur.rowcount

    def enqueue_missing(self) -> int:
        """Enqueue chunks and summaries that have neither an embedding nor a live job."""
        with store_io("find unembedded targets"):
            chunk_rows = self._conn.execute(
                """
                SELECT c.id, c.meeting_id FROM chunks AS c
                WHERE c.embedding IS NULL AND NOT EXISTS (
                    SELECT 1 FROM embedding_queue AS q
                    WHERE q.target_kind = 'chunk' AND q.chunk_id = c.id
                )
                ORDER BY c.id
                """
            ).fetchall()
            summary_rows = self._conn.execute(
                """
                SELECT s.meeting_id FROM meeting_summaries AS s
                WHERE s.embedding IS NULL AND COALESCE((
                    SELECT q.status FROM embedding_queue AS q
                    WHERE q.target_kind = 'summary' AND q.meeting_id = s.meeting_id
                    ORDER BY q.id DESC LIMIT 1
                ), 'completed') = 'completed'
                """
            ).fetchall()

        targets: list[JobTarget] = [
            ChunkTarget(meeting_id=r["meeting_id"], chunk_id=r["id"]) for r in chunk_rows
        ]
        targets += [SummaryTarget(meeting_id=r["meeting_id"]) for r in summary_rows]
        for target in targets:
            self.enqueue(target)
        if targets:
            logger.info("Enqueued %d unembedded targets found during recovery", len(targets))
        return len(targets)

    def recover(self) -> RecoveryReport:
        """Startup pass: reset stale claims, then enqueue anything left unembedded."""
        return RecoveryReport(reset=self.reset_stale(), enqueued=self.enqueue_missing())

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_job(self, job_id: int) -> EmbeddingJob | None:
        with store_io("read embedding job"):
            row = self._conn.execute(
                f"SELECT {_JOB_COLUMNS} FROM embedding_queue WHERE id = ?", (job_id,)
            ).fetchone()
        return _row_to_job(row) if row else None

    def list_jobs(self, meeting_id: str | None = None) -> list[EmbeddingJob]:
        """Return jobs in creation order, optionally for one meeting."""
        sql = f"SELECT {_JOB_COLUMNS} FROM embedding_queue"
        params: tuple = ()
        if meeting_id is not None:
            sql += " WHERE meeting_id = ?"
            params = (meeting_id,)
        with store_io("list embedding jobs"):
            rows = self._conn.execute(sql + " ORDER BY created_at, id", params).fetchall()
        return [_row_to_job(r) for r in rows]

    def stats(self, meeting_id: str | None = None) -> dict[JobStatus, int]:
        """Return a job count for every status (zeros included)."""
        sql = "SELECT status, COUNT(*) AS n FROM embedding_queue"
        params: tuple = ()
        if meeting_id is not None:
            sql += " WHERE meeting_id = ?"
            params = (meeting_id,)
        with store_io("count embedding jobs"):
            rows = self._conn.execute(sql + " GROUP BY status", params).fetchall()
        counts = {status: 0 for status in JobStatus}
        for row in rows:
            counts[JobStatus(row["status"])] = row["n"]
        return counts

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def _immediate(self) -> Iterator[None]:
        """Run the block in a write-locking transaction."""
        if self._conn.in_transaction:
            self._conn.commit()
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            self._conn.rollback()
            raise
        self._conn.commit()


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_job(row: sqlite3.Row) -> EmbeddingJob:
    target: JobTarget
    if row["target_kind"] == ChunkTarget.kind:
        target = ChunkTarget(meeting_id=row["meeting_id"], chunk_id=row["chunk_id"])
    else:
        target = SummaryTarget(meeting_id=row["meeting_id"])
    return EmbeddingJob(
        id=row["id"],
        target=target,
        status=JobStatus(row["status"]),
        retry_count=row["retry_count"],
        error_message=row["error_message"],
        not_before=row["not_before"],
        claimed_at=row["claimed_at"],
        created_at=row["created_at"],
        processed_at=row["processed_at"],
    )

