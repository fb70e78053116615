"""Background thread that keeps the embedding queue drained.

The worker opens its own connection; SQLite connections are never shared
across threads. It runs a recovery pass on start, then drains in a loop and
sleeps ``poll_interval_s`` whenever the queue had nothing eligible. A failed
recovery pass or drain is logged and the loop carries on.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from recall.config import QueueCfg
from recall.db.connection import Database
from recall.db.schema import initialize
from recall.db.vectors import VectorStore
from recall.queue.embedding_queue import EmbeddingQueue
from recall.rag.llm_client import EmbeddingClient

logger = logging.getLogger(__name__)


class EmbeddingWorker:
    """Drain the embedding queue on a daemon thread.

    Args:
        database:   Database whose queue is drained.
        embedder:   Embedding backend.
        dimensions: Configured embedding length.
        config:     Queue policy (batch size, poll interval, backoff).
        clock:      Epoch-seconds clock passed through to the queue.
    """

    def __init__(
        self,
        database: Database,
        embedder: EmbeddingClient,
        dimensions: int,
        config: QueueCfg | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._database = database
        self._embedder = embedder
        self._dimensions = dimensions
        self._config = config or QueueCfg()
        self._clock = clock
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the worker thread. No-op if it is already running."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="recall-embedding-worker", daemon=True
        )
        self._thread.start()
        logger.info("Embedding worker started")

    def stop(self, timeout: float | None = None) -> None:
        """Signal the thread to exit and wait for it."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Embedding worker stopped")

    def run_once(self, queue: EmbeddingQueue) -> int:
        """Drain one batch; return the number of jobs processed."""
        processed = queue.drain(self._config.batch_size)
        if processed:
            logger.debug("Embedding worker processed %d jobs", processed)
        return processed

    def _run(self) -> None:
        try:
            conn = self._database.connect()
        except Exception:
            logger.exception("Embedding worker could not open the database")
            return
        try:
            try:
                initialize(conn)
            except Exception:
                logger.exception("Embedding worker could not initialise the schema")
                return
            queue = EmbeddingQueue(
                conn,
                VectorStore(conn, self._dimensions),
                self._embedder,
                self._config,
                clock=self._clock,
            )
            try:
                queue.recover()
            except Exception:
                logger.exception("Embedding queue recovery failed; draining anyway")
            while not self._stop.is_set():
                try:
                    processed = self.run_once(queue)
                except Exception:
                    logger.exception("Embedding worker iteration failed")
                    processed = 0
                if not processed:
                    self._stop.wait(self._config.poll_interval_s)
        finally:
            conn.close()
