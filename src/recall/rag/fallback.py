"""Single decision point between retrieval and the raw context window."""

from __future__ import annotations

import logging
import threading
from enum import Enum

from recall.config import FallbackCfg
from recall.db.repository import Repository
from recall.db.vectors import VectorStore

logger = logging.getLogger(__name__)


class Strategy(str, Enum):
    RAG = "rag"
    CONTEXT_WINDOW = "context_window"


class FallbackPolicy:
    """Choose how a query against a meeting is answered.

    ``CONTEXT_WINDOW`` is chosen when the meeting has no embedded chunks, has
    fewer than ``min_chunks`` chunks, or when the last retrieval for the
    meeting was unavailable and no new chunk has been embedded since.

    Args:
        repo:   Repository used to count chunks.
        store:  Vector store used to count embedded chunks.
        config: Thresholds; ``remember_unavailable`` toggles the sticky rule.
    """

    def __init__(
        self,
        repo: Repository,
        store: VectorStore,
        config: FallbackCfg | None = None,
    ) -> None:
        self._repo = repo
        self._store = store
        self._config = config or FallbackCfg()
        # meeting_id -> embedded chunk count when retrieval last came back empty
        self._unavailable: dict[str, int] = {}
        self._lock = threading.Lock()

    def select_strategy(self, meeting_id: str) -> Strategy:
        embedded = self._store.count_embedded(meeting_id)
        if embedded == 0:
            logger.info("Meeting %s has no embedded chunks; using context window", meeting_id)
            return Strategy.CONTEXT_WINDOW

        if self._repo.count_chunks(meeting_id) < self._config.min_chunks:
            logger.info("Meeting %s is too short for retrieval; using context window", meeting_id)
            return Strategy.CONTEXT_WINDOW

        if self._config.remember_unavailable:
            with self._lock:
                seen = self._unavailable.get(meeting_id)
                if seen is not None and embedded <= seen:
                    logger.info(
                        "Last retrieval for meeting %s was unavailable; using context window",
                        meeting_id,
                    )
                    return Strategy.CONTEXT_WINDOW
                self._unavailable.pop(meeting_id, None)

        return Strategy.RAG

    def record_unavailable(self, meeting_id: str) -> None:
        """Note that retrieval for *meeting_id* just came back unavailable."""
        embedded = self._store.count_embedded(meeting_id)
        with self._lock:
            self._unavailable[meeting_id] = embedded

    def record_success(self, meeting_id: str) -> None:
        with self._lock:
            self._unavailable.pop(meeting_id, None)
