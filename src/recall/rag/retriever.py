"""Meeting-scoped retrieval: exact cosine ranking with a recency blend.

Scoring:
  adjusted(c) = cos(q, c) + recency_weight * r(c)
  r(c)        = (end_ts(c) - min_end) / (max_end - min_end)   (0 when all equal)

Remaining ties break by ``end_ts`` descending, then ``chunk_index``
descending, so the freshest mention wins and repeated calls over the same
snapshot return the same result.

Packing is best-effort: a chunk that would overflow the remaining budget is
skipped and smaller chunks further down the ranking are still considered.
The selected chunks are returned in chronological order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from recall.config import RetrievalCfg
from recall.db.models import Chunk, MeetingSummary
from recall.db.vectors import VectorStore, check_vector, cosine_similarity
from recall.errors import EmbeddingBackendError, RetrievalUnavailable
from recall.ingest.tokens import count_tokens
from recall.rag.llm_client import EmbeddingClient

logger = logging.getLogger(__name__)


@dataclass
class ScoredChunk:
    """A chunk with its raw cosine similarity and recency-adjusted score.

    Attributes:
        chunk: The Chunk instance from the database.
        similarity: Cosine similarity to the query embedding.
        score: ``similarity`` plus the recency bonus; used for ranking.
    """

    chunk: Chunk
    similarity: float
    score: float


@dataclass
class RankedContext:
    """Context selected for one query, ready to render into a prompt.

    Attributes:
        chunks: Selected chunks, chronological (``start_ts`` ascending).
        summary: Meeting summary, present when it cleared the summary threshold.
        summary_similarity: Cosine similarity of the summary (None if not embedded).
        total_tokens: Tokens used by the summary plus the selected chunks.
        origin_ts: Timestamp rendered as 00:00 (earliest chunk of the meeting).
    """

    chunks: list[ScoredChunk] = field(default_factory=list)
    summary: MeetingSummary | None = None
    summary_similarity: float | None = None
    total_tokens: int = 0
    origin_ts: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.chunks and self.summary is None

    def render(self) -> str:
        """Format as prompt context: summary block, then timestamped excerpts."""
        parts: list[str] = []
        if self.summary is not None:
            parts.append(f"MEETING SUMMARY:\n{self.summary.summary_text}")
        if self.chunks:
            excerpts = "\n\n".join(
                f"[{_clock(sc.chunk.start_ts - self.origin_ts)}-"
                f"{_clock(sc.chunk.end_ts - self.origin_ts)}]\n{sc.chunk.cleaned_text}"
                for sc in self.chunks
            )
            parts.append(f"RELEVANT EXCERPTS:\n{excerpts}")
        return "\n\n".join(parts)


class Retriever:
    """Rank a meeting's embedded chunks against a query.

    Args:
        store:    Vector store for the meeting data.
        embedder: Same embedding backend used for chunks.
        config:   Budget, thresholds, and recency weight.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingClient,
        config: RetrievalCfg | None = None,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._config = config or RetrievalCfg()

    def retrieve(
        self, meeting_id: str, query_text: str, token_budget: int | None = None
    ) -> RankedContext:
        """Select the most relevant context for *query_text* within *token_budget*.

        Raises:
            RetrievalUnavailable: The query could not be embedded, the meeting
                has no embedded chunks, or nothing relevant fits the budget.
        """
        budget = self._config.token_budget if token_budget is None else token_budget

        try:
            query_vec = check_vector(self._embedder.embed(query_text), self._store.dimensions)
        except EmbeddingBackendError as exc:
            raise RetrievalUnavailable("embedding_failed", str(exc)) from exc
        except Exception as exc:
            logger.warning("Query embedding raised %s: %s", type(exc).__name__, exc)
            raise RetrievalUnavailable("embedding_failed", f"{type(exc).__name__}: {exc}") from exc

        rows = self._store.scan(meeting_id)
        chunk_rows = [r for r in rows if r.kind == "chunk"]
        summary_row = next((r for r in rows if r.kind == "summary"), None)
        if not chunk_rows:
            raise RetrievalUnavailable("no_embeddings", f"meeting {meeting_id}")

        ranked = self._rank(query_vec, [r.chunk for r in chunk_rows])
        context = RankedContext(origin_ts=min(r.chunk.start_ts for r in chunk_rows))

        remaining = budget
        if summary_row is not None:
            context.summary_similarity = cosine_similarity(query_vec, summary_row.embedding)
            summary_tokens = count_tokens(summary_row.summary.summary_text)
            if (
                context.summary_similarity > self._config.summary_threshold
                and summary_tokens <= remaining
            ):
                context.summary = summary_row.summary
                remaining -= summary_tokens

        selected: list[ScoredChunk] = []
        for scored in ranked:
            if scored.similarity < self._config.min_chunk_similarity:
                continue
            if scored.chunk.token_count > remaining:
                continue
            selected.append(scored)
            remaining -= scored.chunk.token_count

        context.chunks = sorted(
            selected, key=lambda sc: (sc.chunk.start_ts, sc.chunk.chunk_index)
        )
        context.total_tokens = budget - remaining
        if context.is_empty:
            raise RetrievalUnavailable("no_relevant_context", f"meeting {meeting_id}")

        logger.debug(
            "Retrieved %d/%d chunks (summary=%s, %d tokens) for meeting %s",
            len(context.chunks),
            len(chunk_rows),
            context.summary is not None,
            context.total_tokens,
            meeting_id,
        )
        return context

    def _rank(self, query_vec: list[float], chunks: list[Chunk]) -> list[ScoredChunk]:
        """Score *chunks* and return them best-first."""
        ends = [c.end_ts for c in chunks]
        lo, hi = min(ends), max(ends)
        span = hi - lo
        weight = self._config.recency_weight

        scored = []
        for chunk in chunks:
            similarity = cosine_similarity(query_vec, chunk.embedding)
            recency = (chunk.end_ts - lo) / span if span else 0.0
            scored.append(ScoredChunk(chunk, similarity, similarity + weight * recency))

        scored.sort(key=lambda sc: (sc.score, sc.chunk.end_ts, sc.chunk.chunk_index), reverse=True)
        return scored


def _clock(offset_ms: int) -> str:
    """Render a millisecond offset as ``mm:ss``."""
    seconds = max(offset_ms, 0) // 1000
    return f"{seconds // 60:02d}:{seconds % 60:02d}"
