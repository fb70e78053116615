"""Tests for the meeting-scoped Retriever."""

from __future__ import annotations

import math

import pytest

from recall.config import RetrievalCfg
from recall.db.models import Chunk, ChunkTarget, SummaryTarget
from recall.db.repository import Repository
from recall.db.vectors import VectorStore
from recall.errors import RetrievalUnavailable
from recall.rag.retriever import RankedContext, Retriever

DIMS = 4
QUERY = "what did we decide?"
Q = [1.0, 0.0, 0.0, 0.0]


def _vec(similarity: float) -> list[float]:
    """Unit vector whose cosine with Q is *similarity*."""
    return [similarity, math.sqrt(1.0 - similarity**2), 0.0, 0.0]


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------


@pytest.fixture
def repo(tmp_db):
    r = Repository(tmp_db)
    r.ensure_meeting("m1")
    return r


@pytest.fixture
def store(tmp_db):
    return VectorStore(tmp_db, DIMS)


@pytest.fixture
def query_embedder(embedder):
    embedder.vectors[QUERY] = Q
    return embedder


def _add(repo, store, index: int, similarity: float | None, tokens: int = 10,
         start: int | None = None, end: int | None = None) -> int:
    start = index * 10_000 if start is None else start
    chunk_id = repo.add_chunk(
        Chunk(
            meeting_id="m1",
            chunk_index=index,
            cleaned_text=f"Them: chunk {index}",
            token_count=tokens,
            start_ts=start,
            end_ts=start + 5_000 if end is None else end,
        )
    )
    if similarity is not None:
        store.upsert(ChunkTarget("m1", chunk_id), _vec(similarity))
    return chunk_id


def _indices(context: RankedContext) -> list[int]:
    return [sc.chunk.chunk_index for sc in context.chunks]


# ------------------------------------------------------------------
# Unavailable states
# ------------------------------------------------------------------


def test_no_embedded_chunks_is_unavailable(repo, store, query_embedder):
    _add(repo, store, 0, similarity=None)
    with pytest.raises(RetrievalUnavailable) as exc_info:
        Retriever(store, query_embedder).retrieve("m1", QUERY)
    assert exc_info.value.reason == "no_embeddings"


def test_query_embedding_failure_is_unavailable(repo, store, query_embedder):
    _add(repo, store, 0, similarity=0.9)
    query_embedder.failures = 1
    with pytest.raises(RetrievalUnavailable) as exc_info:
        Retriever(store, query_embedder).retrieve("m1", QUERY)
    assert exc_info.value.reason == "embedding_failed"


class _ShortVectorEmbedder:
    def embed(self, text):
        return [1.0, 0.0]


def test_query_vector_of_wrong_length_is_unavailable(repo, store):
    _add(repo, store, 0, similarity=0.9)
    with pytest.raises(RetrievalUnavailable) as exc_info:
        Retriever(store, _ShortVectorEmbedder()).retrieve("m1", QUERY)
    assert exc_info.value.reason == "embedding_failed"
    assert "expected 4" in exc_info.value.detail


@pytest.mark.parametrize("error", [TimeoutError("slow"), OSError("connection refused")])
def test_unexpected_embedder_errors_are_unavailable(repo, store, query_embedder, error):
    _add(repo, store, 0, similarity=0.9)
    query_embedder.failures = 1
    query_embedder.error = error
    with pytest.raises(RetrievalUnavailable) as exc_info:
        Retriever(store, query_embedder).retrieve("m1", QUERY)
    assert exc_info.value.reason == "embedding_failed"
    assert type(error).__name__ in exc_info.value.detail


def test_nothing_relevant_is_unavailable(repo, store, query_embedder):
    _add(repo, store, 0, similarity=0.05)
    with pytest.raises(RetrievalUnavailable) as exc_info:
        Retriever(store, query_embedder).retrieve("m1", QUERY)
    assert exc_info.value.reason == "no_relevant_context"


# ------------------------------------------------------------------
# Ranking and packing
# ------------------------------------------------------------------


def test_filters_by_similarity_and_returns_chronological(repo, store, query_embedder):
    _add(repo, store, 0, similarity=0.3)
    _add(repo, store, 1, similarity=0.1)
    _add(repo, store, 2, similarity=0.95)

    context = Retriever(store, query_embedder).retrieve("m1", QUERY)
    assert _indices(context) == [0, 2]
    assert context.chunks[1].similarity == pytest.approx(0.95, abs=1e-6)
    assert context.summary is None
    assert context.total_tokens == 20


def test_unembedded_chunks_are_ignored(repo, store, query_embedder):
    _add(repo, store, 0, similarity=0.9)
    _add(repo, store, 1, similarity=None)
    assert _indices(Retriever(store, query_embedder).retrieve("m1", QUERY)) == [0]


def test_packing_skips_chunks_that_overflow(repo, store, query_embedder):
    _add(repo, store, 0, similarity=0.99, tokens=50)
    _add(repo, store, 1, similarity=0.90, tokens=30)
    _add(repo, store, 2, similarity=0.80, tokens=10)
    _add(repo, store, 3, similarity=0.70, tokens=10)

    context = Retriever(store, query_embedder).retrieve("m1", QUERY, token_budget=45)
    assert _indices(context) == [1, 2]
    assert context.total_tokens == 40


def test_budget_defaults_to_config(repo, store, query_embedder):
    for i in range(5):
        _add(repo, store, i, similarity=0.9, tokens=10)
    context = Retriever(store, query_embedder, RetrievalCfg(token_budget=25)).retrieve("m1", QUERY)
    assert len(context.chunks) == 2


def test_recency_breaks_near_ties(repo, store, query_embedder):
    _add(repo, store, 0, similarity=0.80, start=0)
    _add(repo, store, 1, similarity=0.79, start=60_000)

    context = Retriever(store, query_embedder).retrieve("m1", QUERY, token_budget=10)
    assert _indices(context) == [1]


def test_exact_ties_prefer_latest_end(repo, store, query_embedder):
    _add(repo, store, 0, similarity=0.8, start=0, end=1_000)
    _add(repo, store, 1, similarity=0.8, start=0, end=1_000)
    cfg = RetrievalCfg(recency_weight=0.0)

    context = Retriever(store, query_embedder, cfg).retrieve("m1", QUERY, token_budget=10)
    assert _indices(context) == [1]


def test_retrieve_is_deterministic(repo, store, query_embedder):
    for i, sim in enumerate([0.5, 0.9, 0.5, 0.7, 0.9, 0.3]):
        _add(repo, store, i, similarity=sim, tokens=10 + i)
    retriever = Retriever(store, query_embedder)

    first = retriever.retrieve("m1", QUERY, token_budget=40)
    for _ in range(5):
        again = retriever.retrieve("m1", QUERY, token_budget=40)
        assert _indices(again) == _indices(first)
        assert [sc.score for sc in again.chunks] == [sc.score for sc in first.chunks]


# ------------------------------------------------------------------
# Meeting summary
# ------------------------------------------------------------------


def test_high_similarity_summary_included_without_relevant_chunks(repo, store, query_embedder):
    _add(repo, store, 0, similarity=0.05)
    _add(repo, store, 1, similarity=0.1)
    repo.save_summary("m1", "A planning meeting about the Q3 roadmap.", 1)
    store.upsert(SummaryTarget("m1"), _vec(0.9))

    context = Retriever(store, query_embedder).retrieve("m1", "what was this meeting about")
    assert context.summary is not None
    assert context.summary.summary_text.startswith("A planning meeting")
    assert context.chunks == []
    assert context.render().startswith("MEETING SUMMARY:\nA planning meeting")


def test_low_similarity_summary_excluded(repo, store, query_embedder):
    _add(repo, store, 0, similarity=0.9)
    repo.save_summary("m1", "Unrelated summary.", 0)
    store.upsert(SummaryTarget("m1"), _vec(0.5))

    context = Retriever(store, query_embedder).retrieve("m1", QUERY)
    assert context.summary is None
    assert context.summary_similarity == pytest.approx(0.5, abs=1e-6)


def test_summary_tokens_count_against_budget(repo, store, query_embedder):
    _add(repo, store, 0, similarity=0.9, tokens=10)
    repo.save_summary("m1", "s" * 40, 0)  # 10 tokens
    store.upsert(SummaryTarget("m1"), _vec(0.95))

    context = Retriever(store, query_embedder).retrieve("m1", QUERY, token_budget=15)
    assert context.summary is not None
    assert context.chunks == []
    assert context.total_tokens == 10


# ------------------------------------------------------------------
# Rendering
# ------------------------------------------------------------------


def test_render_timestamps_relative_to_first_chunk(repo, store, query_embedder):
    _add(repo, store, 0, similarity=0.9, start=1_700_000_000_000, end=1_700_000_005_000)
    _add(repo, store, 1, similarity=0.9, start=1_700_000_065_000, end=1_700_000_072_000)

    text = Retriever(store, query_embedder).retrieve("m1", QUERY).render()
    assert text.startswith("RELEVANT EXCERPTS:\n[00:00-00:05]\nThem: chunk 0")
    assert "[01:05-01:12]\nThem: chunk 1" in text
