"""Tests for the rolling SummaryComposer."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from recall.config import SummaryCfg
from recall.db.models import Chunk, SummaryTarget
from recall.db.repository import Repository
from recall.ingest.summarizer import SummaryComposer


@pytest.fixture
def repo(tmp_db):
    r = Repository(tmp_db)
    r.ensure_meeting("m1")
    return r


def _chunks(indices, text="Them: budget discussion") -> list[Chunk]:
    return [
        Chunk(
            meeting_id="m1",
            chunk_index=i,
            cleaned_text=f"{text} {i}",
            token_count=6,
            start_ts=i * 1000,
            end_ts=i * 1000 + 900,
        )
        for i in indices
    ]


def _mock_completion(text: str | None):
    mock = MagicMock()
    mock.choices = [MagicMock()]
    mock.choices[0].message.content = text
    return patch("recall.rag.llm_client.litellm.completion", return_value=mock)


# ------------------------------------------------------------------
# Cadence
# ------------------------------------------------------------------


def test_is_due_counts_uncovered_chunks(repo):
    composer = SummaryComposer(repo, SummaryCfg(every_n_chunks=5))
    assert not composer.is_due("m1", 4)
    assert composer.is_due("m1", 5)

    repo.save_summary("m1", "So far.", 4)
    assert not composer.is_due("m1", 9)
    assert composer.is_due("m1", 10)


# ------------------------------------------------------------------
# Recompute
# ------------------------------------------------------------------


def test_recompute_saves_summary_and_notifies(repo):
    on_update = MagicMock()
    composer = SummaryComposer(repo, on_update=on_update)
    with _mock_completion("  The team reviewed the Q3 budget.  "):
        summary = composer.recompute("m1", _chunks(range(3)))

    assert summary.summary_text == "The team reviewed the Q3 budget."
    assert summary.covered_chunk_index == 2
    assert repo.get_summary("m1").summary_text == "The team reviewed the Q3 budget."
    on_update.assert_called_once_with(SummaryTarget(meeting_id="m1"))


def test_recompute_is_incremental(repo):
    composer = SummaryComposer(repo)
    with _mock_completion("First pass."):
        composer.recompute("m1", _chunks(range(2)))
    with _mock_completion("Second pass.") as mock_call:
        summary = composer.recompute("m1", _chunks(range(4)))

    prompt = mock_call.call_args.kwargs["messages"][0]["content"]
    assert "First pass." in prompt
    assert "budget discussion 2" in prompt
    assert "budget discussion 1" not in prompt
    assert summary.covered_chunk_index == 3


def test_recompute_without_new_chunks_skips_model(repo):
    repo.save_summary("m1", "Existing.", 3)
    composer = SummaryComposer(repo)
    with _mock_completion("Should not be used.") as mock_call:
        summary = composer.recompute("m1", _chunks(range(4)))
    mock_call.assert_not_called()
    assert summary.summary_text == "Existing."


def test_recompute_failure_keeps_previous(repo):
    repo.save_summary("m1", "Existing.", 0)
    on_update = MagicMock()
    composer = SummaryComposer(repo, on_update=on_update)
    with patch("recall.rag.llm_client.litellm.completion", side_effect=Exception("API error")):
        summary = composer.recompute("m1", _chunks(range(3)))

    assert summary.summary_text == "Existing."
    assert summary.covered_chunk_index == 0
    on_update.assert_not_called()


def test_recompute_empty_response_counts_as_failure(repo):
    composer = SummaryComposer(repo)
    with _mock_completion(""):
        assert composer.recompute("m1", _chunks(range(2))) is None
    assert repo.get_summary("m1") is None


def test_recompute_caps_prompt_input(repo):
    composer = SummaryComposer(repo, SummaryCfg(max_input_chars=60))
    long_chunks = _chunks(range(5), text="x" * 40)
    with _mock_completion("Partial.") as mock_call:
        summary = composer.recompute("m1", long_chunks)

    # Each chunk is ~42 chars; only the first fits, later ones wait for the next pass.
    assert summary.covered_chunk_index == 0
    prompt = mock_call.call_args.kwargs["messages"][0]["content"]
    assert f"{'x' * 40} 1" not in prompt


def test_recompute_always_takes_one_chunk(repo):
    composer = SummaryComposer(repo, SummaryCfg(max_input_chars=10))
    with _mock_completion("Tiny budget."):
        summary = composer.recompute("m1", _chunks([0], text="y" * 50))
    assert summary.covered_chunk_index == 0


def test_recompute_uses_configured_model(repo):
    composer = SummaryComposer(repo, SummaryCfg(model="anthropic/claude-3-5-haiku-20241022"))
    with _mock_completion("Summary.") as mock_call:
        composer.recompute("m1", _chunks([0]))
    assert mock_call.call_args.kwargs["model"] == "anthropic/claude-3-5-haiku-20241022"


def test_recompute_bounds_model_call(repo):
    composer = SummaryComposer(repo, SummaryCfg(timeout_s=4.0))
    with _mock_completion("Bounded.") as mock_call:
        composer.recompute("m1", _chunks([0]))
    kwargs = mock_call.call_args.kwargs
    assert kwargs["timeout"] == 4.0
    assert kwargs["num_retries"] == 0
