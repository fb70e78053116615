"""Rolling meeting summary — incremental recomputation via LiteLLM.

Each recomputation feeds the model the previous summary plus the chunks it has
not yet covered, so cost stays flat as the meeting grows. The new text
replaces the old one and its embedding is re-enqueued. A failed or empty
generation keeps the previous summary and embedding untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from recall.config import SummaryCfg
from recall.db.models import Chunk, MeetingSummary, SummaryTarget
from recall.db.repository import Repository
from recall.rag.llm_client import complete

logger = logging.getLogger(__name__)

_SUMMARY_PROMPT = """\
You maintain a running summary of a live meeting. It is used to decide whether \
the meeting is relevant to a question, so cover the main topics, decisions, \
and open questions. Keep it under {max_tokens} tokens and write plain prose.

Previous summary:
{previous}

New transcript excerpts ("Me" is the user, "Them" is everyone else):
{excerpts}

Updated summary:"""


class SummaryComposer:
    """Recompute and persist the rolling summary for a meeting.

    Args:
        repo:      Open Repository instance.
        config:    Model, cadence, and prompt size limits.
        on_update: Called with the summary's queue target after every
            successful overwrite (normally ``EmbeddingQueue.enqueue``).
    """

    def __init__(
        self,
        repo: Repository,
        config: SummaryCfg | None = None,
        on_update: Callable[[SummaryTarget], object] | None = None,
    ) -> None:
        self._repo = repo
        self._config = config or SummaryCfg()
        self._on_update = on_update

    def is_due(self, meeting_id: str, chunk_count: int) -> bool:
        """True once ``every_n_chunks`` chunks exist beyond what the summary covers."""
        previous = self._repo.get_summary(meeting_id)
        covered = previous.covered_chunk_index if previous else -1
        return chunk_count - 1 - covered >= self._config.every_n_chunks

    def recompute(self, meeting_id: str, chunks: list[Chunk]) -> MeetingSummary | None:
        """Fold uncovered *chunks* into the summary and return the live summary.

        Returns the previous summary (possibly None) when there is nothing new
        or generation fails.
        """
        previous = self._repo.get_summary(meeting_id)
        covered = previous.covered_chunk_index if previous else -1
        fresh = sorted(
            (c for c in chunks if c.chunk_index > covered), key=lambda c: c.chunk_index
        )
        if not fresh:
            return previous

        excerpts, last_index = self._select_excerpts(fresh)
        text = self._generate(previous.summary_text if previous else "", excerpts)
        if not text:
            logger.warning(
                "Summary recompute for meeting %s failed; keeping previous summary", meeting_id
            )
            return previous

        self._repo.save_summary(meeting_id, text, last_index)
        if self._on_update is not None:
            self._on_update(SummaryTarget(meeting_id=meeting_id))
        logger.info("Summary for meeting %s now covers chunk %d", meeting_id, last_index)
        return self._repo.get_summary(meeting_id)

    def _select_excerpts(self, chunks: list[Chunk]) -> tuple[str, int]:
        """Take chunks in order until ``max_input_chars``; always at least one."""
        budget = self._config.max_input_chars
        parts: list[str] = []
        used = 0
        last_index = chunks[0].chunk_index
        for chunk in chunks:
            if parts and used + len(chunk.cleaned_text) > budget:
                break
            parts.append(chunk.cleaned_text[:budget])
            used += len(chunk.cleaned_text)
            last_index = chunk.chunk_index
        return "\n\n".join(parts), last_index

    def _generate(self, previous: str, excerpts: str) -> str:
        """Call the summary model; empty string on any failure."""
        prompt = _SUMMARY_PROMPT.format(
            max_tokens=self._config.max_tokens,
            previous=previous or "(none yet)",
            excerpts=excerpts,
        )
        try:
            text = complete(
                model=self._config.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self._config.max_tokens,
                temperature=0.0,
                timeout=self._config.timeout_s,
                num_retries=0,
            )
        except Exception:
            logger.exception("Summary model %s failed", self._config.model)
            return ""
        return text.strip()
