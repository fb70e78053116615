"""MeetingMemory — the ingest and query entry points for one database.

All collaborators are passed in explicitly; one instance is bound to one
SQLite connection and must stay on the thread that created it. The embedding
worker runs separately with its own connection (see recall.queue.worker).

Ingest never waits on the embedding backend: chunks are stored and enqueued,
and a queue failure is logged and left for ``EmbeddingQueue.recover`` to
repair. Queries always resolve through :class:`FallbackPolicy` to either the
retrieval path or the raw context window.
"""

from __future__ import annotations

import logging
import re
import sqlite3
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from recall.config import RecallConfig
from recall.db.models import (
    Chunk,
    ChunkTarget,
    FollowupQuestions,
    QAInteraction,
    SummaryTarget,
    Utterance,
)
from recall.db.repository import Repository
from recall.db.vectors import VectorStore
from recall.errors import AnswerUnavailable, RecallError, RetrievalUnavailable, StoreIOError
from recall.ingest.chunker import TranscriptChunker
from recall.ingest.summarizer import SummaryComposer
from recall.queue.embedding_queue import EmbeddingQueue
from recall.rag.context_window import build_context_window
from recall.rag.fallback import FallbackPolicy, Strategy
from recall.rag.llm_client import (
    EmbeddingClient,
    LanguageModelClient,
    LiteLLMChatClient,
    LiteLLMEmbedder,
    complete,
)
from recall.rag.retriever import Retriever

logger = logging.getLogger(__name__)

_FOLLOWUP_PROMPT = """\
Suggest up to {count} short follow-up questions the user could ask next about this meeting.
Write one question per line, with no numbering and no other text.

{context}
"""

_LIST_MARKER = re.compile(r"^\s*(?:[-*\u2022]|\d+[.)])\s*")


@dataclass
class QueryResult:
    """Answer to one question.

    Attributes:
        answer_stream: Text fragments; the exchange is recorded once consumed.
        used_fallback: True when the answer came from the context window.
        context_text:  Prompt context handed to the language model.
    """

    answer_stream: Iterator[str]
    used_fallback: bool
    context_text: str


class MeetingMemory:
    """Chunk, summarise, and answer questions about meetings.

    Args:
        conn:     Open connection with the schema initialised.
        embedder: Embedding backend (query embeddings and queue drains).
        llm:      Streaming language model used to answer questions.
        config:   Full configuration.
        clock:    Epoch-seconds clock shared with the queue.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        embedder: EmbeddingClient,
        llm: LanguageModelClient,
        config: RecallConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or RecallConfig()
        self._llm = llm
        self._clock = clock
        self.repo = Repository(conn)
        self.store = VectorStore(conn, self.config.embedding.dimensions)
        self.queue = EmbeddingQueue(conn, self.store, embedder, self.config.queue, clock=clock)
        self.composer = SummaryComposer(
            self.repo, self.config.summary, on_update=self._enqueue_quietly
        )
        self.retriever = Retriever(self.store, embedder, self.config.retrieval)
        self.policy = FallbackPolicy(self.repo, self.store, self.config.fallback)
        self._chunkers: dict[str, TranscriptChunker] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, conn: sqlite3.Connection, config: RecallConfig) -> MeetingMemory:
        """Build an instance wired to the LiteLLM clients named in *config*."""
        embedder = LiteLLMEmbedder(
            config.embedding.model, config.embedding.dimensions, config.embedding.timeout_s
        )
        llm = LiteLLMChatClient(
            config.generation.model,
            max_tokens=config.generation.max_tokens,
            timeout_s=config.generation.timeout_s,
        )
        return cls(conn, embedder, llm, config)

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    def on_transcript_append(
        self, meeting_id: str, utterance: Utterance, title: str = ""
    ) -> list[Chunk]:
        """Persist *utterance* and store any chunks it completes.

        Returns:
            The chunks finalized by this utterance (usually none).

        Raises:
            StoreIOError: The utterance or a chunk could not be written.
        """
        with self._lock:
            self.repo.ensure_meeting(meeting_id, title=title, started_at_ms=utterance.timestamp_ms)
            chunker = self._chunker_for(meeting_id)
            self.repo.add_utterance(meeting_id, utterance)
            chunks = chunker.append(utterance)
            try:
                self._store_chunks(chunks)
            except StoreIOError:
                # Rebuilt from the persisted transcript on the next call.
                self._chunkers.pop(meeting_id, None)
                raise
        if chunks:
            self._maybe_summarize(meeting_id)
        return chunks

    def on_meeting_end(self, meeting_id: str, ended_at_ms: int | None = None) -> Chunk | None:
        """Flush the chunk buffer, run a final summary pass, and mark the meeting ended.

        Returns:
            The chunk produced by the flush, if the buffer held anything.
        """
        with self._lock:
            self.repo.ensure_meeting(meeting_id)
            chunker = self._chunker_for(meeting_id)
            try:
                tail = chunker.flush()
                if tail is not None:
                    self._store_chunks([tail])
            finally:
                self._chunkers.pop(meeting_id, None)

        self._summarize(meeting_id)
        end = ended_at_ms if ended_at_ms is not None else int(self._clock() * 1000)
        self.repo.end_meeting(meeting_id, end)
        logger.info("Meeting %s ended with %d chunks", meeting_id, self.repo.count_chunks(meeting_id))
        return tail

    def _chunker_for(self, meeting_id: str) -> TranscriptChunker:
        """Return the live chunker, rebuilding it from storage after a restart."""
        chunker = self._chunkers.get(meeting_id)
        if chunker is not None:
            return chunker

        last = self.repo.last_chunk(meeting_id)
        chunker = TranscriptChunker(
            meeting_id,
            self.config.chunker,
            start_index=last.chunk_index + 1 if last else 0,
        )
        pending = (
            self.repo.utterances_after(meeting_id, last.end_ts)
            if last
            else self.repo.list_utterances(meeting_id)
        )
        for utterance in pending:
            self._store_chunks(chunker.append(utterance))
        if pending:
            logger.debug("Re-buffered %d utterances for meeting %s", len(pending), meeting_id)
        self._chunkers[meeting_id] = chunker
        return chunker

    def _store_chunks(self, chunks: list[Chunk]) -> None:
        for chunk in chunks:
            chunk_id = self.repo.add_chunk(chunk)
            self._enqueue_quietly(ChunkTarget(meeting_id=chunk.meeting_id, chunk_id=chunk_id))

    def _enqueue_quietly(self, target: ChunkTarget | SummaryTarget) -> None:
        try:
            self.queue.enqueue(target)
        except RecallError:
            logger.exception(
                "Could not enqueue %s embedding for meeting %s; recovery will retry",
                target.kind,
                target.meeting_id,
            )

    def _maybe_summarize(self, meeting_id: str) -> None:
        try:
            due = self.composer.is_due(meeting_id, self.repo.count_chunks(meeting_id))
        except RecallError:
            logger.exception("Summary cadence check failed for meeting %s", meeting_id)
            return
        if due:
            self._summarize(meeting_id)

    def _summarize(self, meeting_id: str) -> None:
        try:
            self.composer.recompute(meeting_id, self.store.get_chunks_ordered(meeting_id))
        except RecallError:
            logger.exception("Summary update failed for meeting %s", meeting_id)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def query_meeting(self, meeting_id: str, question: str) -> QueryResult:
        """Answer *question* about *meeting_id*.

        Raises:
            AnswerUnavailable: The language model failed on both paths.
        """
        if self.policy.select_strategy(meeting_id) is Strategy.RAG:
            try:
                ranked = self.retriever.retrieve(meeting_id, question)
            except RetrievalUnavailable as exc:
                logger.info("Retrieval unavailable for meeting %s (%s)", meeting_id, exc.reason)
                self.policy.record_unavailable(meeting_id)
            else:
                self.policy.record_success(meeting_id)
                context = ranked.render()
                stream = self._open_stream(question, context)
                if stream is not None:
                    return QueryResult(
                        self._recorded(meeting_id, question, stream, used_fallback=False),
                        used_fallback=False,
                        context_text=context,
                    )
                logger.info("Falling back to context window for meeting %s", meeting_id)

        context = self.context_window(meeting_id)
        stream = self._open_stream(question, context)
        if stream is None:
            raise AnswerUnavailable(f"language model failed for meeting {meeting_id}")
        return QueryResult(
            self._recorded(meeting_id, question, stream, used_fallback=True),
            used_fallback=True,
            context_text=context,
        )

    def context_window(self, meeting_id: str) -> str:
        """Render the embedding-free context for *meeting_id*."""
        return build_context_window(
            meeting_id,
            self.repo.get_meeting(meeting_id),
            self.repo.get_summary(meeting_id),
            self.repo.recent_utterances(meeting_id, self.config.fallback.recent_utterances),
        )

    def _open_stream(self, question: str, context: str) -> Iterator[str] | None:
        """Start the model stream and pull its first fragment. None on failure or empty output."""
        try:
            iterator = iter(self._llm.stream(question, context))
            first = next(iterator, None)
        except Exception:
            logger.exception("Language model stream failed to start")
            return None
        if not first:
            logger.warning("Language model returned an empty answer")
            return None
        return _prepend(first, iterator)

    def _recorded(
        self, meeting_id: str, question: str, stream: Iterator[str], used_fallback: bool
    ) -> Iterator[str]:
        parts: list[str] = []
        try:
            for fragment in stream:
                parts.append(fragment)
                yield fragment
        except Exception as exc:
            logger.exception("Language model stream broke off for meeting %s", meeting_id)
            raise AnswerUnavailable(str(exc)) from exc

        try:
            self.repo.add_interaction(
                QAInteraction(
                    meeting_id=meeting_id,
                    kind="chat",
                    question=question,
                    answer="".join(parts),
                    used_fallback=used_fallback,
                    created_at_ms=int(self._clock() * 1000),
                )
            )
        except RecallError:
            logger.exception("Could not record chat interaction for meeting %s", meeting_id)

    # ------------------------------------------------------------------
    # Follow-ups
    # ------------------------------------------------------------------

    def suggest_followups(self, meeting_id: str, count: int = 3) -> FollowupQuestions:
        """Ask the language model for follow-up questions and record them.

        Built from the context window, so it works before anything is embedded.

        Raises:
            AnswerUnavailable: The model failed or suggested nothing.
        """
        gen = self.config.generation
        prompt = _FOLLOWUP_PROMPT.format(count=count, context=self.context_window(meeting_id))
        try:
            text = complete(
                model=gen.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=gen.max_tokens,
                temperature=0.2,
                timeout=gen.timeout_s,
            )
        except Exception as exc:
            logger.exception("Follow-up model %s failed for meeting %s", gen.model, meeting_id)
            raise AnswerUnavailable(str(exc)) from exc

        items = parse_followups(text)[:count]
        if not items:
            raise AnswerUnavailable(f"no follow-up questions for meeting {meeting_id}")
        followups = FollowupQuestions(
            meeting_id=meeting_id, items=items, created_at_ms=int(self._clock() * 1000)
        )
        self.repo.add_interaction(followups)
        return followups


def parse_followups(text: str) -> list[str]:
    """Split model output into questions, dropping bullets and numbering."""
    items = []
    for line in text.splitlines():
        item = _LIST_MARKER.sub("", line).strip()
        if item:
            items.append(item)
    return items


def _prepend(first: str, rest: Iterator[str]) -> Iterator[str]:
    yield first
    yield from rest
