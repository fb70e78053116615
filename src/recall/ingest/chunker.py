"""Live transcript chunker.

Utterances accumulate in an ordered buffer that is closed into a chunk when:

- adding the next utterance would push the buffer past ``max_tokens``, or the
  buffer reaches ``max_tokens`` on its own;
- the next utterance starts more than ``max_span_ms`` after the buffer's first
  utterance;
- the speaker changes and the buffer already holds at least
  ``min_tokens_before_speaker_split`` tokens.

Sizes count the spoken text only; the ``Me:`` / ``Them:`` labels added by
:func:`render_utterances` are not charged. A single utterance larger than
``max_tokens`` becomes one chunk by itself, untruncated.
"""

from __future__ import annotations

import dataclasses
import logging

from recall.config import ChunkerCfg
from recall.db.models import Chunk, Speaker, Utterance
from recall.ingest.tokens import count_tokens

logger = logging.getLogger(__name__)


def render_utterances(utterances: list[Utterance]) -> str:
    """Join utterances as ``"Me: ..."`` / ``"Them: ..."`` lines."""
    return "\n".join(f"{u.speaker.label}: {u.text.strip()}" for u in utterances)


def spoken_tokens(utterances: list[Utterance]) -> int:
    """Token estimate of the utterances' text, excluding speaker labels."""
    return sum(count_tokens(u.text.strip()) for u in utterances)


class TranscriptChunker:
    """Turn a stream of utterances for one meeting into indexed chunks.

    Args:
        meeting_id: Meeting the produced chunks belong to.
        config: Chunk limits; defaults to :class:`ChunkerCfg`.
        start_index: ``chunk_index`` of the next chunk (non-zero when resuming
            a meeting that already has chunks).
    """

    def __init__(
        self,
        meeting_id: str,
        config: ChunkerCfg | None = None,
        start_index: int = 0,
    ) -> None:
        self.meeting_id = meeting_id
        self.config = config or ChunkerCfg()
        if self.config.max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        self._next_index = start_index
        self._buffer: list[Utterance] = []
        self._last_ts: int | None = None

    @property
    def next_index(self) -> int:
        return self._next_index

    @property
    def buffered(self) -> list[Utterance]:
        return list(self._buffer)

    def append(self, utterance: Utterance) -> list[Chunk]:
        """Buffer *utterance*; return the chunks it caused to be finalized (0–2)."""
        utterance = self._clamp(utterance)
        if not utterance.text.strip():
            return []

        finalized: list[Chunk] = []
        if self._buffer and self._closes_buffer(utterance):
            finalized.append(self._finalize())

        self._buffer.append(utterance)
        if spoken_tokens(self._buffer) >= self.config.max_tokens:
            finalized.append(self._finalize())
        return finalized

    def flush(self) -> Chunk | None:
        """Materialize whatever is buffered (meeting end). None if the buffer is empty."""
        if not self._buffer:
            return None
        return self._finalize()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _clamp(self, utterance: Utterance) -> Utterance:
        """Keep timestamps non-decreasing so chunk start times never go backwards."""
        if self._last_ts is not None and utterance.timestamp_ms < self._last_ts:
            logger.warning(
                "Out-of-order utterance in meeting %s (%d < %d); clamping timestamp",
                self.meeting_id,
                utterance.timestamp_ms,
                self._last_ts,
            )
            utterance = dataclasses.replace(utterance, timestamp_ms=self._last_ts)
        self._last_ts = utterance.timestamp_ms
        return utterance

    def _closes_buffer(self, incoming: Utterance) -> bool:
        cfg = self.config
        if incoming.timestamp_ms - self._buffer[0].timestamp_ms > cfg.max_span_ms:
            return True
        buffered_tokens = spoken_tokens(self._buffer)
        if (
            incoming.speaker != self._buffer[-1].speaker
            and buffered_tokens >= cfg.min_tokens_before_speaker_split
        ):
            return True
        combined = buffered_tokens + spoken_tokens([incoming])
        return combined > cfg.max_tokens

    def _finalize(self) -> Chunk:
        utterances, self._buffer = self._buffer, []
        text = render_utterances(utterances)
        speakers = {u.speaker for u in utterances}
        speaker: Speaker | None = speakers.pop() if len(speakers) == 1 else None
        chunk = Chunk(
            meeting_id=self.meeting_id,
            chunk_index=self._next_index,
            cleaned_text=text,
            token_count=spoken_tokens(utterances),
            start_ts=utterances[0].timestamp_ms,
            end_ts=utterances[-1].timestamp_ms,
            speaker=speaker,
        )
        self._next_index += 1
        logger.debug(
            "Chunk %d for meeting %s: %d utterances, %d tokens",
            chunk.chunk_index,
            self.meeting_id,
            len(utterances),
            chunk.token_count,
        )
        return chunk
