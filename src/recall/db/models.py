"""Domain models for the recall database layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Literal, Union

_SELF_LABELS = frozenset({"self", "me", "user"})


class Speaker(str, Enum):
    SELF = "self"
    OTHER = "other"

    @property
    def label(self) -> str:
        """Normalised label used in chunk text: "Me" or "Them"."""
        return "Me" if self is Speaker.SELF else "Them"

    @classmethod
    def parse(cls, raw: str) -> Speaker:
        """Map a raw transcription speaker tag onto SELF/OTHER."""
        return cls.SELF if str(raw).strip().lower() in _SELF_LABELS else cls.OTHER


@dataclass(frozen=True)
class Utterance:
    speaker: Speaker
    text: str
    timestamp_ms: int


@dataclass
class Meeting:
    id: str
    title: str = ""
    started_at_ms: int | None = None
    ended_at_ms: int | None = None
    overview: str = ""
    key_points: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    created_at: str | None = None

    @property
    def is_ended(self) -> bool:
        return self.ended_at_ms is not None


@dataclass
class Chunk:
    meeting_id: str
    chunk_index: int
    cleaned_text: str
    token_count: int
    start_ts: int
    end_ts: int
    speaker: Speaker | None = None
    embedding: list[float] | None = None
    created_at: str | None = None
    id: int | None = None  # set after insert; None for unsaved chunks


@dataclass
class MeetingSummary:
    meeting_id: str
    summary_text: str
    covered_chunk_index: int = -1
    embedding: list[float] | None = None
    updated_at: str | None = None


# ------------------------------------------------------------------
# Embedding jobs
# ------------------------------------------------------------------


class JobStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ChunkTarget:
    """Embedding job target: one transcript chunk."""

    kind: ClassVar[str] = "chunk"
    meeting_id: str
    chunk_id: int


@dataclass(frozen=True)
class SummaryTarget:
    """Embedding job target: the meeting's rolling summary."""

    kind: ClassVar[str] = "summary"
    meeting_id: str


JobTarget = Union[ChunkTarget, SummaryTarget]


@dataclass
class EmbeddingJob:
    id: int
    target: JobTarget
    status: JobStatus
    retry_count: int = 0
    error_message: str | None = None
    not_before: float | None = None
    claimed_at: float | None = None
    created_at: float = 0.0
    processed_at: float | None = None

    @property
    def meeting_id(self) -> str:
        return self.target.meeting_id


# ------------------------------------------------------------------
# Interactions
# ------------------------------------------------------------------

QAKind = Literal["assist", "followup", "chat"]


@dataclass
class QAInteraction:
    """A question answered for the user during or after a meeting."""

    meeting_id: str
    kind: QAKind
    question: str
    answer: str
    used_fallback: bool = False
    created_at_ms: int = 0
    id: int | None = None


@dataclass
class FollowupQuestions:
    """A list of suggested follow-up questions."""

    kind: ClassVar[str] = "followup_questions"
    meeting_id: str
    items: list[str] = field(default_factory=list)
    created_at_ms: int = 0
    id: int | None = None


Interaction = Union[QAInteraction, FollowupQuestions]
