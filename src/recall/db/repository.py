"""Repository for meetings, transcripts, chunks, summaries, and interactions.

Embedding columns are owned by :class:`recall.db.vectors.VectorStore` and the
``embedding_queue`` table by :class:`recall.queue.EmbeddingQueue`; this module
never writes either.
"""

from __future__ import annotations

import json
import sqlite3

from recall.db.connection import store_io
from recall.db.models import (
    Chunk,
    FollowupQuestions,
    Interaction,
    Meeting,
    MeetingSummary,
    QAInteraction,
    Speaker,
    Utterance,
)
from recall.db.vectors import CHUNK_COLUMNS, row_to_chunk, row_to_summary

_MEETING_COLUMNS = (
    "id, title, started_at_ms, ended_at_ms, overview, key_points, action_items, created_at"
)


class Repository:
    """Data access layer for all recall entities except embeddings and jobs.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use. Every ``sqlite3.Error`` is re-raised as
    :class:`recall.errors.StoreIOError`.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see recall.db.schema.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Meetings
    # ------------------------------------------------------------------

    def ensure_meeting(
        self, meeting_id: str, title: str = "", started_at_ms: int | None = None
    ) -> Meeting:
        """Create the meeting row if it is missing and return it."""
        with store_io("create meeting"):
            self._conn.execute(
                """
                INSERT INTO meetings (id, title, started_at_ms) VALUES (?, ?, ?)
                ON CONFLICT(id) DO NOTHING
                """,
                (meeting_id, title, started_at_ms),
            )
            self._conn.commit()
        meeting = self.get_meeting(meeting_id)
        assert meeting is not None
        return meeting

    def get_meeting(self, meeting_id: str) -> Meeting | None:
        """Return a meeting by ID, or None if not found."""
        with store_io("read meeting"):
            row = self._conn.execute(
                f"SELECT {_MEETING_COLUMNS} FROM meetings WHERE id = ?", (meeting_id,)
            ).fetchone()
        return _row_to_meeting(row) if row else None

    def list_meetings(self, limit: int = 50) -> list[Meeting]:
        """Return meetings, most recently created first."""
        with store_io("list meetings"):
            rows = self._conn.execute(
                f"SELECT {_MEETING_COLUMNS} FROM meetings ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [_row_to_meeting(r) for r in rows]

    def end_meeting(self, meeting_id: str, ended_at_ms: int) -> None:
        """Record the meeting end time."""
        with store_io("end meeting"):
            self._conn.execute(
                "UPDATE meetings SET ended_at_ms = ? WHERE id = ?", (ended_at_ms, meeting_id)
            )
            self._conn.commit()

    def update_notes(
        self,
        meeting_id: str,
        *,
        overview: str | None = None,
        key_points: list[str] | None = None,
        action_items: list[str] | None = None,
    ) -> bool:
        """Overwrite the provided note fields; omitted fields are kept.

        Returns:
            True if the meeting exists.
        """
        meeting = self.get_meeting(meeting_id)
        if meeting is None:
            return False
        with store_io("update meeting notes"):
            self._conn.execute(
                "UPDATE meetings SET overview = ?, key_points = ?, action_items = ? WHERE id = ?",
                (
                    meeting.overview if overview is None else overview,
                    json.dumps(meeting.key_points if key_points is None else key_points),
                    json.dumps(meeting.action_items if action_items is None else action_items),
                    meeting_id,
                ),
            )
            self._conn.commit()
        return True

    def delete_meeting(self, meeting_id: str) -> bool:
        """Delete a meeting; transcript, chunks, summary and interactions cascade.

        Queue jobs are left in place and complete as no-ops when drained.
        """
        with store_io("delete meeting"):
            cur = self._conn.execute("DELETE FROM meetings WHERE id = ?", (meeting_id,))
            self._conn.commit()
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Transcript
    # ------------------------------------------------------------------

    def add_utterance(self, meeting_id: str, utterance: Utterance) -> int:
        """Persist a transcribed utterance. Returns its row id."""
        with store_io("store utterance"):
            cur = self._conn.execute(
                "INSERT INTO transcripts (meeting_id, speaker, content, timestamp_ms) VALUES (?, ?, ?, ?)",
                (meeting_id, utterance.speaker.value, utterance.text, utterance.timestamp_ms),
            )
            self._conn.commit()
        return cur.lastrowid

    def list_utterances(self, meeting_id: str) -> list[Utterance]:
        """Return the full transcript in timestamp order."""
        with store_io("read transcript"):
            rows = self._conn.execute(
                """
                SELECT speaker, content, timestamp_ms FROM transcripts
                WHERE meeting_id = ? ORDER BY timestamp_ms, id
                """,
                (meeting_id,),
            ).fetchall()
        return [_row_to_utterance(r) for r in rows]

    def recent_utterances(self, meeting_id: str, limit: int) -> list[Utterance]:
        """Return the last *limit* utterances, oldest first."""
        with store_io("read transcript"):
            rows = self._conn.execute(
                """
                SELECT speaker, content, timestamp_ms FROM transcripts
                WHERE meeting_id = ? ORDER BY timestamp_ms DESC, id DESC LIMIT ?
                """,
                (meeting_id, limit),
            ).fetchall()
        return [_row_to_utterance(r) for r in reversed(rows)]

    def utterances_after(self, meeting_id: str, timestamp_ms: int) -> list[Utterance]:
        """Return utterances strictly newer than *timestamp_ms*, oldest first."""
        with store_io("read transcript"):
            rows = self._conn.execute(
                """
                SELECT speaker, content, timestamp_ms FROM transcripts
                WHERE meeting_id = ? AND timestamp_ms > ? ORDER BY timestamp_ms, id
                """,
                (meeting_id, timestamp_ms),
            ).fetchall()
        return [_row_to_utterance(r) for r in rows]

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def add_chunk(self, chunk: Chunk) -> int:
        """Insert *chunk* (without embedding). Sets and returns ``chunk.id``."""
        with store_io("store chunk"):
            cur = self._conn.execute(
                """
                INSERT INTO chunks (meeting_id, chunk_index, speaker, start_timestamp_ms,
                                    end_timestamp_ms, cleaned_text, token_count)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    chunk.meeting_id,
                    chunk.chunk_index,
                    chunk.speaker.value if chunk.speaker else None,
                    chunk.start_ts,
                    chunk.end_ts,
                    chunk.cleaned_text,
                    chunk.token_count,
                ),
            )
            self._conn.commit()
        chunk.id = cur.lastrowid
        return chunk.id

    def get_chunk(self, chunk_id: int) -> Chunk | None:
        """Return a chunk by id, or None if not found."""
        with store_io("read chunk"):
            row = self._conn.execute(
                f"SELECT {CHUNK_COLUMNS} FROM chunks WHERE id = ?", (chunk_id,)
            ).fetchone()
        return row_to_chunk(row) if row else None

    def count_chunks(self, meeting_id: str) -> int:
        """Return the number of chunks belonging to *meeting_id*."""
        with store_io("count chunks"):
            return self._conn.execute(
                "SELECT COUNT(*) FROM chunks WHERE meeting_id = ?", (meeting_id,)
            ).fetchone()[0]

    def last_chunk(self, meeting_id: str) -> Chunk | None:
        """Return the highest-index chunk of *meeting_id*, or None."""
        with store_io("read chunk"):
            row = self._conn.execute(
                f"SELECT {CHUNK_COLUMNS} FROM chunks WHERE meeting_id = ? ORDER BY chunk_index DESC LIMIT 1",
                (meeting_id,),
            ).fetchone()
        return row_to_chunk(row) if row else None

    # ------------------------------------------------------------------
    # Meeting summary
    # ------------------------------------------------------------------

    def get_summary(self, meeting_id: str) -> MeetingSummary | None:
        """Return the live summary row for *meeting_id*, or None."""
        with store_io("read summary"):
            row = self._conn.execute(
                """
                SELECT meeting_id, summary_text, covered_chunk_index, embedding, updated_at
                FROM meeting_summaries WHERE meeting_id = ?
                """,
                (meeting_id,),
            ).fetchone()
        return row_to_summary(row) if row else None

    def save_summary(self, meeting_id: str, summary_text: str, covered_chunk_index: int) -> None:
        """Overwrite the summary text and clear its now-stale embedding."""
        with store_io("store summary"):
            self._conn.execute(
                """
                INSERT INTO meeting_summaries (meeting_id, summary_text, covered_chunk_index)
                VALUES (?, ?, ?)
                ON CONFLICT(meeting_id) DO UPDATE SET
                    summary_text = excluded.summary_text,
                    covered_chunk_index = excluded.covered_chunk_index,
                    embedding = NULL,
                    updated_at = datetime('now')
                """,
                (meeting_id, summary_text, covered_chunk_index),
            )
            self._conn.commit()

    # ------------------------------------------------------------------
    # Interactions
    # ------------------------------------------------------------------

    def add_interaction(self, interaction: Interaction) -> int:
        """Persist a chat/assist exchange or a follow-up question list."""
        if isinstance(interaction, QAInteraction):
            values = (
                interaction.meeting_id,
                interaction.kind,
                interaction.created_at_ms,
                interaction.question,
                interaction.answer,
                int(interaction.used_fallback),
                None,
            )
        else:
            values = (
                interaction.meeting_id,
                interaction.kind,
                interaction.created_at_ms,
                None,
                None,
                0,
                json.dumps(interaction.items),
            )
        with store_io("store interaction"):
            cur = self._conn.execute(
                """
                INSERT INTO interactions (meeting_id, kind, created_at_ms, question, answer,
                                          used_fallback, items)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                values,
            )
            self._conn.commit()
        interaction.id = cur.lastrowid
        return interaction.id

    def list_interactions(self, meeting_id: str) -> list[Interaction]:
        """Return all interactions for *meeting_id*, oldest first."""
        with store_io("read interactions"):
            rows = self._conn.execute(
                """
                SELECT id, meeting_id, kind, created_at_ms, question, answer, used_fallback, items
                FROM interactions WHERE meeting_id = ? ORDER BY created_at_ms, id
                """,
                (meeting_id,),
            ).fetchall()
        return [_row_to_interaction(r) for r in rows]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_meeting(row: sqlite3.Row) -> Meeting:
    return Meeting(
        id=row["id"],
        title=row["title"],
        started_at_ms=row["started_at_ms"],
        ended_at_ms=row["ended_at_ms"],
        overview=row["overview"],
        key_points=_json_list(row["key_points"]),
        action_items=_json_list(row["action_items"]),
        created_at=row["created_at"],
    )


def _row_to_utterance(row: sqlite3.Row) -> Utterance:
    return Utterance(
        speaker=Speaker(row["speaker"]),
        text=row["content"],
        timestamp_ms=row["timestamp_ms"],
    )


def _row_to_interaction(row: sqlite3.Row) -> Interaction:
    if row["kind"] == FollowupQuestions.kind:
        return FollowupQuestions(
            id=row["id"],
            meeting_id=row["meeting_id"],
            items=_json_list(row["items"]),
            created_at_ms=row["created_at_ms"],
        )
    return QAInteraction(
        id=row["id"],
        meeting_id=row["meeting_id"],
        kind=row["kind"],
        question=row["question"] or "",
        answer=row["answer"] or "",
        used_fallback=bool(row["used_fallback"]),
        created_at_ms=row["created_at_ms"],
    )


def _json_list(raw: str | None) -> list[str]:
    """Decode a JSON array column; anything else decodes to an empty list."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]
