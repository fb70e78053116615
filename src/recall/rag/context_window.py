"""Raw context-window prompt context, used whenever retrieval is not.

Built only from rows that always exist once a meeting has started (title,
notes, summary text, recent utterances), so it never depends on embeddings.
"""

from __future__ import annotations

from recall.db.models import Meeting, MeetingSummary, Utterance


def build_context_window(
    meeting_id: str,
    meeting: Meeting | None,
    summary: MeetingSummary | None,
    utterances: list[Utterance],
) -> str:
    """Assemble the fallback context. Never returns an empty string.

    Args:
        meeting_id: Used for the heading when the meeting has no title.
        meeting:    Meeting row, if one exists.
        summary:    Rolling summary; ``meeting.overview`` is used when absent.
        utterances: The last K utterances, oldest first.
    """
    title = meeting.title if meeting and meeting.title else meeting_id
    parts = [f"MEETING: {title}"]

    summary_text = summary.summary_text if summary else ""
    if not summary_text and meeting:
        summary_text = meeting.overview
    if summary_text:
        parts.append(f"\nSUMMARY:\n{summary_text}")

    if meeting and meeting.key_points:
        parts.append("\nKEY POINTS:\n" + "\n".join(f"- {p}" for p in meeting.key_points))

    if meeting and meeting.action_items:
        parts.append("\nACTION ITEMS:\n" + "\n".join(f"- {a}" for a in meeting.action_items))

    if utterances:
        transcript = "\n".join(f"[{u.speaker.label}]: {u.text}" for u in utterances)
        parts.append(f"\nRECENT TRANSCRIPT:\n{transcript}")

    return "\n".join(parts)
