"""Tests for the embedding-free context window."""

from __future__ import annotations

from recall.db.models import Meeting, MeetingSummary, Speaker, Utterance
from recall.rag.context_window import build_context_window


def _utterances():
    return [
        Utterance(Speaker.OTHER, "Shall we ship Friday?", 1_000),
        Utterance(Speaker.SELF, "Yes, if QA signs off.", 2_000),
    ]


def test_minimal_context_uses_meeting_id():
    text = build_context_window("m1", None, None, [])
    assert text == "MEETING: m1"


def test_full_context_section_order():
    meeting = Meeting(
        id="m1",
        title="Release sync",
        key_points=["Ship on Friday"],
        action_items=["Alice runs QA"],
    )
    summary = MeetingSummary("m1", "Discussed the release date.")

    text = build_context_window("m1", meeting, summary, _utterances())

    assert text.startswith("MEETING: Release sync\n")
    order = [
        text.index("SUMMARY:\nDiscussed the release date."),
        text.index("KEY POINTS:\n- Ship on Friday"),
        text.index("ACTION ITEMS:\n- Alice runs QA"),
        text.index("RECENT TRANSCRIPT:\n[Them]: Shall we ship Friday?\n[Me]: Yes, if QA signs off."),
    ]
    assert order == sorted(order)


def test_overview_used_when_no_summary():
    meeting = Meeting(id="m1", overview="Weekly planning.")
    text = build_context_window("m1", meeting, None, [])
    assert "SUMMARY:\nWeekly planning." in text


def test_summary_wins_over_overview():
    meeting = Meeting(id="m1", overview="Old overview.")
    summary = MeetingSummary("m1", "Fresh summary.")
    text = build_context_window("m1", meeting, summary, [])
    assert "Fresh summary." in text
    assert "Old overview." not in text


def test_transcript_only():
    text = build_context_window("m1", Meeting(id="m1"), None, _utterances())
    assert "SUMMARY" not in text
    assert "[Me]: Yes, if QA signs off." in text
