"""recall ingest pipeline — token estimate, transcript chunker, rolling summary."""

from recall.ingest.chunker import TranscriptChunker, render_utterances
from recall.ingest.summarizer import SummaryComposer
from recall.ingest.tokens import count_tokens

__all__ = [
    "SummaryComposer",
    "TranscriptChunker",
    "count_tokens",
    "render_utterances",
]
