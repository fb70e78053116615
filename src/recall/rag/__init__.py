"""recall query path — retrieval, fallback policy, context window, LLM clients."""

from recall.rag.context_window import build_context_window
from recall.rag.fallback import FallbackPolicy, Strategy
from recall.rag.retriever import RankedContext, Retriever, ScoredChunk

__all__ = [
    "FallbackPolicy",
    "RankedContext",
    "Retriever",
    "ScoredChunk",
    "Strategy",
    "build_context_window",
]
