"""Exception taxonomy shared by the ingest, queue, and query paths.

``RetrievalUnavailable`` is not a fault: it marks the expected state in which
the retriever has nothing usable and the caller must take the context-window
path instead.
"""

from __future__ import annotations


class RecallError(Exception):
    """Base class for all recall errors."""


class EmbeddingBackendError(RecallError):
    """The embedding backend failed transiently (timeout, rate limit, bad payload)."""


class EmbeddingDimensionError(EmbeddingBackendError):
    """The backend returned a vector of the wrong length. Never retried."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Embedding has {actual} dimensions, expected {expected}."
        )
        self.expected = expected
        self.actual = actual


class StoreIOError(RecallError):
    """A read or write against the durable store failed."""


class RetrievalUnavailable(RecallError):
    """Retrieval cannot produce a context for this query.

    Attributes:
        reason: Short machine-friendly cause, e.g. ``"no_embeddings"``.
    """

    def __init__(self, reason: str, detail: str = "") -> None:
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail


class AnswerUnavailable(RecallError):
    """Neither the retrieval path nor the context-window path produced an answer."""

    USER_MESSAGE = "Couldn't get a response. Please try again."

    def __init__(self, detail: str = "") -> None:
        super().__init__(self.USER_MESSAGE)
        self.detail = detail
