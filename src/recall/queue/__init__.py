"""recall embedding queue — durable job table, drain loop, background worker."""

from recall.queue.embedding_queue import EmbeddingQueue, RecoveryReport
from recall.queue.worker import EmbeddingWorker

__all__ = ["EmbeddingQueue", "EmbeddingWorker", "RecoveryReport"]
