"""recall — live meeting memory: chunking, durable embedding queue, retrieval with fallback."""

__version__ = "0.1.0"
