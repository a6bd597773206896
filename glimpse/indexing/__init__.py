"""
Indexing - background embedding of pending memory records.
"""

from glimpse.indexing.rate_limiter import RateLimiter
from glimpse.indexing.embedding_worker import EmbeddingWorker, ProcessOutcome

__all__ = [
    "RateLimiter",
    "EmbeddingWorker",
    "ProcessOutcome",
]
