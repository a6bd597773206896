"""
Glimpse core - data models and error taxonomy.
"""

from glimpse.core.errors import (
    GlimpseError,
    NotFoundError,
    RecordNotFoundError,
    StoreNotFoundError,
    PersistenceError,
    StoreCorruptedError,
    RegistryCorruptedError,
    ProviderError,
    AuthenticationError,
    RateLimitError,
    DimensionMismatchError,
    InvariantViolationError,
    IllegalTransitionError,
    LastStoreError,
)
from glimpse.core.models import (
    EmbeddingStatus,
    MemoryRecord,
    StoreState,
    StoreStats,
    StoreEntry,
    RegistryState,
    RetrievalStatus,
    RetrievalResult,
    RetrievalOutcome,
)

__all__ = [
    # Errors
    "GlimpseError",
    "NotFoundError",
    "RecordNotFoundError",
    "StoreNotFoundError",
    "PersistenceError",
    "StoreCorruptedError",
    "RegistryCorruptedError",
    "ProviderError",
    "AuthenticationError",
    "RateLimitError",
    "DimensionMismatchError",
    "InvariantViolationError",
    "IllegalTransitionError",
    "LastStoreError",
    # Models
    "EmbeddingStatus",
    "MemoryRecord",
    "StoreState",
    "StoreStats",
    "StoreEntry",
    "RegistryState",
    "RetrievalStatus",
    "RetrievalResult",
    "RetrievalOutcome",
]
