"""
Error types for Glimpse.

Every failure raised by the library derives from GlimpseError so callers can
catch the whole family at a boundary.
"""

from __future__ import annotations


class GlimpseError(Exception):
    """Base exception for Glimpse errors."""
    pass


# ============================================================================
# Lookup
# ============================================================================


class NotFoundError(GlimpseError):
    """An unknown record or store id was referenced."""
    pass


class RecordNotFoundError(NotFoundError):
    """Memory record id not present in the store."""

    def __init__(self, record_id: str):
        super().__init__(f"Memory with id {record_id} not found")
        self.record_id = record_id


class StoreNotFoundError(NotFoundError):
    """Store id not present in the registry."""

    def __init__(self, store_id: str):
        super().__init__(f"Store with id {store_id} not found")
        self.store_id = store_id


# ============================================================================
# Persistence
# ============================================================================


class PersistenceError(GlimpseError):
    """Reading or writing durable state failed."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class StoreCorruptedError(PersistenceError):
    """A store file exists but cannot be parsed or validated."""
    pass


class RegistryCorruptedError(PersistenceError):
    """The registry file exists but cannot be parsed or validated."""
    pass


# ============================================================================
# Providers
# ============================================================================


class ProviderError(GlimpseError):
    """Base exception for vision/embedding provider failures."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: dict | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class AuthenticationError(ProviderError):
    """Authentication failed."""
    pass


class RateLimitError(ProviderError):
    """Rate limit exceeded."""
    pass


# ============================================================================
# Vectors
# ============================================================================


class DimensionMismatchError(GlimpseError):
    """Two vectors compared for similarity have different lengths."""

    def __init__(self, expected: int, actual: int, record_id: str | None = None):
        message = f"Vector dimension mismatch: expected {expected}, got {actual}"
        if record_id:
            message = f"{message} (record {record_id})"
        super().__init__(message)
        self.expected = expected
        self.actual = actual
        self.record_id = record_id


# ============================================================================
# Invariants
# ============================================================================


class InvariantViolationError(GlimpseError):
    """An operation would break a data-model invariant."""
    pass


class IllegalTransitionError(InvariantViolationError):
    """A record status change is not in the transition table."""

    def __init__(self, record_id: str, current: str, requested: str):
        super().__init__(
            f"Illegal status transition for {record_id}: {current} -> {requested}"
        )
        self.record_id = record_id
        self.current = current
        self.requested = requested


class LastStoreError(InvariantViolationError):
    """Deleting the only remaining store is not allowed."""

    def __init__(self, store_id: str):
        super().__init__(f"Cannot delete {store_id}: it is the last remaining store")
        self.store_id = store_id
