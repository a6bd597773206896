"""
Data models for Glimpse.

Defines memory records and their indexing state machine, the persisted store
and registry documents, and the shapes returned to callers (stats snapshots
and retrieval outcomes).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


STORE_SCHEMA_VERSION = "1.0.0"
REGISTRY_SCHEMA_VERSION = "1.0.0"


# ============================================================================
# Embedding Status
# ============================================================================


class EmbeddingStatus(str, Enum):
    """Indexing state of a memory record."""
    PENDING = "pending"          # Waiting for the worker
    PROCESSING = "processing"    # Provider call in flight
    COMPLETED = "completed"      # Embedding stored
    FAILED = "failed"            # Provider call failed; terminal

    def can_transition(self, target: "EmbeddingStatus") -> bool:
        """Whether ``self -> target`` is in the transition table."""
        return target in _TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]


_TRANSITIONS: dict[EmbeddingStatus, frozenset[EmbeddingStatus]] = {
    EmbeddingStatus.PENDING: frozenset({EmbeddingStatus.PROCESSING}),
    EmbeddingStatus.PROCESSING: frozenset({EmbeddingStatus.COMPLETED, EmbeddingStatus.FAILED}),
    EmbeddingStatus.COMPLETED: frozenset(),
    EmbeddingStatus.FAILED: frozenset(),
}


# ============================================================================
# Memory Record
# ============================================================================


class MemoryRecord(BaseModel):
    """One captured-and-described unit of content plus its indexing state.

    Records are frozen; the store replaces a record with an updated copy
    when the worker moves it through the status table.

    Attributes:
        id: Unique, creation-sortable identifier
        capture_time: Capture time in epoch milliseconds
        media_ref: Opaque handle to the captured content (e.g. image path)
        description: Vision-model description of the capture
        embedding: Embedding vector; present iff status is completed
        status: Indexing state
        created_at: Record creation time in epoch milliseconds
        embedded_at: Completion time in epoch milliseconds
    """

    model_config = ConfigDict(frozen=True)

    id: str
    capture_time: int
    media_ref: str
    description: str
    embedding: Optional[list[float]] = None
    status: EmbeddingStatus = EmbeddingStatus.PENDING
    created_at: int
    embedded_at: Optional[int] = None

    @model_validator(mode="after")
    def _check_embedding_invariant(self) -> "MemoryRecord":
        completed = self.status is EmbeddingStatus.COMPLETED
        if completed != (self.embedding is not None):
            raise ValueError(
                f"record {self.id}: embedding must be present iff status is completed "
                f"(status={self.status.value})"
            )
        if completed and not self.embedding:
            raise ValueError(f"record {self.id}: completed record has an empty embedding")
        if completed != (self.embedded_at is not None):
            raise ValueError(
                f"record {self.id}: embedded_at must be set iff status is completed"
            )
        return self

    @property
    def is_indexed(self) -> bool:
        return self.status is EmbeddingStatus.COMPLETED

    def summary(self, width: int = 120) -> str:
        """Description truncated for display."""
        if len(self.description) <= width:
            return self.description
        return self.description[:width].rstrip() + "..."


# ============================================================================
# Store Document
# ============================================================================


class StoreState(BaseModel):
    """Persisted content of one memory store, records in capture order."""

    records: list[MemoryRecord] = Field(default_factory=list)
    version: str = STORE_SCHEMA_VERSION

    @field_validator("records")
    @classmethod
    def _unique_ids(cls, records: list[MemoryRecord]) -> list[MemoryRecord]:
        seen: set[str] = set()
        for record in records:
            if record.id in seen:
                raise ValueError(f"duplicate record id {record.id}")
            seen.add(record.id)
        return records


class StoreStats(BaseModel):
    """Counts per status, computed on demand."""

    total: int = 0
    completed: int = 0
    pending: int = 0
    processing: int = 0
    failed: int = 0

    @property
    def awaiting_index(self) -> int:
        """Records that will still be indexed (pending + processing)."""
        return self.pending + self.processing


# ============================================================================
# Registry Document
# ============================================================================


class StoreEntry(BaseModel):
    """Registry metadata for one named store."""

    id: str
    name: str
    location: str
    created_at: int
    last_accessed_at: int


class RegistryState(BaseModel):
    """Persisted registry of named stores."""

    stores: list[StoreEntry] = Field(default_factory=list)
    active_id: Optional[str] = None
    version: str = REGISTRY_SCHEMA_VERSION

    def find(self, store_id: str) -> StoreEntry | None:
        for entry in self.stores:
            if entry.id == store_id:
                return entry
        return None


# ============================================================================
# Retrieval
# ============================================================================


class RetrievalStatus(str, Enum):
    """Why a retrieval returned what it did."""
    EMPTY_CORPUS = "empty_corpus"    # Nothing indexed yet
    NO_MATCH = "no_match"            # Searched, nothing cleared the threshold
    MATCHED = "matched"


class RetrievalResult(BaseModel):
    """A ranked record with its raw cosine similarity."""

    record: MemoryRecord
    similarity: float
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.record.id,
            "capture_time": self.record.capture_time,
            "media_ref": self.record.media_ref,
            "description": self.record.description,
            "similarity": self.similarity,
            "score": self.score,
        }


class RetrievalOutcome(BaseModel):
    """Result of a top-K query.

    Attributes:
        status: Distinguishes an empty corpus from a search with no match
        results: Ranked results, best first
        indexed: Number of completed records that were searched
        pending: Records still awaiting indexing (pending + processing)
    """

    status: RetrievalStatus
    results: list[RetrievalResult] = Field(default_factory=list)
    indexed: int = 0
    pending: int = 0

    @property
    def is_empty_corpus(self) -> bool:
        return self.status is RetrievalStatus.EMPTY_CORPUS

    @property
    def indexing_in_progress(self) -> bool:
        return self.pending > 0
