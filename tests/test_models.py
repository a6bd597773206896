"""Model Tests.

Tests for memory records, the status transition table and store documents.
"""

import unittest

from pydantic import ValidationError

from glimpse.core.models import (
    EmbeddingStatus,
    MemoryRecord,
    RegistryState,
    RetrievalOutcome,
    RetrievalStatus,
    StoreEntry,
    StoreState,
    StoreStats,
)


def make_record(**overrides) -> MemoryRecord:
    data = {
        "id": "mem_0000000000001_000001_abc",
        "capture_time": 1_000,
        "media_ref": "shots/1.png",
        "description": "A terminal running tests",
        "created_at": 1_000,
    }
    data.update(overrides)
    return MemoryRecord(**data)


class EmbeddingStatusTest(unittest.TestCase):
    """Test the status transition table."""

    def test_allowed_transitions(self) -> None:
        """Test that only the forward transitions are allowed."""
        self.assertTrue(EmbeddingStatus.PENDING.can_transition(EmbeddingStatus.PROCESSING))
        self.assertTrue(EmbeddingStatus.PROCESSING.can_transition(EmbeddingStatus.COMPLETED))
        self.assertTrue(EmbeddingStatus.PROCESSING.can_transition(EmbeddingStatus.FAILED))

    def test_forbidden_transitions(self) -> None:
        """Test that skipping, reversing or leaving a terminal state is rejected."""
        self.assertFalse(EmbeddingStatus.PENDING.can_transition(EmbeddingStatus.COMPLETED))
        self.assertFalse(EmbeddingStatus.PENDING.can_transition(EmbeddingStatus.FAILED))
        self.assertFalse(EmbeddingStatus.PROCESSING.can_transition(EmbeddingStatus.PENDING))
        self.assertFalse(EmbeddingStatus.COMPLETED.can_transition(EmbeddingStatus.PENDING))
        self.assertFalse(EmbeddingStatus.FAILED.can_transition(EmbeddingStatus.PROCESSING))

    def test_terminal_states(self) -> None:
        self.assertTrue(EmbeddingStatus.COMPLETED.is_terminal)
        self.assertTrue(EmbeddingStatus.FAILED.is_terminal)
        self.assertFalse(EmbeddingStatus.PENDING.is_terminal)
        self.assertFalse(EmbeddingStatus.PROCESSING.is_terminal)


class MemoryRecordTest(unittest.TestCase):
    """Test MemoryRecord validation."""

    def test_new_record_is_pending_without_embedding(self) -> None:
        record = make_record()
        self.assertEqual(record.status, EmbeddingStatus.PENDING)
        self.assertIsNone(record.embedding)
        self.assertIsNone(record.embedded_at)
        self.assertFalse(record.is_indexed)

    def test_completed_record_requires_embedding(self) -> None:
        """Test that a completed record without an embedding is rejected."""
        with self.assertRaises(ValidationError):
            make_record(status=EmbeddingStatus.COMPLETED, embedded_at=2_000)

    def test_completed_record_rejects_empty_embedding(self) -> None:
        with self.assertRaises(ValidationError):
            make_record(status=EmbeddingStatus.COMPLETED, embedding=[], embedded_at=2_000)

    def test_pending_record_rejects_embedding(self) -> None:
        """Test that an embedding on a non-completed record is rejected."""
        with self.assertRaises(ValidationError):
            make_record(embedding=[0.1, 0.2])

    def test_embedded_at_only_when_completed(self) -> None:
        with self.assertRaises(ValidationError):
            make_record(status=EmbeddingStatus.FAILED, embedded_at=2_000)
        with self.assertRaises(ValidationError):
            make_record(status=EmbeddingStatus.COMPLETED, embedding=[1.0])

    def test_completed_record(self) -> None:
        record = make_record(
            status=EmbeddingStatus.COMPLETED, embedding=[0.1, 0.2], embedded_at=2_000
        )
        self.assertTrue(record.is_indexed)
        self.assertEqual(record.embedding, [0.1, 0.2])

    def test_records_are_frozen(self) -> None:
        record = make_record()
        with self.assertRaises(ValidationError):
            record.status = EmbeddingStatus.PROCESSING

    def test_status_round_trips_as_string(self) -> None:
        """Test that the status is stored as its plain string value."""
        record = make_record(status=EmbeddingStatus.FAILED)
        dumped = record.model_dump(mode="json")
        self.assertEqual(dumped["status"], "failed")
        self.assertEqual(MemoryRecord.model_validate(dumped), record)

    def test_summary_truncates_long_descriptions(self) -> None:
        record = make_record(description="x" * 200)
        self.assertEqual(len(record.summary(50)), 53)
        self.assertTrue(record.summary(50).endswith("..."))
        self.assertEqual(make_record().summary(), "A terminal running tests")


class StoreDocumentTest(unittest.TestCase):
    """Test the persisted store and registry documents."""

    def test_store_rejects_duplicate_ids(self) -> None:
        record = make_record()
        with self.assertRaises(ValidationError):
            StoreState(records=[record, record])

    def test_store_has_version(self) -> None:
        self.assertEqual(StoreState().version, "1.0.0")
        self.assertEqual(RegistryState().version, "1.0.0")

    def test_registry_find(self) -> None:
        entry = StoreEntry(
            id="db_1", name="Work", location="/tmp/db_1.json", created_at=1, last_accessed_at=1
        )
        registry = RegistryState(stores=[entry], active_id="db_1")
        self.assertEqual(registry.find("db_1"), entry)
        self.assertIsNone(registry.find("db_2"))

    def test_stats_awaiting_index(self) -> None:
        stats = StoreStats(total=6, completed=2, pending=3, processing=1)
        self.assertEqual(stats.awaiting_index, 4)

    def test_retrieval_outcome_flags(self) -> None:
        empty = RetrievalOutcome(status=RetrievalStatus.EMPTY_CORPUS, pending=2)
        self.assertTrue(empty.is_empty_corpus)
        self.assertTrue(empty.indexing_in_progress)

        matched = RetrievalOutcome(status=RetrievalStatus.MATCHED, indexed=3)
        self.assertFalse(matched.is_empty_corpus)
        self.assertFalse(matched.indexing_in_progress)


if __name__ == "__main__":
    unittest.main()
