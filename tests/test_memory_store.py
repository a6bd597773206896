"""MemoryStore Tests.

Tests for record lifecycle, debounced atomic persistence and crash recovery.
"""

import asyncio
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from glimpse.core.errors import (
    IllegalTransitionError,
    InvariantViolationError,
    PersistenceError,
    RecordNotFoundError,
    StoreCorruptedError,
)
from glimpse.core.models import EmbeddingStatus
from glimpse.storage import memory_store as memory_store_module
from glimpse.storage.atomic import write_json_atomic
from glimpse.storage.memory_store import MemoryStore

DEBOUNCE = 0.02


class MemoryStoreTest(unittest.IsolatedAsyncioTestCase):
    """Test MemoryStore functionality."""

    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "db_test.json"
        self.store = MemoryStore(self.path, debounce_seconds=DEBOUNCE)
        await self.store.initialize()

    async def asyncTearDown(self) -> None:
        await self.store.close()
        self._tmp.cleanup()

    def read_file(self) -> dict:
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    async def reopen(self, **kwargs) -> MemoryStore:
        await self.store.close()
        self.store = MemoryStore(self.path, debounce_seconds=DEBOUNCE, **kwargs)
        await self.store.initialize()
        return self.store

    # ========== Lifecycle ==========

    async def test_initialize_creates_empty_store_file(self) -> None:
        """Test that a missing file is created as an empty store."""
        self.assertTrue(self.path.exists())
        self.assertEqual(self.read_file(), {"records": [], "version": "1.0.0"})
        self.assertEqual(len(self.store), 0)

    async def test_use_before_initialize_raises(self) -> None:
        store = MemoryStore(Path(self._tmp.name) / "other.json")
        with self.assertRaises(RuntimeError):
            await store.add_record("a.png", "text")

    async def test_corrupt_file_raises(self) -> None:
        """Test that an unparseable file is reported, never silently replaced."""
        bad = Path(self._tmp.name) / "bad.json"
        bad.write_text("{not json", encoding="utf-8")
        store = MemoryStore(bad)
        with self.assertRaises(StoreCorruptedError):
            await store.initialize()
        self.assertEqual(bad.read_text(encoding="utf-8"), "{not json")

    async def test_invalid_document_raises(self) -> None:
        """Test that a record breaking the embedding invariant fails validation."""
        bad = Path(self._tmp.name) / "invalid.json"
        bad.write_text(json.dumps({
            "records": [{
                "id": "mem_1", "capture_time": 1, "media_ref": "a.png",
                "description": "d", "created_at": 1, "status": "completed",
            }],
            "version": "1.0.0",
        }), encoding="utf-8")
        with self.assertRaises(StoreCorruptedError):
            await MemoryStore(bad).initialize()

    # ========== Records ==========

    async def test_add_record_is_visible_immediately(self) -> None:
        """Test that stats reflect new records before any flush."""
        ids = [await self.store.add_record(f"{i}.png", f"screen {i}") for i in range(3)]

        stats = self.store.get_stats()
        self.assertEqual(stats.total, 3)
        self.assertEqual(stats.pending, 3)
        self.assertTrue(self.store.is_dirty)

        record = self.store.get_record(ids[1])
        self.assertEqual(record.status, EmbeddingStatus.PENDING)
        self.assertEqual(record.description, "screen 1")
        self.assertEqual(record.media_ref, "1.png")
        self.assertIsNone(record.embedding)

    async def test_full_lifecycle(self) -> None:
        record_id = await self.store.add_record("a.png", "an editor")
        await self.store.mark_processing(record_id)
        self.assertEqual(self.store.get_stats().processing, 1)

        updated = await self.store.mark_completed(record_id, [0.5, 0.25])
        self.assertEqual(updated.status, EmbeddingStatus.COMPLETED)
        self.assertEqual(updated.embedding, [0.5, 0.25])
        self.assertIsNotNone(updated.embedded_at)
        self.assertEqual(self.store.embedded_records(), [updated])

    async def test_illegal_transitions(self) -> None:
        """Test that only pending->processing->completed|failed is allowed."""
        record_id = await self.store.add_record("a.png", "text")

        with self.assertRaises(IllegalTransitionError):
            await self.store.mark_completed(record_id, [1.0])
        with self.assertRaises(IllegalTransitionError):
            await self.store.mark_failed(record_id)

        await self.store.mark_processing(record_id)
        with self.assertRaises(IllegalTransitionError):
            await self.store.mark_processing(record_id)

        await self.store.mark_failed(record_id)
        with self.assertRaises(IllegalTransitionError):
            await self.store.mark_processing(record_id)
        with self.assertRaises(IllegalTransitionError):
            await self.store.transition(record_id, "pending")

    async def test_completion_requires_embedding(self) -> None:
        record_id = await self.store.add_record("a.png", "text")
        await self.store.mark_processing(record_id)
        with self.assertRaises(InvariantViolationError):
            await self.store.mark_completed(record_id, [])
        self.assertEqual(self.store.get_record(record_id).status, EmbeddingStatus.PROCESSING)

    async def test_embedding_rejected_for_other_statuses(self) -> None:
        record_id = await self.store.add_record("a.png", "text")
        with self.assertRaises(InvariantViolationError):
            await self.store.transition(record_id, EmbeddingStatus.PROCESSING, [1.0])

    async def test_unknown_record(self) -> None:
        with self.assertRaises(RecordNotFoundError):
            self.store.get_record("mem_missing")
        with self.assertRaises(RecordNotFoundError):
            await self.store.mark_processing("mem_missing")

    async def test_next_pending_is_oldest(self) -> None:
        first = await self.store.add_record("1.png", "first")
        second = await self.store.add_record("2.png", "second")
        self.assertEqual(self.store.next_pending().id, first)

        await self.store.mark_processing(first)
        self.assertEqual(self.store.next_pending().id, second)
        self.assertEqual([r.id for r in self.store.pending_records()], [second])

    # ========== Persistence ==========

    async def test_flush_persists_records(self) -> None:
        record_id = await self.store.add_record("a.png", "persist me")
        await self.store.flush()
        self.assertFalse(self.store.is_dirty)

        data = self.read_file()
        self.assertEqual(len(data["records"]), 1)
        self.assertEqual(data["records"][0]["id"], record_id)
        self.assertEqual(data["records"][0]["status"], "pending")

    async def test_debounced_writes_are_coalesced(self) -> None:
        """Test that a burst of mutations results in a single background write."""
        with patch.object(
            memory_store_module, "write_json_atomic", wraps=write_json_atomic
        ) as writer:
            for i in range(25):
                await self.store.add_record(f"{i}.png", f"burst {i}")
            await asyncio.sleep(DEBOUNCE * 6)

        self.assertGreaterEqual(writer.call_count, 1)
        self.assertLessEqual(writer.call_count, 2)
        self.assertEqual(len(self.read_file()["records"]), 25)
        self.assertFalse(self.store.is_dirty)

    async def test_background_write_reaches_disk(self) -> None:
        await self.store.add_record("a.png", "eventually durable")
        await asyncio.sleep(DEBOUNCE * 6)
        self.assertEqual(len(self.read_file()["records"]), 1)

    async def test_reload_round_trip(self) -> None:
        kept = await self.store.add_record("a.png", "kept")
        done = await self.store.add_record("b.png", "done")
        await self.store.mark_processing(done)
        await self.store.mark_completed(done, [0.1, 0.2, 0.3])

        store = await self.reopen()
        self.assertEqual(len(store), 2)
        self.assertEqual(store.get_record(kept).status, EmbeddingStatus.PENDING)
        self.assertEqual(store.get_record(done).embedding, [0.1, 0.2, 0.3])
        self.assertEqual([r.id for r in store.all_records()], [kept, done])

    async def test_interrupted_write_keeps_previous_state(self) -> None:
        """Test that a truncated temp file from a crash is ignored on load."""
        record_id = await self.store.add_record("a.png", "before crash")
        await self.store.flush()
        await self.store.close()

        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text('{"records": [{"id": "mem_', encoding="utf-8")

        self.store = MemoryStore(self.path, debounce_seconds=DEBOUNCE)
        await self.store.initialize()
        self.assertEqual([r.id for r in self.store.all_records()], [record_id])
        self.assertFalse(tmp_path.exists())

    async def test_orphaned_processing_records_are_requeued(self) -> None:
        """Test that records left in processing by a crash return to pending."""
        record_id = await self.store.add_record("a.png", "interrupted")
        await self.store.mark_processing(record_id)

        store = await self.reopen()
        self.assertEqual(store.get_record(record_id).status, EmbeddingStatus.PENDING)
        await store.flush()
        self.assertEqual(self.read_file()["records"][0]["status"], "pending")

    async def test_requeue_can_be_disabled(self) -> None:
        record_id = await self.store.add_record("a.png", "interrupted")
        await self.store.mark_processing(record_id)

        store = await self.reopen(requeue_orphans=False)
        self.assertEqual(store.get_record(record_id).status, EmbeddingStatus.PROCESSING)

    async def test_failed_background_write_is_reported(self) -> None:
        """Test that a write failure surfaces on the next mutation and the file is untouched."""
        await self.store.add_record("a.png", "first")
        await self.store.flush()
        before = self.read_file()

        with patch.object(
            memory_store_module,
            "write_json_atomic",
            side_effect=PersistenceError("disk full", path=str(self.path)),
        ):
            await self.store.add_record("b.png", "second")
            await asyncio.sleep(DEBOUNCE * 6)
            self.assertEqual(self.read_file(), before)

            with self.assertRaises(PersistenceError):
                await self.store.add_record("c.png", "third")

        await self.store.flush()
        self.assertEqual(len(self.read_file()["records"]), 2)

    async def test_transition_is_applied_before_reporting_write_failure(self) -> None:
        record_id = await self.store.add_record("a.png", "first")
        await self.store.flush()

        with patch.object(
            memory_store_module,
            "write_json_atomic",
            side_effect=PersistenceError("disk full", path=str(self.path)),
        ):
            await self.store.mark_processing(record_id)
            await asyncio.sleep(DEBOUNCE * 6)

            with self.assertRaises(PersistenceError):
                await self.store.mark_failed(record_id)
            self.assertEqual(self.store.get_record(record_id).status, EmbeddingStatus.FAILED)

        await self.store.flush()
        self.assertEqual(self.read_file()["records"][0]["status"], "failed")

    async def test_export_json(self) -> None:
        await self.store.add_record("a.png", "exported")
        exported = self.store.export_json()
        self.assertEqual(exported["version"], "1.0.0")
        self.assertEqual(exported["records"][0]["description"], "exported")


if __name__ == "__main__":
    unittest.main()
