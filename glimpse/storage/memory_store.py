"""
MemoryStore for Glimpse.

Durable collection of memory records backed by one JSON file. The in-memory
state is authoritative; mutations schedule a debounced flush that one writer
task per store performs with an atomic temp-file rename.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import Counter
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from glimpse.core.errors import (
    IllegalTransitionError,
    InvariantViolationError,
    PersistenceError,
    RecordNotFoundError,
    StoreCorruptedError,
)
from glimpse.core.models import EmbeddingStatus, MemoryRecord, StoreState, StoreStats
from glimpse.storage.atomic import discard_stale_temp, read_json, write_json_atomic
from glimpse.utils.ids import current_millis, generate_record_id

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.1


class MemoryStore:
    """Durable record collection with a status lifecycle.

    Persistence model:
    - Every mutation bumps an in-memory revision and makes sure a writer
      task is running.
    - The writer sleeps for the debounce window, snapshots the state and
      writes it atomically. If the revision moved while it was writing, it
      waits one more window and writes again, so the file lags the memory
      state by at most two windows.
    - A failed background write is logged and raised from the next mutation
      or ``flush()`` call; the file on disk keeps its last complete state.
      ``add_record`` is rejected in that case, while ``transition`` is
      applied first and then raises.

    Usage:
        store = MemoryStore(data_dir / "db_123.json")
        await store.initialize()

        record_id = await store.add_record("shots/1.png", "An editor window")
        stats = store.get_stats()

        await store.close()
    """

    def __init__(
        self,
        path: str | Path,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        requeue_orphans: bool = True,
        clock: Callable[[], int] = current_millis,
    ):
        """Initialize the store handle; nothing is read until ``initialize()``.

        Args:
            path: JSON file backing this store
            debounce_seconds: Window for coalescing writes
            requeue_orphans: Reset records stuck in ``processing`` to
                ``pending`` when loading
            clock: Millisecond clock used for record timestamps
        """
        self.path = Path(path)
        self.debounce_seconds = debounce_seconds
        self.requeue_orphans = requeue_orphans
        self._clock = clock

        self._state = StoreState()
        self._positions: dict[str, int] = {}
        self._initialized = False

        self._revision = 0
        self._persisted_revision = 0
        self._writer: Optional[asyncio.Task] = None
        self._write_lock: Optional[asyncio.Lock] = None
        self._write_error: Optional[PersistenceError] = None

    # ========== Lifecycle ==========

    async def initialize(self) -> None:
        """Load the store file, creating it when absent.

        Raises:
            StoreCorruptedError: If the file exists but is not a valid store
            PersistenceError: If the file cannot be read or the new store
                cannot be written
        """
        if self._initialized:
            return

        await asyncio.to_thread(discard_stale_temp, self.path)

        try:
            data = await asyncio.to_thread(read_json, self.path)
        except FileNotFoundError:
            logger.info(f"Creating new memory store at {self.path}")
            self._load_state(StoreState())
            await self._write_now(force=True)
            self._initialized = True
            return
        except json.JSONDecodeError as e:
            raise StoreCorruptedError(
                f"Store file {self.path} is not valid JSON: {e}", path=str(self.path)
            ) from e

        try:
            state = StoreState.model_validate(data)
        except ValidationError as e:
            raise StoreCorruptedError(
                f"Store file {self.path} failed validation: {e}", path=str(self.path)
            ) from e

        self._load_state(state)
        self._initialized = True

        if self.requeue_orphans:
            requeued = self._requeue_orphans()
            if requeued:
                logger.warning(
                    f"Requeued {requeued} record(s) left in processing by an unclean shutdown"
                )
                self._revision += 1
                await self._write_now()

        logger.info(f"Loaded memory store {self.path.name}: {len(self._state.records)} records")

    async def flush(self) -> None:
        """Write any unpersisted state now.

        Raises:
            PersistenceError: If this write, or an earlier background write,
                failed
        """
        pending_error = self._take_write_error()
        if self._persisted_revision < self._revision:
            await self._write_now()
        if pending_error is not None:
            raise pending_error

    async def close(self) -> None:
        """Flush and wait for the writer task to exit."""
        if not self._initialized:
            return
        try:
            await self.flush()
        finally:
            writer = self._writer
            if writer is not None and not writer.done():
                await writer
            self._writer = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_dirty(self) -> bool:
        """Whether the memory state is ahead of the file."""
        return self._persisted_revision < self._revision

    # ========== Mutations ==========

    async def add_record(self, media_ref: str, description: str) -> str:
        """Append a ``pending`` record and schedule a flush.

        Returns as soon as the record is in memory.

        Args:
            media_ref: Opaque handle to the captured content
            description: Text description of the capture

        Returns:
            The new record id
        """
        self._ensure_initialized()
        self._raise_write_error()

        now = self._clock()
        record = MemoryRecord(
            id=generate_record_id(),
            capture_time=now,
            media_ref=media_ref,
            description=description,
            created_at=now,
        )
        self._positions[record.id] = len(self._state.records)
        self._state.records.append(record)
        self._schedule_flush()

        logger.debug(f"Added record {record.id}")
        return record.id

    async def transition(
        self,
        record_id: str,
        status: EmbeddingStatus | str,
        embedding: Optional[Sequence[float]] = None,
    ) -> MemoryRecord:
        """Move a record along the status table.

        Args:
            record_id: Record to update
            status: Target status
            embedding: Vector to store; required for ``completed`` and
                rejected otherwise

        Returns:
            The updated record

        Raises:
            RecordNotFoundError: Unknown id
            IllegalTransitionError: Transition not in the table
            InvariantViolationError: Embedding missing on completion or
                supplied for another status
            PersistenceError: An earlier background write failed. The
                transition has still been applied in memory and the write
                is retried.
        """
        self._ensure_initialized()
        target = EmbeddingStatus(status)

        position = self._positions.get(record_id)
        if position is None:
            raise RecordNotFoundError(record_id)
        record = self._state.records[position]

        if not record.status.can_transition(target):
            raise IllegalTransitionError(record_id, record.status.value, target.value)

        changes: dict[str, Any] = {"status": target}
        if target is EmbeddingStatus.COMPLETED:
            if not embedding:
                raise InvariantViolationError(
                    f"Completing {record_id} requires a non-empty embedding"
                )
            changes["embedding"] = [float(x) for x in embedding]
            changes["embedded_at"] = self._clock()
        elif embedding is not None:
            raise InvariantViolationError(
                f"Embedding may only be set when completing {record_id}"
            )

        updated = MemoryRecord(**{**record.model_dump(), **changes})
        self._state.records[position] = updated
        self._schedule_flush()
        logger.debug(f"Record {record_id}: {record.status.value} -> {target.value}")

        # The change stays applied and the writer retries it
        self._raise_write_error()
        return updated

    async def mark_processing(self, record_id: str) -> MemoryRecord:
        return await self.transition(record_id, EmbeddingStatus.PROCESSING)

    async def mark_completed(self, record_id: str, embedding: Sequence[float]) -> MemoryRecord:
        return await self.transition(record_id, EmbeddingStatus.COMPLETED, embedding)

    async def mark_failed(self, record_id: str) -> MemoryRecord:
        return await self.transition(record_id, EmbeddingStatus.FAILED)

    # ========== Queries ==========

    def get_record(self, record_id: str) -> MemoryRecord:
        """Get a record by id.

        Raises:
            RecordNotFoundError: Unknown id
        """
        position = self._positions.get(record_id)
        if position is None:
            raise RecordNotFoundError(record_id)
        return self._state.records[position]

    def records_by_status(self, status: EmbeddingStatus | str) -> list[MemoryRecord]:
        """Records with the given status, in capture order."""
        target = EmbeddingStatus(status)
        return [r for r in self._state.records if r.status is target]

    def pending_records(self) -> list[MemoryRecord]:
        return self.records_by_status(EmbeddingStatus.PENDING)

    def next_pending(self) -> MemoryRecord | None:
        """Oldest pending record by capture order."""
        for record in self._state.records:
            if record.status is EmbeddingStatus.PENDING:
                return record
        return None

    def embedded_records(self) -> list[MemoryRecord]:
        """Completed records carrying an embedding."""
        return [
            r for r in self._state.records
            if r.status is EmbeddingStatus.COMPLETED and r.embedding is not None
        ]

    def all_records(self) -> list[MemoryRecord]:
        """Every record in capture order (copy of the list)."""
        return list(self._state.records)

    def get_stats(self) -> StoreStats:
        """Counts per status."""
        counts = Counter(r.status for r in self._state.records)
        return StoreStats(
            total=len(self._state.records),
            completed=counts[EmbeddingStatus.COMPLETED],
            pending=counts[EmbeddingStatus.PENDING],
            processing=counts[EmbeddingStatus.PROCESSING],
            failed=counts[EmbeddingStatus.FAILED],
        )

    def export_json(self) -> dict[str, Any]:
        """Full store document as JSON-ready data."""
        return self._state.model_dump(mode="json")

    def __len__(self) -> int:
        return len(self._state.records)

    def __repr__(self) -> str:
        return f"MemoryStore(path={str(self.path)!r}, records={len(self._state.records)})"

    # ========== Internals ==========

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError(f"MemoryStore {self.path} used before initialize()")

    def _load_state(self, state: StoreState) -> None:
        self._state = state
        self._positions = {record.id: i for i, record in enumerate(state.records)}

    def _requeue_orphans(self) -> int:
        requeued = 0
        for i, record in enumerate(self._state.records):
            if record.status is EmbeddingStatus.PROCESSING:
                self._state.records[i] = MemoryRecord(
                    **{**record.model_dump(), "status": EmbeddingStatus.PENDING}
                )
                requeued += 1
        return requeued

    def _get_write_lock(self) -> asyncio.Lock:
        if self._write_lock is None:
            self._write_lock = asyncio.Lock()
        return self._write_lock

    def _take_write_error(self) -> PersistenceError | None:
        error, self._write_error = self._write_error, None
        return error

    def _raise_write_error(self) -> None:
        error = self._take_write_error()
        if error is not None:
            # State is still dirty; try again on the next window
            self._ensure_writer()
            raise error

    def _schedule_flush(self) -> None:
        self._revision += 1
        self._ensure_writer()

    def _ensure_writer(self) -> None:
        if self._writer is None or self._writer.done():
            self._writer = asyncio.create_task(
                self._writer_loop(), name=f"glimpse-store-writer:{self.path.name}"
            )

    async def _writer_loop(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        while self._persisted_revision < self._revision:
            try:
                await self._write_now()
            except PersistenceError as e:
                logger.error(f"Background write of {self.path} failed: {e}")
                self._write_error = e
                return
            if self._persisted_revision < self._revision:
                await asyncio.sleep(self.debounce_seconds)

    async def _write_now(self, force: bool = False) -> None:
        async with self._get_write_lock():
            revision = self._revision
            if not force and revision <= self._persisted_revision:
                return
            payload = self._state.model_dump(mode="json")
            await asyncio.to_thread(write_json_atomic, self.path, payload)
            self._persisted_revision = max(self._persisted_revision, revision)
            logger.debug(f"Persisted {self.path.name} at revision {revision}")
