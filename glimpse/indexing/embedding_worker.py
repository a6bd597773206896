"""
EmbeddingWorker for Glimpse.

Background task that drains a store's pending records one at a time:
pending -> processing -> completed | failed, oldest capture first.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from glimpse.core.errors import PersistenceError, ProviderError
from glimpse.core.models import EmbeddingStatus
from glimpse.indexing.rate_limiter import RateLimiter
from glimpse.providers.base import Embedder
from glimpse.storage.memory_store import MemoryStore

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 1.0


@dataclass
class ProcessOutcome:
    """What happened to one record."""

    record_id: str
    status: EmbeddingStatus
    error: str | None = None


class EmbeddingWorker:
    """Serial embedding indexer for one store.

    At most one provider call is in flight per worker. Failed records stay
    ``failed``; they are not retried. ``stop()`` lets the current iteration
    finish rather than cancelling the provider call, so a hung provider can
    delay it until the provider's own timeout fires.

    Usage:
        worker = EmbeddingWorker(store, provider, delay=1.0)
        worker.start()
        ...
        await worker.stop()
    """

    def __init__(
        self,
        store: MemoryStore,
        provider: Embedder,
        delay: float = DEFAULT_DELAY_SECONDS,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        """Initialize the worker.

        Args:
            store: Store whose pending records are indexed
            provider: Embedding provider handle
            delay: Seconds to sleep between iterations
            rate_limiter: Optional limiter shared with other provider users
        """
        if delay < 0:
            raise ValueError("delay must not be negative")

        self.store = store
        self.provider = provider
        self.delay = delay
        self.rate_limiter = rate_limiter

        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._is_processing = False
        self._wake: Optional[asyncio.Event] = None
        self._item_lock: Optional[asyncio.Lock] = None

        self._processed = 0
        self._failed = 0

    # ========== Lifecycle ==========

    def start(self) -> None:
        """Start the background loop (no-op when already running)."""
        if self._running:
            return
        self._running = True
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(
            self._run(), name=f"glimpse-embedding-worker:{self.store.path.name}"
        )
        logger.info(f"Embedding worker started for {self.store.path.name}")

    async def stop(self) -> None:
        """Stop scheduling iterations and wait for the current one to end."""
        if not self._running and self._task is None:
            return
        self._running = False
        if self._wake is not None:
            self._wake.set()

        task, self._task = self._task, None
        if task is not None:
            await task
        self._wake = None
        logger.info(f"Embedding worker stopped for {self.store.path.name}")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    def get_stats(self) -> dict[str, Any]:
        """Queue snapshot for status displays."""
        return {
            "is_running": self._running,
            "is_processing": self._is_processing,
            "queue_length": len(self.store.pending_records()),
            "processed": self._processed,
            "failed": self._failed,
        }

    # ========== Processing ==========

    async def process_next(self) -> ProcessOutcome | None:
        """Index the oldest pending record.

        A record taken by this call always ends ``completed`` or ``failed``
        in memory. A store write error raised along the way is re-raised
        once the record has settled.

        Returns:
            The outcome, or None when nothing is pending

        Raises:
            PersistenceError: A store write failed; the record has still
                been settled and the store retries the write
        """
        async with self._get_item_lock():
            record = self.store.next_pending()
            if record is None:
                return None

            write_error: PersistenceError | None = None
            try:
                await self.store.mark_processing(record.id)
            except PersistenceError as e:
                write_error = e

            self._is_processing = True
            try:
                vector = await self._embed(record.description)
            except Exception as e:
                # Any provider failure is terminal for this record
                logger.warning(f"Embedding failed for {record.id}: {type(e).__name__}: {e}")
                vector = None
                outcome = ProcessOutcome(record.id, EmbeddingStatus.FAILED, str(e))
            finally:
                self._is_processing = False

            try:
                if vector is None:
                    self._failed += 1
                    await self.store.mark_failed(record.id)
                else:
                    self._processed += 1
                    await self.store.mark_completed(record.id, vector)
                    logger.debug(f"Embedded {record.id} ({len(vector)} dims)")
                    outcome = ProcessOutcome(record.id, EmbeddingStatus.COMPLETED)
            except PersistenceError as e:
                write_error = write_error or e

            if write_error is not None:
                raise write_error
            return outcome

    async def drain(self) -> int:
        """Process pending records until none remain.

        Sleeps ``delay`` seconds between records, the same spacing the
        background loop uses.

        Returns:
            Number of records processed (completed or failed)
        """
        count = 0
        while await self.process_next() is not None:
            count += 1
            if self.store.next_pending() is None:
                break
            await self._sleep(self.delay)
        return count

    # ========== Internals ==========

    def _get_item_lock(self) -> asyncio.Lock:
        if self._item_lock is None:
            self._item_lock = asyncio.Lock()
        return self._item_lock

    async def _embed(self, text: str) -> list[float]:
        if self.rate_limiter is not None:
            async with self.rate_limiter:
                vector = await self.provider.embed(text)
        else:
            vector = await self.provider.embed(text)

        if not vector:
            raise ProviderError("Provider returned an empty embedding")
        return list(vector)

    async def _run(self) -> None:
        while self._running:
            try:
                await self.process_next()
                delay = self.delay
            except Exception:
                logger.exception(f"Embedding worker loop error for {self.store.path.name}; backing off")
                delay = self.delay * 2

            if not self._running:
                break
            await self._sleep(delay)

    async def _sleep(self, seconds: float) -> None:
        if self._wake is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
