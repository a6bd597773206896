"""Rate limiter for embedding and vision provider requests."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """Rate limiter using a semaphore and minimum delay between requests."""

    def __init__(
        self,
        max_concurrent: Optional[int] = None,
        min_delay: Optional[float] = None,
    ):
        """Initialize the rate limiter.

        Args:
            max_concurrent: Maximum number of concurrent requests (default: 1,
                or GLIMPSE_RATE_LIMIT_MAX_CONCURRENT env var)
            min_delay: Minimum delay between request starts in seconds
                (default: 0.0, or GLIMPSE_RATE_LIMIT_MIN_DELAY env var)
        """
        if max_concurrent is None:
            max_concurrent = int(os.getenv("GLIMPSE_RATE_LIMIT_MAX_CONCURRENT", "1"))
        if min_delay is None:
            min_delay = float(os.getenv("GLIMPSE_RATE_LIMIT_MIN_DELAY", "0.0"))
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if min_delay < 0:
            raise ValueError("min_delay must not be negative")

        self.max_concurrent = max_concurrent
        self.min_delay = min_delay

        # Created lazily so the limiter can be built outside a running loop
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._lock: Optional[asyncio.Lock] = None
        self._loop_id: Optional[int] = None
        self._last_request_time: Optional[float] = None
        self._in_flight = 0

        logger.debug(
            f"RateLimiter initialized: max_concurrent={self.max_concurrent}, "
            f"min_delay={self.min_delay}s"
        )

    def _ensure_primitives(self) -> None:
        loop_id = id(asyncio.get_running_loop())

        # Primitives bound to an old loop are unusable in a new one
        if self._loop_id is not None and self._loop_id != loop_id:
            self._lock = None
            self._semaphore = None
            self._in_flight = 0

        if self._lock is None:
            self._lock = asyncio.Lock()
            self._loop_id = loop_id
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)

    async def acquire(self) -> None:
        """Acquire a permit for making a request."""
        self._ensure_primitives()

        await self._semaphore.acquire()
        try:
            async with self._lock:
                if self._last_request_time is not None:
                    elapsed = time.monotonic() - self._last_request_time
                    if elapsed < self.min_delay:
                        await asyncio.sleep(self.min_delay - elapsed)
                self._last_request_time = time.monotonic()
        except BaseException:
            self._semaphore.release()
            raise
        self._in_flight += 1

    def release(self) -> None:
        """Release a permit after the request completes."""
        if self._semaphore is None or self._in_flight == 0:
            raise RuntimeError("RateLimiter.release() called without a matching acquire()")
        self._in_flight -= 1
        self._semaphore.release()

    @property
    def in_flight(self) -> int:
        """Number of permits currently held."""
        return self._in_flight

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()
