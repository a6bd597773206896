"""
Capture ingestion for Glimpse.

Turns a captured image into a pending memory record: describe it with the
vision provider, then add it to a store. Captures whose description fails
are dropped rather than stored without text.
"""

from __future__ import annotations

import logging
from pathlib import Path

from glimpse.core.errors import ProviderError
from glimpse.providers.base import VisionProvider
from glimpse.storage.database_manager import DatabaseManager
from glimpse.storage.memory_store import MemoryStore

logger = logging.getLogger(__name__)


class CaptureIngestor:
    """Describe-then-store pipeline for captured images.

    The target is either a fixed MemoryStore or a DatabaseManager, in which
    case each capture goes to whichever store is active when its
    description arrives.
    """

    def __init__(
        self,
        target: MemoryStore | DatabaseManager,
        vision: VisionProvider,
        prompt: str | None = None,
    ):
        self.target = target
        self.vision = vision
        self.prompt = prompt
        self.ingested = 0
        self.discarded = 0

    async def ingest(self, image_path: str | Path) -> str | None:
        """Describe ``image_path`` and store it.

        Returns:
            The new record id, or None if the capture was discarded
        """
        image_path = Path(image_path)
        try:
            description = await self.vision.describe(image_path, self.prompt)
        except ProviderError as e:
            logger.warning(f"Discarding capture {image_path.name}: {e}")
            self.discarded += 1
            return None

        description = description.strip()
        if not description:
            logger.warning(f"Discarding capture {image_path.name}: empty description")
            self.discarded += 1
            return None

        store = await self._resolve_store()
        record_id = await store.add_record(str(image_path), description)
        self.ingested += 1

        stats = store.get_stats()
        logger.info(
            f"Saved {image_path.name} as {record_id}. Total: {stats.total} "
            f"({stats.completed} embedded, {stats.pending} pending)"
        )
        return record_id

    async def _resolve_store(self) -> MemoryStore:
        if isinstance(self.target, DatabaseManager):
            return await self.target.get_active()
        return self.target
