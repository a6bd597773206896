"""
DatabaseManager for Glimpse.

Registry of named memory stores with an active-store pointer. The registry
lives in ``databases.json`` inside the data directory and is written with
the same atomic rename as the stores themselves.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from glimpse.core.errors import (
    LastStoreError,
    PersistenceError,
    RegistryCorruptedError,
    StoreNotFoundError,
)
from glimpse.core.models import RegistryState, StoreEntry
from glimpse.storage.atomic import discard_stale_temp, read_json, write_json_atomic
from glimpse.storage.memory_store import DEFAULT_DEBOUNCE_SECONDS, MemoryStore
from glimpse.utils.ids import current_millis, generate_store_id

logger = logging.getLogger(__name__)

REGISTRY_FILENAME = "databases.json"


class DatabaseManager:
    """Manages the set of named stores and which one is active.

    The manager caches one MemoryStore per id. It does not run embedding
    workers; the application starts one per store it wants indexed.

    Usage:
        async with DatabaseManager(config.data_dir) as manager:
            work_id = await manager.create("Work")
            await manager.switch(work_id)
            store = await manager.get_active()

    Leaving the block (or calling ``close()``) flushes every loaded store.
    """

    def __init__(
        self,
        data_dir: str | Path,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        default_name: str = "default",
        requeue_orphans: bool = True,
        clock: Callable[[], int] = current_millis,
    ):
        self.data_dir = Path(data_dir)
        self.registry_path = self.data_dir / REGISTRY_FILENAME
        self.debounce_seconds = debounce_seconds
        self.default_name = default_name
        self.requeue_orphans = requeue_orphans
        self._clock = clock

        self._state = RegistryState()
        self._stores: dict[str, MemoryStore] = {}
        self._lock: Optional[asyncio.Lock] = None
        self._load_lock: Optional[asyncio.Lock] = None
        self._initialized = False

    # ========== Lifecycle ==========

    async def initialize(self) -> None:
        """Load the registry, creating a default store when there is none.

        Entries whose store file has disappeared are dropped. If that leaves
        the registry empty a fresh default store is created, and a missing or
        stale active id falls back to the first entry.

        Raises:
            RegistryCorruptedError: If the registry file is unreadable
        """
        if self._initialized:
            return

        await asyncio.to_thread(self.data_dir.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(discard_stale_temp, self.registry_path)

        try:
            data = await asyncio.to_thread(read_json, self.registry_path)
        except FileNotFoundError:
            logger.info(f"No registry at {self.registry_path}; creating default store")
            self._state = RegistryState()
            self._initialized = True
            await self.create(self.default_name)
            return
        except json.JSONDecodeError as e:
            raise RegistryCorruptedError(
                f"Registry {self.registry_path} is not valid JSON: {e}",
                path=str(self.registry_path),
            ) from e

        try:
            self._state = RegistryState.model_validate(data)
        except ValidationError as e:
            raise RegistryCorruptedError(
                f"Registry {self.registry_path} failed validation: {e}",
                path=str(self.registry_path),
            ) from e
        self._initialized = True

        changed = await self._prune_missing()

        if not self._state.stores:
            logger.warning("Registry has no usable stores; creating default store")
            await self.create(self.default_name)
            return

        if self._state.find(self._state.active_id or "") is None:
            self._state.active_id = self._state.stores[0].id
            changed = True

        if changed:
            await self._save()

        logger.info(
            f"Registry loaded: {len(self._state.stores)} store(s), active={self._state.active_id}"
        )

    async def close(self) -> None:
        """Flush and release every cached store.

        Every store is closed even when an earlier one fails to flush; the
        first failure is raised afterwards.
        """
        stores = list(self._stores.values())
        self._stores.clear()
        first_error: PersistenceError | None = None
        for store in stores:
            try:
                await store.close()
            except PersistenceError as e:
                logger.error(f"Failed to flush {store.path.name} on close: {e}")
                first_error = first_error or e
        if first_error is not None:
            raise first_error

    async def __aenter__(self) -> "DatabaseManager":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ========== Registry Operations ==========

    async def create(self, name: str) -> str:
        """Create, register and cache a new empty store.

        Returns:
            The new store id
        """
        self._ensure_initialized()
        name = self._clean_name(name)

        store_id = generate_store_id()
        location = self.data_dir / f"{store_id}.json"

        store = self._new_store(location)
        await store.initialize()

        now = self._clock()

        def register(state: RegistryState) -> None:
            state.stores.append(
                StoreEntry(
                    id=store_id,
                    name=name,
                    location=str(location),
                    created_at=now,
                    last_accessed_at=now,
                )
            )
            if state.active_id is None:
                state.active_id = store_id

        try:
            await self._update(register)
        except PersistenceError:
            await store.close()
            await asyncio.to_thread(self._remove_store_files, location)
            raise

        self._stores[store_id] = store
        logger.info(f"Created store '{name}' ({store_id})")
        return store_id

    async def switch(self, store_id: str) -> StoreEntry:
        """Make ``store_id`` the active store.

        Raises:
            StoreNotFoundError: Unknown id
        """

        def activate(state: RegistryState) -> None:
            entry = self._require(store_id, state)
            state.active_id = store_id
            self._touch(entry)

        state = await self._update(activate)
        entry = state.find(store_id)
        logger.info(f"Switched active store to '{entry.name}' ({store_id})")
        return entry.model_copy()

    async def rename(self, store_id: str, new_name: str) -> StoreEntry:
        """Change a store's display name.

        Raises:
            StoreNotFoundError: Unknown id
        """
        new_name = self._clean_name(new_name)

        def apply(state: RegistryState) -> None:
            self._require(store_id, state).name = new_name

        state = await self._update(apply)
        return state.find(store_id).model_copy()

    async def delete(self, store_id: str) -> None:
        """Remove a store and irrecoverably delete its data.

        The registry is rewritten first; the store's files are only removed
        once the registry no longer lists it.

        Raises:
            StoreNotFoundError: Unknown id
            LastStoreError: ``store_id`` is the only remaining store
        """
        entry = self._require(store_id)

        def remove(state: RegistryState) -> None:
            self._require(store_id, state)
            if len(state.stores) == 1:
                raise LastStoreError(store_id)
            state.stores = [e for e in state.stores if e.id != store_id]
            if state.active_id == store_id:
                state.active_id = state.stores[0].id

        await self._update(remove)

        store = self._stores.pop(store_id, None)
        if store is not None:
            await store.close()
        await asyncio.to_thread(self._remove_store_files, Path(entry.location))
        logger.info(f"Deleted store '{entry.name}' ({store_id})")

    # ========== Store Access ==========

    async def get(self, store_id: str) -> MemoryStore:
        """Return the cached store for ``store_id``, loading it on first use.

        Concurrent callers for the same id share one MemoryStore instance.

        Raises:
            StoreNotFoundError: Unknown id
            StoreCorruptedError: The store file cannot be loaded
        """
        entry = self._require(store_id)

        store = self._stores.get(store_id)
        if store is not None:
            return store

        async with self._get_load_lock():
            store = self._stores.get(store_id)
            if store is not None:
                return store

            store = self._new_store(Path(entry.location))
            await store.initialize()
            self._stores[store_id] = store

        await self._update(lambda state: self._touch(self._require(store_id, state)))
        return store

    async def get_active(self) -> MemoryStore:
        """Return the active store."""
        self._ensure_initialized()
        return await self.get(self._state.active_id)

    # ========== Metadata ==========

    @property
    def active_id(self) -> str | None:
        return self._state.active_id

    def list_stores(self) -> list[StoreEntry]:
        return [entry.model_copy() for entry in self._state.stores]

    def get_entry(self, store_id: str) -> StoreEntry:
        return self._require(store_id).model_copy()

    def get_active_entry(self) -> StoreEntry | None:
        entry = self._state.find(self._state.active_id or "")
        return entry.model_copy() if entry else None

    def find_by_name(self, name: str) -> StoreEntry | None:
        """First store whose display name matches (case-insensitive)."""
        wanted = name.strip().lower()
        for entry in self._state.stores:
            if entry.name.lower() == wanted:
                return entry.model_copy()
        return None

    def resolve(self, name_or_id: str) -> StoreEntry:
        """Look a store up by id, falling back to its name.

        Raises:
            StoreNotFoundError: Neither matches
        """
        entry = self._state.find(name_or_id) or self.find_by_name(name_or_id)
        if entry is None:
            raise StoreNotFoundError(name_or_id)
        return entry.model_copy()

    def loaded_store_ids(self) -> list[str]:
        return list(self._stores)

    # ========== Internals ==========

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("DatabaseManager used before initialize()")

    def _require(self, store_id: str, state: RegistryState | None = None) -> StoreEntry:
        self._ensure_initialized()
        entry = (state if state is not None else self._state).find(store_id)
        if entry is None:
            raise StoreNotFoundError(store_id)
        return entry

    @staticmethod
    def _clean_name(name: str) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValueError("Store name must not be empty")
        return cleaned

    def _touch(self, entry: StoreEntry) -> None:
        entry.last_accessed_at = self._clock()

    def _new_store(self, location: Path) -> MemoryStore:
        return MemoryStore(
            location,
            debounce_seconds=self.debounce_seconds,
            requeue_orphans=self.requeue_orphans,
            clock=self._clock,
        )

    async def _prune_missing(self) -> bool:
        kept: list[StoreEntry] = []
        for entry in self._state.stores:
            exists = await asyncio.to_thread(Path(entry.location).exists)
            if exists:
                kept.append(entry)
            else:
                logger.warning(
                    f"Store '{entry.name}' ({entry.id}) is missing {entry.location}; removing from registry"
                )
        pruned = len(kept) != len(self._state.stores)
        self._state.stores = kept
        return pruned

    @staticmethod
    def _remove_store_files(location: Path) -> None:
        for path in (location, location.with_name(location.name + ".tmp")):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                raise PersistenceError(f"Failed to delete {path}: {e}", path=str(path)) from e

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def _get_load_lock(self) -> asyncio.Lock:
        if self._load_lock is None:
            self._load_lock = asyncio.Lock()
        return self._load_lock

    async def _save(self) -> None:
        async with self._get_lock():
            payload = self._state.model_dump(mode="json")
            await asyncio.to_thread(write_json_atomic, self.registry_path, payload)

    async def _update(self, change: Callable[[RegistryState], None]) -> RegistryState:
        """Apply ``change`` to a copy of the registry, persist it, then adopt it.

        The in-memory registry only changes once the file has been written.
        """
        async with self._get_lock():
            state = self._state.model_copy(deep=True)
            change(state)
            payload = state.model_dump(mode="json")
            await asyncio.to_thread(write_json_atomic, self.registry_path, payload)
            self._state = state
            return state
