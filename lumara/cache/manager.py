# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Tiered embedding cache with memory and disk tiers."""

import asyncio
import functools
import logging
import time
from typing import Any, Callable, List, Optional, Sequence, Tuple, TypeVar

from cachetools import LRUCache  # type: ignore[import-untyped]

from lumara.cache.config import CacheConfig
from lumara.cache.entry import CacheEntry, CacheStats, EmbeddingRecord
from lumara.cache.store import DurableStore
from lumara.core.errors import CacheError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def normalize_key(text: str) -> str:
    """Cache key for ``text``: trimmed, internal whitespace collapsed."""
    return " ".join(text.split())


class _CountingLRUCache(LRUCache):
    """LRUCache that counts evictions."""

    def __init__(self, maxsize: int):
        super().__init__(maxsize=maxsize)
        self.evictions = 0

    def popitem(self) -> Tuple[Any, Any]:
        key, value = super().popitem()
        self.evictions += 1
        return key, value


class EmbeddingCacheManager:
    """Two-tier embedding cache.

    Architecture:
    - Fast tier: bounded in-memory LRU (cachetools), synchronous
    - Durable tier: diskcache on local disk, survives restarts

    Features:
    - Lookup checks memory first, then disk; disk hits are promoted
    - Writes go through to both tiers
    - TTL expiry (entries older than the TTL are misses)
    - Entries produced by another model are misses
    - Disk failures degrade to memory-only operation with a warning
    - Disk I/O runs in the default executor so the event loop never blocks

    Usage:
        cache = EmbeddingCacheManager(CacheConfig(disk_path=tmp_path))
        await cache.initialize()
        await cache.put("hello", vector, model_id="all-MiniLM-L6-v2")
        entry = await cache.get("hello")
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        store: Optional[DurableStore] = None,
    ):
        """Initialize cache manager.

        Args:
            config: Cache configuration (uses defaults if None)
            store: Pre-built durable store. Opened from the config if None.
        """
        self.config = config or CacheConfig()
        self._memory: _CountingLRUCache = _CountingLRUCache(self.config.memory_max_size)
        self._store: Optional[DurableStore] = store
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._last_error: Optional[CacheError] = None

        # Statistics
        self._hits = 0
        self._misses = 0
        self._memory_hits = 0
        self._durable_hits = 0
        self._expired = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Open the durable tier and sweep expired entries. Idempotent."""
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            if self._store is None and self.config.enable_disk:
                try:
                    self._store = await self._run(
                        DurableStore, self.config.disk_path, self.config.disk_max_size
                    )
                except Exception as e:
                    logger.warning(
                        "[EmbeddingCache] Durable tier unavailable, using memory only: %s", e
                    )
                    self._record_failure("open", e)
                    self._store = None
            self._initialized = True

            if self.config.sweep_on_initialize:
                await self.sweep_expired()

            logger.info(
                "[EmbeddingCache] Initialized: memory_max=%d, durable=%s",
                self.config.memory_max_size,
                self._store is not None,
            )

    def close(self) -> None:
        """Close the durable tier."""
        if self._store is not None:
            try:
                self._store.close()
                logger.info("[EmbeddingCache] Durable store closed")
            except Exception as e:
                logger.warning("Error closing durable store: %s", e)
            self._store = None
        self._initialized = False

    def __enter__(self) -> "EmbeddingCacheManager":
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        """Context manager exit."""
        self.close()

    @property
    def durable_available(self) -> bool:
        return self._store is not None

    @property
    def last_error(self) -> Optional[CacheError]:
        """Most recent durable-tier failure, if any."""
        return self._last_error

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get(self, key: str, model_id: Optional[str] = None) -> Optional[CacheEntry]:
        """Look up an entry.

        Checks memory first, then disk. A disk hit is promoted to memory and
        its access metadata written back.

        Args:
            key: Source text (normalized before lookup)
            model_id: If given, entries from a different model are misses

        Returns:
            The entry, or None on a miss
        """
        await self.initialize()
        cache_key = normalize_key(key)
        if not cache_key:
            self._misses += 1
            return None
        now = time.time()

        entry = self._memory.get(cache_key)
        if entry is not None:
            if entry.is_expired(self.config.ttl_seconds, now):
                await self._drop_expired(cache_key)
            elif model_id is None or entry.model_id == model_id:
                entry.touch(now)
                self._memory_hits += 1
                self._hits += 1
                logger.debug("Memory cache hit: %s", cache_key[:50])
                return entry
            else:
                self._misses += 1
                return None

        data = await self._durable(self._store_get, cache_key, default=None)
        if data is not None:
            try:
                stored = CacheEntry.from_dict(cache_key, data)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("[EmbeddingCache] Discarding corrupt entry %r: %s", cache_key[:50], e)
                await self._durable(self._store_delete, cache_key, default=False)
                stored = None

            if stored is not None and stored.is_expired(self.config.ttl_seconds, now):
                await self._drop_expired(cache_key)
            elif stored is not None and (model_id is None or stored.model_id == model_id):
                stored.touch(now)
                self._memory[cache_key] = stored
                await self._durable(self._store_set, cache_key, stored, default=None)
                self._durable_hits += 1
                self._hits += 1
                logger.debug("Disk cache hit: %s", cache_key[:50])
                return stored

        self._misses += 1
        logger.debug("Cache miss: %s", cache_key[:50])
        return None

    async def set(self, key: str, entry: CacheEntry) -> None:
        """Store ``entry`` in both tiers. Same key: last write wins."""
        await self.initialize()
        cache_key = normalize_key(key)
        if not cache_key:
            return
        self._memory[cache_key] = entry
        await self._durable(self._store_set, cache_key, entry, default=None)

    async def put(self, text: str, vector: Sequence[float], model_id: str) -> CacheEntry:
        """Build an entry for ``text`` and store it."""
        entry = CacheEntry(
            record=EmbeddingRecord(
                text=normalize_key(text),
                vector=[float(v) for v in vector],
                model_id=model_id,
            )
        )
        await self.set(text, entry)
        return entry

    async def has(self, key: str, model_id: Optional[str] = None) -> bool:
        """Check for a live entry without touching statistics or metadata."""
        await self.initialize()
        cache_key = normalize_key(key)
        if not cache_key:
            return False

        entry = self._memory.get(cache_key)
        if entry is None:
            data = await self._durable(self._store_get, cache_key, default=None)
            if data is None:
                return False
            try:
                entry = CacheEntry.from_dict(cache_key, data)
            except (KeyError, TypeError, ValueError):
                return False

        if entry.is_expired(self.config.ttl_seconds):
            return False
        return model_id is None or entry.model_id == model_id

    async def delete(self, key: str) -> bool:
        """Remove ``key`` from both tiers. Returns True if anything was removed."""
        await self.initialize()
        cache_key = normalize_key(key)
        deleted = self._memory.pop(cache_key, None) is not None
        deleted = await self._durable(self._store_delete, cache_key, default=False) or deleted
        return deleted

    async def clear(self) -> int:
        """Remove every entry from both tiers.

        Safe to call again if a previous clear was interrupted.

        Returns:
            Number of entries cleared
        """
        await self.initialize()
        count = len(self._memory)
        self._memory.clear()
        count = max(count, await self._durable(self._store_clear, default=0))
        logger.info("[EmbeddingCache] Cleared %d entries", count)
        return count

    async def sweep_expired(self) -> int:
        """Delete entries older than the TTL from both tiers.

        Returns:
            Number of entries removed
        """
        now = time.time()
        ttl = self.config.ttl_seconds
        stale = [k for k, e in list(self._memory.items()) if e.is_expired(ttl, now)]
        for key in stale:
            self._memory.pop(key, None)
        removed = len(stale)

        if self._store is not None:
            removed_durable = await self._durable(self._store_sweep, now, default=0)
            removed = max(removed, removed_durable)

        if removed:
            self._expired += removed
            logger.info("[EmbeddingCache] Swept %d expired entries", removed)
        return removed

    async def preload(self, limit: int = 100) -> int:
        """Warm the memory tier with the most recently used durable entries.

        Returns:
            Number of entries loaded
        """
        await self.initialize()
        if self._store is None or limit <= 0:
            return 0

        entries: List[CacheEntry] = await self._durable(self._store_recent, limit, default=[])
        for entry in entries:
            self._memory[normalize_key(entry.text)] = entry

        logger.info("[EmbeddingCache] Preloaded %d entries into memory", len(entries))
        return len(entries)

    async def total_size(self) -> int:
        """Number of distinct entries across both tiers."""
        await self.initialize()
        durable_size = await self._durable(self._store_len, default=0)
        return max(len(self._memory), durable_size)

    async def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        await self.initialize()
        durable_size = await self._durable(self._store_len, default=0)
        memory_size = len(self._memory)
        return CacheStats(
            size=max(memory_size, durable_size),
            hits=self._hits,
            misses=self._misses,
            memory_hits=self._memory_hits,
            durable_hits=self._durable_hits,
            memory_size=memory_size,
            durable_size=durable_size,
            evictions=self._memory.evictions,
            expired=self._expired,
            durable_available=self._store is not None,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _drop_expired(self, cache_key: str) -> None:
        self._memory.pop(cache_key, None)
        await self._durable(self._store_delete, cache_key, default=False)
        self._expired += 1

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    async def _durable(self, func: Callable[..., T], *args: Any, default: Any) -> Any:
        """Run a durable-tier call in the executor, degrading to ``default``."""
        if self._store is None:
            return default
        try:
            return await self._run(func, *args)
        except Exception as e:
            operation = func.__name__.lstrip("_").replace("store_", "")
            logger.warning(
                "[EmbeddingCache] Durable tier %s failed, continuing with memory only: %s",
                operation,
                e,
            )
            self._record_failure(operation, e)
            return default

    def _record_failure(self, operation: str, exc: Exception) -> None:
        self._last_error = CacheError(
            f"Durable tier {operation} failed: {exc}", operation=operation, cause=exc
        )

    # Blocking helpers executed off the event loop

    def _store_get(self, key: str) -> Optional[dict]:
        assert self._store is not None
        return self._store.get(key)

    def _store_set(self, key: str, entry: CacheEntry) -> None:
        assert self._store is not None
        remaining = self.config.ttl_seconds - entry.age()
        self._store.set(key, entry.to_dict(), expire=max(remaining, 1.0))

    def _store_delete(self, key: str) -> bool:
        assert self._store is not None
        return self._store.delete(key)

    def _store_clear(self) -> int:
        assert self._store is not None
        return self._store.clear()

    def _store_len(self) -> int:
        assert self._store is not None
        return len(self._store)

    def _store_sweep(self, now: float) -> int:
        assert self._store is not None
        removed = self._store.expire()
        for key, data in self._store.items():
            created_at = float(data.get("created_at", 0.0))
            if now - created_at >= self.config.ttl_seconds:
                self._store.delete(key)
                removed += 1
        return removed

    def _store_recent(self, limit: int) -> List[CacheEntry]:
        assert self._store is not None
        now = time.time()
        entries: List[CacheEntry] = []
        for key, data in self._store.items():
            try:
                entry = CacheEntry.from_dict(key, data)
            except (KeyError, TypeError, ValueError):
                continue
            if not entry.is_expired(self.config.ttl_seconds, now):
                entries.append(entry)
        entries.sort(key=lambda e: e.last_accessed, reverse=True)
        return entries[: min(limit, self.config.memory_max_size)]
