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

"""Tests for the two-tier embedding cache."""

import logging
import time

import pytest

from lumara.cache.config import CacheConfig
from lumara.cache.entry import CacheEntry, EmbeddingRecord
from lumara.cache.manager import EmbeddingCacheManager, normalize_key
from lumara.cache.store import DurableStore
from lumara.core.errors import CacheError

MODEL = "all-MiniLM-L6-v2"


def old_entry(text, age_seconds, model_id=MODEL):
    return CacheEntry(
        record=EmbeddingRecord(
            text=text,
            vector=[0.1, 0.2, 0.3],
            model_id=model_id,
            created_at=time.time() - age_seconds,
        )
    )


class FailingStore:
    """Durable tier whose every operation fails."""

    def get(self, key):
        raise OSError("disk unplugged")

    def set(self, key, value, expire=None):
        raise OSError("disk unplugged")

    def delete(self, key):
        raise OSError("disk unplugged")

    def clear(self):
        raise OSError("disk unplugged")

    def expire(self):
        raise OSError("disk unplugged")

    def items(self):
        raise OSError("disk unplugged")

    def __len__(self):
        raise OSError("disk unplugged")

    def close(self):
        pass


class TestNormalizeKey:
    def test_collapses_whitespace(self):
        assert normalize_key("  hello \n  world\t") == "hello world"

    def test_blank(self):
        assert normalize_key("   ") == ""


class TestRoundTrip:
    """Tests for put/get/has/delete/clear."""

    @pytest.mark.asyncio
    async def test_put_then_get(self, cache_manager):
        await cache_manager.put("hello", [0.1, 0.2], MODEL)
        entry = await cache_manager.get("hello", model_id=MODEL)

        assert entry is not None
        assert entry.vector == [0.1, 0.2]
        assert entry.model_id == MODEL
        assert entry.access_count == 1

    @pytest.mark.asyncio
    async def test_equivalent_whitespace_shares_entry(self, cache_manager):
        await cache_manager.put("  hello   world ", [1.0], MODEL)
        assert await cache_manager.get("hello world") is not None

    @pytest.mark.asyncio
    async def test_miss(self, cache_manager):
        assert await cache_manager.get("never stored") is None
        stats = await cache_manager.get_stats()
        assert stats.misses == 1
        assert stats.hits == 0

    @pytest.mark.asyncio
    async def test_blank_key_is_a_miss(self, cache_manager):
        await cache_manager.put("   ", [1.0], MODEL)
        assert await cache_manager.get("   ") is None
        assert await cache_manager.total_size() == 0

    @pytest.mark.asyncio
    async def test_last_write_wins(self, cache_manager):
        await cache_manager.put("k", [1.0], MODEL)
        await cache_manager.put("k", [2.0], MODEL)
        assert (await cache_manager.get("k")).vector == [2.0]

    @pytest.mark.asyncio
    async def test_other_model_is_a_miss(self, cache_manager):
        await cache_manager.put("k", [1.0], "model-a")

        assert await cache_manager.get("k", model_id="model-b") is None
        assert not await cache_manager.has("k", model_id="model-b")
        assert await cache_manager.has("k", model_id="model-a")

    @pytest.mark.asyncio
    async def test_has_does_not_count(self, cache_manager):
        await cache_manager.put("k", [1.0], MODEL)
        assert await cache_manager.has("k")

        stats = await cache_manager.get_stats()
        assert stats.hits == 0
        assert stats.misses == 0

    @pytest.mark.asyncio
    async def test_delete(self, cache_manager):
        await cache_manager.put("k", [1.0], MODEL)
        assert await cache_manager.delete("k")
        assert not await cache_manager.delete("k")
        assert await cache_manager.get("k") is None

    @pytest.mark.asyncio
    async def test_clear_empties_both_tiers(self, cache_manager):
        for i in range(3):
            await cache_manager.put(f"text {i}", [float(i)], MODEL)

        assert await cache_manager.clear() == 3
        assert await cache_manager.get("text 0") is None
        assert await cache_manager.total_size() == 0

    @pytest.mark.asyncio
    async def test_clear_twice(self, cache_manager):
        await cache_manager.put("k", [1.0], MODEL)
        await cache_manager.clear()
        assert await cache_manager.clear() == 0


class TestTiers:
    """Tests for promotion, eviction and persistence."""

    @pytest.mark.asyncio
    async def test_durable_hit_promoted_to_memory(self, cache_config):
        with EmbeddingCacheManager(cache_config) as first:
            await first.put("persisted", [0.5, 0.5], MODEL)

        with EmbeddingCacheManager(cache_config) as second:
            assert (await second.get("persisted")).vector == [0.5, 0.5]
            assert (await second.get("persisted")) is not None

            stats = await second.get_stats()
            assert stats.durable_hits == 1
            assert stats.memory_hits == 1
            assert stats.hit_rate == 1.0

    @pytest.mark.asyncio
    async def test_lru_eviction_counted(self, tmp_path):
        config = CacheConfig(disk_path=tmp_path, memory_max_size=2, enable_disk=False)
        manager = EmbeddingCacheManager(config)

        for text in ("a", "b", "c"):
            await manager.put(text, [1.0], MODEL)

        assert await manager.get("a") is None
        stats = await manager.get_stats()
        assert stats.evictions == 1
        assert stats.memory_size == 2
        assert not stats.durable_available

    @pytest.mark.asyncio
    async def test_evicted_entry_still_on_disk(self, tmp_path):
        config = CacheConfig(disk_path=tmp_path / "cache", memory_max_size=1)
        with EmbeddingCacheManager(config) as manager:
            await manager.put("a", [1.0], MODEL)
            await manager.put("b", [2.0], MODEL)

            assert (await manager.get("a")).vector == [1.0]
            assert (await manager.get_stats()).durable_hits == 1

    @pytest.mark.asyncio
    async def test_preload_warms_memory(self, cache_config):
        with EmbeddingCacheManager(cache_config) as first:
            for i in range(3):
                await first.put(f"text {i}", [float(i)], MODEL)

        with EmbeddingCacheManager(cache_config) as second:
            assert await second.preload(limit=2) == 2
            stats = await second.get_stats()
            assert stats.memory_size == 2
            assert stats.durable_size == 3

    @pytest.mark.asyncio
    async def test_preload_without_disk(self, tmp_path):
        manager = EmbeddingCacheManager(CacheConfig(disk_path=tmp_path, enable_disk=False))
        assert await manager.preload() == 0

    @pytest.mark.asyncio
    async def test_corrupt_durable_entry_discarded(self, cache_config):
        store = DurableStore(cache_config.disk_path)
        store.set("broken", {"model_id": MODEL})
        store.close()

        with EmbeddingCacheManager(cache_config) as manager:
            assert await manager.get("broken") is None
            assert await manager.total_size() == 0


class TestExpiry:
    """Tests for TTL handling."""

    @pytest.mark.asyncio
    async def test_expired_entry_is_a_miss(self, tmp_path):
        config = CacheConfig(disk_path=tmp_path / "cache", ttl_seconds=10)
        with EmbeddingCacheManager(config) as manager:
            await manager.set("stale", old_entry("stale", age_seconds=60))

            assert await manager.get("stale") is None
            assert not await manager.has("stale")
            assert (await manager.get_stats()).expired == 1

    @pytest.mark.asyncio
    async def test_fresh_entry_is_a_hit(self, tmp_path):
        config = CacheConfig(disk_path=tmp_path / "cache", ttl_seconds=10)
        with EmbeddingCacheManager(config) as manager:
            await manager.set("fresh", old_entry("fresh", age_seconds=1))
            assert await manager.get("fresh") is not None

    @pytest.mark.asyncio
    async def test_sweep_removes_expired(self, tmp_path):
        config = CacheConfig(disk_path=tmp_path / "cache", ttl_seconds=10)
        with EmbeddingCacheManager(config) as manager:
            await manager.set("stale", old_entry("stale", age_seconds=60))
            await manager.put("fresh", [1.0], MODEL)

            assert await manager.sweep_expired() == 1
            assert await manager.total_size() == 1

    def test_invalid_config(self, tmp_path):
        with pytest.raises(ValueError):
            CacheConfig(disk_path=tmp_path, ttl_seconds=0)
        with pytest.raises(ValueError):
            CacheConfig(disk_path=tmp_path, memory_max_size=0)


class TestDegradation:
    """Tests for running without a working durable tier."""

    @pytest.mark.asyncio
    async def test_failing_store_falls_back_to_memory(self, tmp_path, caplog):
        config = CacheConfig(disk_path=tmp_path, sweep_on_initialize=False)
        manager = EmbeddingCacheManager(config, store=FailingStore())

        with caplog.at_level(logging.WARNING):
            await manager.put("k", [1.0], MODEL)
            assert (await manager.get("k")).vector == [1.0]
            assert await manager.get("missing") is None

        assert "continuing with memory only" in caplog.text
        error = manager.last_error
        assert isinstance(error, CacheError)
        assert error.operation == "get"
        assert isinstance(error.cause, OSError)
        assert error.recoverable

        stats = await manager.get_stats()
        assert stats.memory_hits == 1
        assert stats.durable_size == 0

    @pytest.mark.asyncio
    async def test_unopenable_directory(self, tmp_path, caplog):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("occupied")
        manager = EmbeddingCacheManager(CacheConfig(disk_path=blocker / "cache"))

        with caplog.at_level(logging.WARNING):
            await manager.initialize()

        assert not manager.durable_available
        assert "Durable tier unavailable" in caplog.text
        assert manager.last_error.operation == "open"

        await manager.put("k", [1.0], MODEL)
        assert await manager.get("k") is not None

    def test_from_settings(self, tmp_path):
        from lumara.config.settings import Settings

        settings = Settings(cache_dir=tmp_path / "x", cache_memory_max_size=7)
        config = CacheConfig.from_settings(settings)
        assert config.disk_path == tmp_path / "x"
        assert config.memory_max_size == 7
