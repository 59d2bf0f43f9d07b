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

"""Embedding cache for Lumara.

Tiered caching architecture:
- Fast tier: in-memory LRU (cachetools), bounded
- Durable tier: diskcache on local disk, survives restarts

Usage:
    from lumara.cache import CacheConfig, EmbeddingCacheManager

    cache = EmbeddingCacheManager(CacheConfig.from_settings())
    await cache.initialize()
    entry = await cache.get("some text")
"""

from lumara.cache.config import CacheConfig
from lumara.cache.entry import CacheEntry, CacheStats, EmbeddingRecord
from lumara.cache.manager import EmbeddingCacheManager, normalize_key
from lumara.cache.store import DurableStore

__all__ = [
    "CacheConfig",
    "CacheEntry",
    "CacheStats",
    "DurableStore",
    "EmbeddingCacheManager",
    "EmbeddingRecord",
    "normalize_key",
]
