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

"""Durable tier of the embedding cache, backed by diskcache.

All methods are blocking; the cache manager calls them from the default
executor. ``diskcache.Cache`` is safe to share between threads.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple

import diskcache

logger = logging.getLogger(__name__)


class DurableStore:
    """Key -> dict store on local disk.

    Args:
        directory: Cache directory (created if missing).
        size_limit: Maximum on-disk size in bytes before diskcache culls.
    """

    def __init__(self, directory: Path, size_limit: int = 1024 * 1024 * 1024):
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        self.directory = directory
        self._cache = diskcache.Cache(directory=str(directory), size_limit=size_limit)
        logger.info("[EmbeddingCache] Durable store opened at %s", directory)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        return self._cache.get(key)

    def set(self, key: str, value: Dict[str, Any], expire: Optional[float] = None) -> None:
        """Write ``value``. ``expire`` is a lifetime in seconds."""
        self._cache.set(key, value, expire=expire)

    def delete(self, key: str) -> bool:
        return bool(self._cache.delete(key))

    def clear(self) -> int:
        """Remove everything.

        diskcache deletes in small transactions; with ``retry=True`` an
        interrupted clear can simply be called again.
        """
        return self._cache.clear(retry=True)

    def expire(self) -> int:
        """Drop entries whose diskcache lifetime has passed."""
        return self._cache.expire(retry=True)

    def items(self) -> Iterator[Tuple[str, Dict[str, Any]]]:
        """Iterate live ``(key, value)`` pairs."""
        for key in list(self._cache.iterkeys()):
            value = self._cache.get(key)
            if value is not None:
                yield key, value

    def __len__(self) -> int:
        return len(self._cache)

    def volume(self) -> int:
        """Estimated size on disk in bytes."""
        return self._cache.volume()

    def close(self) -> None:
        self._cache.close()
