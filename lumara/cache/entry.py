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

"""Records stored by the embedding cache."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class EmbeddingRecord:
    """An embedding and the text and model that produced it."""

    text: str
    vector: List[float]
    model_id: str
    created_at: float = field(default_factory=time.time)

    @property
    def dimension(self) -> int:
        return len(self.vector)


@dataclass
class CacheEntry:
    """An embedding record plus access bookkeeping."""

    record: EmbeddingRecord
    last_accessed: float = field(default_factory=time.time)
    access_count: int = 0

    @property
    def vector(self) -> List[float]:
        return self.record.vector

    @property
    def model_id(self) -> str:
        return self.record.model_id

    @property
    def text(self) -> str:
        return self.record.text

    @property
    def created_at(self) -> float:
        return self.record.created_at

    def touch(self, now: Optional[float] = None) -> None:
        """Record an access."""
        self.last_accessed = now if now is not None else time.time()
        self.access_count += 1

    def age(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.record.created_at

    def is_expired(self, ttl_seconds: float, now: Optional[float] = None) -> bool:
        return self.age(now) >= ttl_seconds

    def to_dict(self) -> Dict[str, Any]:
        """Durable layout of the entry. The text itself is the store key."""
        return {
            "vector": list(self.record.vector),
            "model_id": self.record.model_id,
            "created_at": self.record.created_at,
            "last_accessed": self.last_accessed,
            "access_count": self.access_count,
        }

    @classmethod
    def from_dict(cls, text: str, data: Dict[str, Any]) -> "CacheEntry":
        created_at = float(data.get("created_at", 0.0))
        return cls(
            record=EmbeddingRecord(
                text=text,
                vector=[float(v) for v in data["vector"]],
                model_id=str(data.get("model_id", "")),
                created_at=created_at,
            ),
            last_accessed=float(data.get("last_accessed", created_at)),
            access_count=int(data.get("access_count", 0)),
        )


@dataclass
class CacheStats:
    """Snapshot of cache counters and sizes."""

    size: int = 0
    hits: int = 0
    misses: int = 0
    memory_hits: int = 0
    durable_hits: int = 0
    memory_size: int = 0
    durable_size: int = 0
    evictions: int = 0
    expired: int = 0
    durable_available: bool = False

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "hits": self.hits,
            "misses": self.misses,
            "memory_hits": self.memory_hits,
            "durable_hits": self.durable_hits,
            "memory_size": self.memory_size,
            "durable_size": self.durable_size,
            "evictions": self.evictions,
            "expired": self.expired,
            "durable_available": self.durable_available,
            "hit_rate": self.hit_rate,
        }
