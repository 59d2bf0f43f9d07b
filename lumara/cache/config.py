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

"""Embedding cache configuration."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from lumara.config.settings import Settings


@dataclass
class CacheConfig:
    """Embedding cache configuration settings."""

    # Fast tier settings
    memory_max_size: int = 1000  # Max entries held in memory

    # Durable tier settings
    disk_path: Optional[Path] = None  # Cache directory
    disk_max_size: int = 1024 * 1024 * 1024  # 1GB max size
    enable_disk: bool = True

    # Entries older than this are treated as misses (30 days)
    ttl_seconds: int = 30 * 24 * 60 * 60

    # Cache behavior
    sweep_on_initialize: bool = True

    def __post_init__(self) -> None:
        """Set default cache path if not provided."""
        if self.memory_max_size <= 0:
            raise ValueError("memory_max_size must be positive")
        if self.ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        if self.disk_path is None:
            self.disk_path = Path.home() / ".lumara" / "cache"
        self.disk_path = Path(self.disk_path).expanduser()

    @classmethod
    def from_settings(cls, settings: Optional["Settings"] = None) -> "CacheConfig":
        """Build a config from application settings."""
        if settings is None:
            from lumara.config.settings import get_settings

            settings = get_settings()
        return cls(
            memory_max_size=settings.cache_memory_max_size,
            disk_path=settings.cache_dir,
            enable_disk=settings.cache_enable_disk,
            ttl_seconds=settings.cache_ttl_seconds,
        )
