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

"""Configuration management for Lumara.

Every field can be overridden with a ``LUMARA_``-prefixed environment
variable (``LUMARA_CACHE_DIR``, ``LUMARA_DUPLICATE_THRESHOLD``...) or a
``.env`` file in the working directory. Set ``LUMARA_SKIP_ENV_FILE`` to
ignore the ``.env`` file, e.g. in tests.
"""

import os
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Global Lumara directory (~/.lumara)
GLOBAL_LUMARA_DIR = Path.home() / ".lumara"

DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_EMBEDDING_DIMENSION = 384
DEFAULT_PROVIDER_ORDER = ["on-device", "mock"]

THIRTY_DAYS_SECONDS = 30 * 24 * 60 * 60


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="LUMARA_",
        env_file=".env" if not os.getenv("LUMARA_SKIP_ENV_FILE") else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"

    # ==========================================================================
    # Providers
    # ==========================================================================
    # Health snapshots younger than this are reused without probing the backend
    health_freshness_seconds: float = Field(default=10.0, gt=0)
    # Fallback order used by the provider registry
    provider_order: List[str] = Field(default_factory=lambda: list(DEFAULT_PROVIDER_ORDER))
    # Deadline for a single provider call (None = no deadline)
    provider_timeout_seconds: Optional[float] = Field(default=30.0, gt=0)
    # Attempts for transient chat/embed failures (including the first)
    provider_max_retries: int = Field(default=3, ge=1)

    # ==========================================================================
    # Embeddings
    # ==========================================================================
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embedding_dimension: int = Field(default=DEFAULT_EMBEDDING_DIMENSION, gt=0)
    embedding_device: Optional[str] = None  # 'cpu', 'cuda', 'mps'; auto-detected if None
    # Single embeddings slower than this are logged as warnings
    embedding_slow_ms: float = Field(default=100.0, ge=0)
    model_load_max_retries: int = Field(default=3, ge=1)

    # ==========================================================================
    # Embedding cache
    # ==========================================================================
    cache_dir: Path = GLOBAL_LUMARA_DIR / "cache"
    cache_memory_max_size: int = Field(default=1000, gt=0)
    cache_ttl_seconds: int = Field(default=THIRTY_DAYS_SECONDS, gt=0)
    cache_enable_disk: bool = True

    # ==========================================================================
    # Similarity and contradiction detection
    # ==========================================================================
    similarity_threshold: float = 0.7
    similarity_top_k: int = Field(default=10, gt=0)
    duplicate_threshold: float = 0.85
    contradiction_threshold: float = 0.70

    # ==========================================================================
    # Health monitoring
    # ==========================================================================
    monitor_interval_seconds: float = Field(default=60.0, gt=0)
    monitor_failure_threshold: int = Field(default=3, ge=1)
    monitor_check_timeout_seconds: float = Field(default=10.0, gt=0)

    @field_validator("similarity_threshold", "duplicate_threshold", "contradiction_threshold")
    @classmethod
    def validate_unit_interval(cls, v: float) -> float:
        """Thresholds are cosine similarities and must lie in [0, 1]."""
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"threshold must be between 0 and 1, got {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"invalid log level: {v}")
        return level

    @field_validator("cache_dir")
    @classmethod
    def expand_cache_dir(cls, v: Path) -> Path:
        return Path(v).expanduser()

    @model_validator(mode="after")
    def validate_threshold_order(self) -> "Settings":
        """The contradiction band must sit below the duplicate threshold."""
        if self.contradiction_threshold > self.duplicate_threshold:
            raise ValueError(
                "contradiction_threshold "
                f"({self.contradiction_threshold}) must not exceed duplicate_threshold "
                f"({self.duplicate_threshold})"
            )
        return self


_settings: Optional[Settings] = None


def load_settings() -> Settings:
    """Load application settings.

    Returns:
        Settings instance
    """
    return Settings()


def get_settings() -> Settings:
    """Get the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop cached settings so the next access re-reads the environment."""
    global _settings
    _settings = None
