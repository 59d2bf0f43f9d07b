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

"""Shared value types for providers and health reporting.

Kept free of imports from the rest of the package so that errors, providers
and the registry can all depend on it without cycles.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

# Health snapshots older than this are refreshed before selection decisions.
DEFAULT_HEALTH_FRESHNESS_SECONDS = 10.0


class Capability(str, Enum):
    """Capabilities a provider may declare."""

    CHAT = "chat"
    EMBED = "embed"
    STREAMING = "streaming"


class ProviderKind(str, Enum):
    """Where a provider performs its computation."""

    LOCAL = "local"
    CLOUD = "cloud"
    HOSTED = "hosted"


class ProviderState(str, Enum):
    """Lifecycle state of a provider instance."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    DISPOSED = "disposed"
    ERROR = "error"


class ProviderStatus(str, Enum):
    """Backend status reported by a health check."""

    READY = "ready"
    INITIALIZING = "initializing"
    NEEDS_DOWNLOAD = "needs-download"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


@dataclass(frozen=True)
class HealthSnapshot:
    """Point-in-time health of a single provider."""

    provider: str
    status: ProviderStatus
    message: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def available(self) -> bool:
        """True only when the backend can serve requests right now."""
        return self.status == ProviderStatus.READY

    @property
    def age(self) -> float:
        """Seconds since this snapshot was taken."""
        return max(0.0, time.time() - self.timestamp)

    def is_fresh(self, window: float = DEFAULT_HEALTH_FRESHNESS_SECONDS) -> bool:
        """Check whether the snapshot can still be trusted."""
        return self.age < window

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "provider": self.provider,
            "status": self.status.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }
