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

"""Deterministic in-memory provider for tests and CI.

Needs no model and no host runtime. Responses and embeddings can be
programmed per input; everything else is derived deterministically from the
input text, so the same text always produces the same vector.

Usage:
    provider = MockProvider()
    await provider.initialize()

    provider.set_response("hello", "Hi there!")
    await provider.chat("hello")          # "Hi there!"

    provider.set_embedding("test", [0.5] * 384)
    await provider.embed("test")          # [0.5, 0.5, ...]
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from lumara.core.errors import BackendError, DimensionMismatchError, InitializationError
from lumara.core.types import Capability, HealthSnapshot, ProviderKind, ProviderStatus
from lumara.providers.base import BaseProvider, ProviderConfig

logger = logging.getLogger(__name__)

MOCK_EMBEDDING_DIMENSION = 384

# Linear congruential generator constants for the pseudo-random embedding
_LCG_MULTIPLIER = 9301
_LCG_INCREMENT = 49297
_LCG_MODULUS = 233280


@dataclass
class MockStats:
    """Call counters for assertions in tests."""

    initialize_calls: int = 0
    chat_calls: int = 0
    embed_calls: int = 0
    configured_responses: int = 0
    configured_embeddings: int = 0


def _string_hash(text: str) -> int:
    """32-bit signed rolling hash (h * 31 + code unit)."""
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def deterministic_embedding(text: str, dimension: int = MOCK_EMBEDDING_DIMENSION) -> List[float]:
    """Hash-seeded, L2-normalized pseudo-random vector for ``text``."""
    seed = abs(_string_hash(text))
    values = np.empty(dimension, dtype=np.float64)
    for i in range(dimension):
        seed = (seed * _LCG_MULTIPLIER + _LCG_INCREMENT) % _LCG_MODULUS
        values[i] = (seed / _LCG_MODULUS) * 2 - 1
    norm = np.linalg.norm(values)
    if norm == 0:
        return values.tolist()
    return (values / norm).tolist()


class MockProvider(BaseProvider):
    """Test double that supports chat and embeddings."""

    name = "mock"
    kind = ProviderKind.LOCAL
    capabilities = frozenset({Capability.CHAT, Capability.EMBED})

    def __init__(self, dimension: int = MOCK_EMBEDDING_DIMENSION, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.dimension = dimension
        self._responses: Dict[str, str] = {}
        self._embeddings: Dict[str, List[float]] = {}
        self._init_delay = 0.0
        self._chat_delay = 0.0
        self._embed_delay = 0.0
        self._health_override: Optional[HealthSnapshot] = None
        self._chat_failures: List[Exception] = []
        self._init_failure: Optional[Exception] = None
        self._stats = MockStats()

    # ------------------------------------------------------------------
    # Programming the double
    # ------------------------------------------------------------------

    def set_response(self, prompt: str, response: str) -> None:
        """Reply with ``response`` when a message equals or contains ``prompt``."""
        self._responses[prompt] = response

    def set_embedding(self, text: str, vector: Sequence[float]) -> None:
        """Return ``vector`` for exactly ``text``.

        Raises:
            DimensionMismatchError: If the vector has the wrong length.
        """
        if len(vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(vector))
        self._embeddings[text] = [float(v) for v in vector]

    def set_delays(
        self,
        init: Optional[float] = None,
        chat: Optional[float] = None,
        embed: Optional[float] = None,
    ) -> None:
        """Artificial latency in seconds for each operation."""
        if init is not None:
            self._init_delay = init
        if chat is not None:
            self._chat_delay = chat
        if embed is not None:
            self._embed_delay = embed

    def set_health(self, status: Optional[ProviderStatus], message: Optional[str] = None) -> None:
        """Force the status reported by health checks. ``None`` restores the default."""
        if status is None:
            self._health_override = None
        else:
            self._health_override = HealthSnapshot(self.name, status, message)
        self._last_health = None

    def fail_next_chat(self, error: Optional[Exception] = None, count: int = 1) -> None:
        """Make the next ``count`` chat attempts raise ``error``."""
        for _ in range(count):
            self._chat_failures.append(
                error or BackendError("Simulated chat failure", provider=self.name, operation="chat")
            )

    def fail_initialize(self, error: Optional[Exception] = None) -> None:
        """Make the next initialize attempt fail."""
        self._init_failure = error or InitializationError(
            "Simulated initialization failure", provider=self.name, reason="simulated"
        )

    def get_stats(self) -> MockStats:
        self._stats.configured_responses = len(self._responses)
        self._stats.configured_embeddings = len(self._embeddings)
        return self._stats

    def clear_responses(self) -> None:
        self._responses.clear()

    def clear_embeddings(self) -> None:
        self._embeddings.clear()

    def reset_stats(self) -> None:
        self._stats = MockStats()

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    async def _do_initialize(self, config: Optional[ProviderConfig]) -> None:
        self._stats.initialize_calls += 1
        if self._init_delay > 0:
            await asyncio.sleep(self._init_delay)
        if self._init_failure is not None:
            error, self._init_failure = self._init_failure, None
            raise error

    async def _probe(self) -> HealthSnapshot:
        if self._health_override is not None:
            return HealthSnapshot(
                self.name, self._health_override.status, self._health_override.message
            )
        return HealthSnapshot(self.name, ProviderStatus.READY, "Mock provider is available")

    async def _do_chat(self, message: str, context: List[str]) -> str:
        self._stats.chat_calls += 1
        if self._chat_delay > 0:
            await asyncio.sleep(self._chat_delay)
        if self._chat_failures:
            raise self._chat_failures.pop(0)

        if message in self._responses:
            return self._responses[message]
        for pattern, response in self._responses.items():
            if pattern in message:
                return response

        context_info = f" (with {len(context)} context messages)" if context else ""
        return f"Mock response to: {message}{context_info}"

    async def _do_embed(self, text: str) -> List[float]:
        self._stats.embed_calls += 1
        if self._embed_delay > 0:
            await asyncio.sleep(self._embed_delay)
        if text in self._embeddings:
            return list(self._embeddings[text])
        return deterministic_embedding(text, self.dimension)

    async def _do_dispose(self) -> None:
        self._responses.clear()
        self._embeddings.clear()
        self._chat_failures.clear()
        self._init_failure = None
        self._health_override = None
        self._init_delay = self._chat_delay = self._embed_delay = 0.0
        self._stats = MockStats()
