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

"""Capability provider protocol and shared provider machinery.

Every backend (on-device runtime, test double, future remote services) sits
behind the same asynchronous contract:

    initialize(config, timeout) -> None
    chat(message, context, timeout) -> str
    embed(text, timeout) -> list[float]
    health_check(force) -> HealthSnapshot
    dispose() -> None

``BaseProvider`` owns the lifecycle state machine:

    uninitialized --initialize()--> initializing --ok--> ready --dispose()--> disposed
                                    initializing --failure/timeout/cancel--> error
                                    initializing --dispose()--> disposed
    any state --mark_error()--> error

Subclasses implement the ``_do_*`` hooks and ``_probe`` only.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    FrozenSet,
    List,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
    runtime_checkable,
)

from lumara.core.errors import (
    InitializationError,
    InvalidInputError,
    NotInitializedError,
    UnsupportedCapabilityError,
)
from lumara.core.retry import BaseRetryStrategy, backend_retry_strategy, retry_async, with_timeout
from lumara.core.types import (
    DEFAULT_HEALTH_FRESHNESS_SECONDS,
    Capability,
    HealthSnapshot,
    ProviderKind,
    ProviderState,
    ProviderStatus,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ProviderConfig:
    """Options passed to ``initialize``.

    Attributes:
        temperature: Sampling temperature. Only honoured together with top_k.
        top_k: Top-K sampling. Only honoured together with temperature.
        system_prompt: Instruction prepended to every session.
        language: Output language code.
        extra: Backend-specific options.
    """

    temperature: Optional[float] = None
    top_k: Optional[int] = None
    system_prompt: Optional[str] = None
    language: str = "en"
    extra: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class CapabilityProvider(Protocol):
    """Contract every backend satisfies."""

    name: str
    kind: ProviderKind
    capabilities: FrozenSet[Capability]

    @property
    def state(self) -> ProviderState: ...

    async def initialize(
        self, config: Optional[ProviderConfig] = None, timeout: Optional[float] = None
    ) -> None: ...

    async def dispose(self) -> None: ...

    async def chat(
        self,
        message: str,
        context: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
    ) -> str: ...

    async def embed(self, text: str, timeout: Optional[float] = None) -> List[float]: ...

    async def health_check(self, force: bool = False) -> HealthSnapshot: ...


class BaseProvider(ABC):
    """Lifecycle, capability gating, cached health, timeouts and retries.

    Args:
        health_freshness: Seconds a health snapshot is reused.
        default_timeout: Deadline applied to chat/embed when the caller
            passes none. ``None`` means no deadline.
        retry_strategy: Strategy for transient chat/embed failures.
    """

    name: str = "base"
    kind: ProviderKind = ProviderKind.LOCAL
    capabilities: FrozenSet[Capability] = frozenset()

    def __init__(
        self,
        health_freshness: float = DEFAULT_HEALTH_FRESHNESS_SECONDS,
        default_timeout: Optional[float] = None,
        retry_strategy: Optional[BaseRetryStrategy] = None,
    ) -> None:
        self._state = ProviderState.UNINITIALIZED
        self._config: Optional[ProviderConfig] = None
        self._last_health: Optional[HealthSnapshot] = None
        self._last_error: Optional[str] = None
        self._health_freshness = health_freshness
        self._default_timeout = default_timeout
        self._retry_strategy = retry_strategy or backend_retry_strategy()
        self._init_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> ProviderState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == ProviderState.READY

    @property
    def config(self) -> Optional[ProviderConfig]:
        return self._config

    @property
    def last_error(self) -> Optional[str]:
        """Reason for the most recent transition to ``error``."""
        return self._last_error

    @property
    def last_health(self) -> Optional[HealthSnapshot]:
        return self._last_health

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def mark_error(self, reason: str) -> None:
        """Move to ``error`` from any state, recording the reason."""
        logger.warning("Provider %s entered error state: %s", self.name, reason)
        self._state = ProviderState.ERROR
        self._last_error = reason
        self._last_health = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(
        self, config: Optional[ProviderConfig] = None, timeout: Optional[float] = None
    ) -> None:
        """Bring the backend up.

        No-op when already ready. Allowed again after a failure.

        Raises:
            InitializationError: On failure, timeout, or after dispose().
        """
        async with self._init_lock:
            if self._state == ProviderState.DISPOSED:
                raise InitializationError(
                    f"{self.name} has been disposed and cannot be re-initialized",
                    provider=self.name,
                    reason="disposed",
                )
            if self._state == ProviderState.READY:
                return

            self._state = ProviderState.INITIALIZING
            try:
                if timeout is None:
                    await self._do_initialize(config)
                else:
                    await asyncio.wait_for(self._do_initialize(config), timeout=timeout)
            except asyncio.TimeoutError as e:
                reason = f"initialization timed out after {timeout}s"
                self._fail_initialization(reason)
                raise InitializationError(
                    f"{self.name} {reason}", provider=self.name, reason=reason, cause=e
                ) from e
            except asyncio.CancelledError:
                self._fail_initialization("initialization cancelled")
                raise
            except InitializationError as e:
                self._fail_initialization(e.reason or e.message)
                raise
            except Exception as e:
                self._fail_initialization(str(e))
                raise InitializationError(
                    f"{self.name} failed to initialize: {e}",
                    provider=self.name,
                    reason=str(e),
                    cause=e,
                ) from e

            if self._state == ProviderState.DISPOSED:
                # dispose() ran while the backend was coming up
                await self._release_quietly()
                raise InitializationError(
                    f"{self.name} was disposed during initialization",
                    provider=self.name,
                    reason="disposed",
                )

            self._config = config
            self._state = ProviderState.READY
            self._last_error = None
            self._last_health = None
            logger.info("Provider %s initialized", self.name)

    async def dispose(self) -> None:
        """Release backend resources. Safe to call more than once."""
        if self._state == ProviderState.DISPOSED:
            return
        try:
            await self._release_quietly()
        finally:
            self._state = ProviderState.DISPOSED
            self._config = None
            self._last_health = None
            logger.debug("Provider %s disposed", self.name)

    async def _release_quietly(self) -> None:
        try:
            await self._do_dispose()
        except Exception as e:
            logger.warning("Provider %s failed to release resources: %s", self.name, e)

    def _fail_initialization(self, reason: str) -> None:
        # A dispose() that landed mid-initialization wins over the failure
        if self._state == ProviderState.DISPOSED:
            self._last_error = reason
            return
        self.mark_error(reason)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def chat(
        self,
        message: str,
        context: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Send a message, optionally with prior context, and return the reply.

        Raises:
            UnsupportedCapabilityError: If the provider cannot chat.
            NotInitializedError: Outside the ready state.
            BackendError: After retries are exhausted.
        """
        self._ensure_operational(Capability.CHAT)
        ctx = list(context or [])
        return await self._call_with_retry("chat", lambda: self._do_chat(message, ctx), timeout)

    async def embed(self, text: str, timeout: Optional[float] = None) -> List[float]:
        """Return the embedding vector for ``text``.

        Raises:
            UnsupportedCapabilityError: If the provider cannot embed.
            NotInitializedError: Outside the ready state.
            InvalidInputError: For empty or whitespace-only text.
            BackendError: After retries are exhausted.
        """
        self._ensure_operational(Capability.EMBED)
        if not text or not text.strip():
            raise InvalidInputError("Cannot embed empty text", field="text")
        return await self._call_with_retry("embed", lambda: self._do_embed(text), timeout)

    async def health_check(self, force: bool = False) -> HealthSnapshot:
        """Report backend availability. Never raises and never changes state."""
        if self._state == ProviderState.DISPOSED:
            return self._remember(
                HealthSnapshot(self.name, ProviderStatus.UNAVAILABLE, f"{self.name} is disposed")
            )
        if self._state == ProviderState.ERROR:
            return self._remember(
                HealthSnapshot(self.name, ProviderStatus.ERROR, self._last_error or "unknown error")
            )

        cached = self._last_health
        if not force and cached is not None and cached.is_fresh(self._health_freshness):
            return cached

        try:
            snapshot = await self._probe()
        except Exception as e:
            logger.debug("Health probe for %s failed: %s", self.name, e)
            snapshot = HealthSnapshot(
                self.name, ProviderStatus.ERROR, f"Health check failed: {e}"
            )
        return self._remember(snapshot)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def _do_initialize(self, config: Optional[ProviderConfig]) -> None:
        """Acquire backend resources."""

    async def _do_dispose(self) -> None:
        """Release backend resources."""

    async def _probe(self) -> HealthSnapshot:
        """Inspect the backend without initializing it."""
        return HealthSnapshot(self.name, ProviderStatus.READY, f"{self.name} is available")

    async def _do_chat(self, message: str, context: List[str]) -> str:
        raise UnsupportedCapabilityError(self.name, Capability.CHAT.value)

    async def _do_embed(self, text: str) -> List[float]:
        raise UnsupportedCapabilityError(self.name, Capability.EMBED.value)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ensure_operational(self, capability: Capability) -> None:
        if not self.supports(capability):
            raise UnsupportedCapabilityError(self.name, capability.value)
        if self._state != ProviderState.READY:
            raise NotInitializedError(self.name, state=self._state.value)

    async def _call_with_retry(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        timeout: Optional[float],
    ) -> T:
        deadline = timeout if timeout is not None else self._default_timeout

        async def attempt() -> T:
            return await with_timeout(call(), deadline, operation, provider=self.name)

        return await retry_async(attempt, self._retry_strategy)

    def _remember(self, snapshot: HealthSnapshot) -> HealthSnapshot:
        self._last_health = snapshot
        return snapshot

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, state={self._state.value})"
