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

"""Provider backed by an on-device language model supplied by the host.

The host application (a desktop shell, a browser bridge, a test) exposes a
``LanguageRuntime``. It is either injected into the provider or installed
once for the whole process with ``install_host_runtime``. The provider never
downloads or loads weights itself; it only drives the runtime.

Capabilities: chat and streaming chat. Embeddings are not supported; use the
embedding service for vectors.
"""

from __future__ import annotations

import inspect
import logging
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence

from lumara.core.errors import (
    BackendError,
    InitializationError,
    LumaraError,
    NotInitializedError,
    UnsupportedCapabilityError,
)
from lumara.core.types import Capability, HealthSnapshot, ProviderKind, ProviderStatus
from lumara.providers.base import BaseProvider, ProviderConfig

logger = logging.getLogger(__name__)


class RuntimeAvailability(str, Enum):
    """Answer returned by ``LanguageRuntime.availability()``."""

    READILY = "readily"
    AFTER_DOWNLOAD = "after-download"
    NO = "no"


class LanguageSession(Protocol):
    """A live model session created by the runtime.

    Sessions may additionally provide ``prompt_streaming(text)`` returning an
    async iterator of text chunks.
    """

    async def prompt(self, text: str) -> str: ...

    def destroy(self) -> Any: ...


class LanguageRuntime(Protocol):
    """Host-supplied entry point to the on-device model."""

    async def availability(self) -> str: ...

    async def create(self, **options: Any) -> LanguageSession: ...


_host_runtime: Optional[LanguageRuntime] = None


def install_host_runtime(runtime: Optional[LanguageRuntime]) -> None:
    """Make ``runtime`` the process-wide on-device runtime. ``None`` removes it."""
    global _host_runtime
    _host_runtime = runtime
    logger.debug("Host language runtime %s", "installed" if runtime else "removed")


def get_host_runtime() -> Optional[LanguageRuntime]:
    return _host_runtime


def build_prompt(message: str, context: Optional[Sequence[str]] = None) -> str:
    """Prefix ``message`` with context blocks separated by blank lines."""
    if not context:
        return message
    return "Context:\n" + "\n\n".join(context) + "\n\nUser: " + message


def session_options(config: Optional[ProviderConfig]) -> Dict[str, Any]:
    """Translate a provider config into runtime ``create`` options.

    The runtime rejects a temperature without top-K and vice versa, so the
    two are only forwarded together.
    """
    options: Dict[str, Any] = {"language": config.language if config else "en"}
    if config is None:
        return options
    if config.temperature is not None and config.top_k is not None:
        options["temperature"] = config.temperature
        options["top_k"] = config.top_k
    if config.system_prompt:
        options["system_prompt"] = config.system_prompt
    return options


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class OnDeviceProvider(BaseProvider):
    """Chat through the host's on-device language runtime."""

    name = "on-device"
    kind = ProviderKind.LOCAL
    capabilities = frozenset({Capability.CHAT, Capability.STREAMING})

    def __init__(self, runtime: Optional[LanguageRuntime] = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._runtime_override = runtime
        self._session: Optional[LanguageSession] = None

    @property
    def runtime(self) -> Optional[LanguageRuntime]:
        return self._runtime_override or get_host_runtime()

    async def _availability(self) -> RuntimeAvailability:
        runtime = self.runtime
        if runtime is None:
            return RuntimeAvailability.NO
        return RuntimeAvailability(await runtime.availability())

    async def _do_initialize(self, config: Optional[ProviderConfig]) -> None:
        runtime = self.runtime
        if runtime is None:
            raise InitializationError(
                "On-device language runtime not found. Install a host runtime first.",
                provider=self.name,
                reason="runtime missing",
            )

        availability = await self._availability()
        if availability == RuntimeAvailability.NO:
            raise InitializationError(
                "On-device AI is not available on this device.",
                provider=self.name,
                reason="unavailable",
            )
        if availability == RuntimeAvailability.AFTER_DOWNLOAD:
            raise InitializationError(
                "On-device model needs to be downloaded. Wait for the download to complete "
                "and try again.",
                provider=self.name,
                reason="needs download",
            )

        self._session = await runtime.create(**session_options(config))

    async def _probe(self) -> HealthSnapshot:
        if self.runtime is None:
            return HealthSnapshot(
                self.name, ProviderStatus.UNAVAILABLE, "On-device language runtime not found."
            )

        availability = await self._availability()
        if availability == RuntimeAvailability.NO:
            return HealthSnapshot(
                self.name,
                ProviderStatus.UNAVAILABLE,
                "On-device AI is not supported on this device.",
            )
        if availability == RuntimeAvailability.AFTER_DOWNLOAD:
            return HealthSnapshot(
                self.name,
                ProviderStatus.NEEDS_DOWNLOAD,
                "On-device model is downloading. Please wait.",
            )
        if self._session is None:
            message = "On-device AI is available but not initialized."
        else:
            message = "On-device AI is ready."
        return HealthSnapshot(self.name, ProviderStatus.READY, message)

    async def _do_chat(self, message: str, context: List[str]) -> str:
        session = self._require_session()
        try:
            return await session.prompt(build_prompt(message, context))
        except LumaraError:
            raise
        except Exception as e:
            raise BackendError(
                f"On-device chat failed: {e}", provider=self.name, operation="chat", cause=e
            ) from e

    async def chat_stream(
        self, message: str, context: Optional[Sequence[str]] = None
    ) -> AsyncIterator[str]:
        """Yield the reply chunk by chunk.

        Raises:
            NotInitializedError: Outside the ready state.
            UnsupportedCapabilityError: If the session cannot stream.
            BackendError: If the stream fails part-way.
        """
        self._ensure_operational(Capability.STREAMING)
        session = self._require_session()
        streamer = getattr(session, "prompt_streaming", None)
        if streamer is None:
            raise UnsupportedCapabilityError(self.name, Capability.STREAMING.value)

        try:
            async for chunk in streamer(build_prompt(message, context)):
                yield chunk
        except LumaraError:
            raise
        except Exception as e:
            raise BackendError(
                f"On-device streaming chat failed: {e}",
                provider=self.name,
                operation="chat_stream",
                cause=e,
            ) from e

    async def download_model(self) -> RuntimeAvailability:
        """Trigger the model download if one is pending.

        Creating a throwaway session starts the download in the runtime.

        Returns:
            Availability after the attempt.

        Raises:
            InitializationError: If no runtime is installed.
        """
        runtime = self.runtime
        if runtime is None:
            raise InitializationError(
                "On-device language runtime not found.",
                provider=self.name,
                reason="runtime missing",
            )

        availability = await self._availability()
        if availability != RuntimeAvailability.AFTER_DOWNLOAD:
            return availability

        logger.info("Starting on-device model download")
        session = await runtime.create()
        destroy = getattr(session, "destroy", None)
        if destroy is not None:
            await _maybe_await(destroy())
        self._last_health = None
        return RuntimeAvailability.READILY

    async def _do_dispose(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            destroy = getattr(session, "destroy", None)
            if destroy is not None:
                await _maybe_await(destroy())

    def _require_session(self) -> LanguageSession:
        if self._session is None:
            raise NotInitializedError(self.name, state=self._state.value)
        return self._session
