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

"""Provider registry: registration, health-checked selection and fallback.

Usage:
    from lumara.providers.registry import get_provider_registry

    registry = get_provider_registry()
    provider = await registry.select_provider()          # first healthy provider
    provider = await registry.select_provider("mock")    # preferred, then fallback

    # Register a custom backend
    registry.register("my-backend", lambda: MyBackendProvider())

Selection never initializes a provider whose health check is not ``ready``.
When nothing can be used, ``NoProviderAvailableError`` carries one health
snapshot per provider that was tried.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence

from lumara.core.errors import (
    InitializationError,
    NoProviderAvailableError,
    ProviderNotFoundError,
)
from lumara.core.types import HealthSnapshot, ProviderState, ProviderStatus
from lumara.providers.base import BaseProvider, ProviderConfig

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[], BaseProvider]

# Cached instances in these states are rebuilt on the next selection
_STALE_STATES = (ProviderState.ERROR, ProviderState.DISPOSED)


class ProviderRegistry:
    """Ordered name -> factory registrations plus the live instances.

    Args:
        default_order: Fallback order. Registered providers missing from it
            are tried afterwards in registration order.
    """

    def __init__(self, default_order: Optional[Sequence[str]] = None) -> None:
        self._factories: Dict[str, ProviderFactory] = {}
        self._instances: Dict[str, BaseProvider] = {}
        self._default_order: List[str] = list(default_order or [])

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, name: str, factory: ProviderFactory) -> None:
        """Register (or replace) the factory for ``name``."""
        if name in self._factories:
            logger.debug("Replacing provider registration '%s'", name)
            self._instances.pop(name, None)
        self._factories[name] = factory
        logger.debug("Registered provider '%s'", name)

    def unregister(self, name: str) -> bool:
        """Remove ``name``. Returns True if it was registered.

        A cached instance is forgotten, not disposed; callers holding it
        remain responsible for it.
        """
        if name not in self._factories:
            return False
        del self._factories[name]
        self._instances.pop(name, None)
        logger.debug("Unregistered provider '%s'", name)
        return True

    def list_providers(self) -> List[str]:
        """Registered names in registration order."""
        return list(self._factories)

    def is_registered(self, name: str) -> bool:
        return name in self._factories

    @property
    def fallback_order(self) -> List[str]:
        ordered = [name for name in self._default_order if name in self._factories]
        ordered.extend(name for name in self._factories if name not in ordered)
        return ordered

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def create_provider(self, name: str) -> BaseProvider:
        """Build a new, uninitialized instance without caching it.

        Raises:
            ProviderNotFoundError: If ``name`` is not registered.
        """
        factory = self._factories.get(name)
        if factory is None:
            raise ProviderNotFoundError(name, available_providers=self.list_providers())
        return factory()

    def get_provider(self, name: str) -> Optional[BaseProvider]:
        """The cached instance for ``name``, if selection created one."""
        return self._instances.get(name)

    def _instance_for(self, name: str) -> BaseProvider:
        provider = self._instances.get(name)
        if provider is not None and provider.state in _STALE_STATES:
            logger.debug(
                "Discarding %s instance of provider '%s'", provider.state.value, name
            )
            provider = None
        if provider is None:
            provider = self.create_provider(name)
            self._instances[name] = provider
        return provider

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def select_provider(
        self,
        preferred_name: Optional[str] = None,
        config: Optional[ProviderConfig] = None,
        allow_fallback: bool = True,
    ) -> BaseProvider:
        """Return a ready provider, preferring ``preferred_name``.

        Args:
            preferred_name: Provider to try first.
            config: Passed to ``initialize``.
            allow_fallback: When False, only the preferred provider is tried.

        Raises:
            NoProviderAvailableError: If no provider is healthy and initializes.
        """
        snapshots: List[HealthSnapshot] = []

        if preferred_name is not None:
            if preferred_name not in self._factories:
                logger.warning("Preferred provider '%s' is not registered", preferred_name)
                snapshots.append(
                    HealthSnapshot(
                        preferred_name,
                        ProviderStatus.UNAVAILABLE,
                        "Provider is not registered",
                    )
                )
            else:
                provider = await self._try_provider(preferred_name, config, snapshots)
                if provider is not None:
                    return provider

            if not allow_fallback:
                raise NoProviderAvailableError(snapshots=snapshots)

        for name in self.fallback_order:
            if name == preferred_name:
                continue
            provider = await self._try_provider(name, config, snapshots)
            if provider is not None:
                return provider

        raise NoProviderAvailableError(snapshots=snapshots)

    async def _try_provider(
        self,
        name: str,
        config: Optional[ProviderConfig],
        snapshots: List[HealthSnapshot],
    ) -> Optional[BaseProvider]:
        try:
            provider = self._instance_for(name)
        except Exception as e:
            logger.warning("Provider '%s' could not be created: %s", name, e)
            snapshots.append(HealthSnapshot(name, ProviderStatus.ERROR, str(e)))
            return None

        snapshot = await provider.health_check()
        if not snapshot.available:
            logger.info(
                "Provider '%s' skipped: %s (%s)", name, snapshot.status.value, snapshot.message
            )
            snapshots.append(snapshot)
            return None

        if provider.is_ready:
            return provider

        try:
            await provider.initialize(config)
        except InitializationError as e:
            logger.warning("Provider '%s' failed initialization: %s", name, e.message)
            snapshots.append(
                HealthSnapshot(name, ProviderStatus.ERROR, e.reason or e.message)
            )
            return None

        logger.info("Selected provider '%s'", name)
        return provider

    async def check_availability(self) -> Dict[str, HealthSnapshot]:
        """Health of every registered provider, without initializing any."""
        results: Dict[str, HealthSnapshot] = {}
        for name in self._factories:
            cached = self._instances.get(name)
            if cached is not None and cached.state not in _STALE_STATES:
                results[name] = await cached.health_check()
                continue
            try:
                probe = self.create_provider(name)
            except Exception as e:
                results[name] = HealthSnapshot(name, ProviderStatus.ERROR, str(e))
                continue
            try:
                results[name] = await probe.health_check()
            finally:
                await probe.dispose()
        return results

    async def dispose_all(self) -> None:
        """Dispose every cached instance."""
        instances = list(self._instances.values())
        self._instances.clear()
        for provider in instances:
            await provider.dispose()


# =============================================================================
# Process-wide registry
# =============================================================================


_registry: Optional[ProviderRegistry] = None
_registry_lock = threading.Lock()


def create_default_registry() -> ProviderRegistry:
    """Registry with the built-in providers, configured from settings."""
    from lumara.config.settings import get_settings
    from lumara.core.retry import backend_retry_strategy
    from lumara.providers.mock import MockProvider
    from lumara.providers.on_device import OnDeviceProvider

    settings = get_settings()

    def options() -> dict:
        return {
            "health_freshness": settings.health_freshness_seconds,
            "default_timeout": settings.provider_timeout_seconds,
            "retry_strategy": backend_retry_strategy(settings.provider_max_retries),
        }

    registry = ProviderRegistry(default_order=settings.provider_order)
    registry.register("on-device", lambda: OnDeviceProvider(**options()))
    registry.register("mock", lambda: MockProvider(**options()))
    return registry


def get_provider_registry() -> ProviderRegistry:
    """Get the process-wide provider registry."""
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = create_default_registry()
    return _registry


def reset_provider_registry() -> None:
    """Forget the process-wide registry (mainly for testing).

    Live instances are not disposed; call ``dispose_all`` first if needed.
    """
    global _registry
    with _registry_lock:
        _registry = None
