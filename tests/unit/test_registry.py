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

"""Tests for provider registration and selection."""

import pytest

from lumara.core.errors import NoProviderAvailableError, ProviderNotFoundError
from lumara.core.types import ProviderState, ProviderStatus
from lumara.providers.mock import MockProvider
from lumara.providers.on_device import OnDeviceProvider, install_host_runtime
from lumara.providers.registry import (
    ProviderRegistry,
    get_provider_registry,
    reset_provider_registry,
)


class NamedMock(MockProvider):
    def __init__(self, name, status=ProviderStatus.READY, fail_init=False, **kwargs):
        super().__init__(**kwargs)
        self.name = name
        if status != ProviderStatus.READY:
            self.set_health(status, f"{name} is {status.value}")
        if fail_init:
            self.fail_initialize()


def registry_with(*providers, order=None):
    registry = ProviderRegistry(default_order=order)
    for provider in providers:
        registry.register(provider.name, lambda p=provider: p)
    return registry


class TestRegistration:
    """Tests for register/unregister bookkeeping."""

    def test_register_and_list(self):
        registry = registry_with(NamedMock("a"), NamedMock("b"))
        assert registry.list_providers() == ["a", "b"]
        assert registry.is_registered("a")

    def test_unregister(self):
        registry = registry_with(NamedMock("a"))
        assert registry.unregister("a")
        assert not registry.unregister("a")
        assert registry.list_providers() == []

    def test_fallback_order_puts_configured_first(self):
        registry = registry_with(NamedMock("a"), NamedMock("b"), NamedMock("c"), order=["c", "x"])
        assert registry.fallback_order == ["c", "a", "b"]

    def test_create_unknown_provider(self):
        with pytest.raises(ProviderNotFoundError, match="ghost"):
            ProviderRegistry().create_provider("ghost")


class TestSelection:
    """Tests for health-checked selection with fallback."""

    @pytest.mark.asyncio
    async def test_first_healthy_provider_selected(self):
        registry = registry_with(
            NamedMock("a", ProviderStatus.UNAVAILABLE), NamedMock("b"), NamedMock("c")
        )
        provider = await registry.select_provider()

        assert provider.name == "b"
        assert provider.is_ready
        assert registry.get_provider("c") is None

    @pytest.mark.asyncio
    async def test_unhealthy_provider_never_initialized(self):
        down = NamedMock("a", ProviderStatus.NEEDS_DOWNLOAD)
        registry = registry_with(down, NamedMock("b"))
        await registry.select_provider()

        assert down.state == ProviderState.UNINITIALIZED
        assert down.get_stats().initialize_calls == 0

    @pytest.mark.asyncio
    async def test_preferred_provider_first(self):
        registry = registry_with(NamedMock("a"), NamedMock("b"))
        provider = await registry.select_provider("b")
        assert provider.name == "b"

    @pytest.mark.asyncio
    async def test_unknown_preferred_falls_back(self):
        registry = registry_with(NamedMock("a"))
        provider = await registry.select_provider("ghost")
        assert provider.name == "a"

    @pytest.mark.asyncio
    async def test_unhealthy_preferred_falls_back(self):
        registry = registry_with(NamedMock("a"), NamedMock("b", ProviderStatus.UNAVAILABLE))
        provider = await registry.select_provider("b")
        assert provider.name == "a"

    @pytest.mark.asyncio
    async def test_init_failure_falls_back(self):
        registry = registry_with(NamedMock("a", fail_init=True), NamedMock("b"))
        provider = await registry.select_provider()
        assert provider.name == "b"

    @pytest.mark.asyncio
    async def test_ready_provider_reused(self):
        registry = registry_with(NamedMock("a"))
        first = await registry.select_provider()
        second = await registry.select_provider()

        assert first is second
        assert first.get_stats().initialize_calls == 1

    @pytest.mark.asyncio
    async def test_no_fallback_when_disabled(self):
        registry = registry_with(NamedMock("a"), NamedMock("b", ProviderStatus.UNAVAILABLE))

        with pytest.raises(NoProviderAvailableError) as exc_info:
            await registry.select_provider("b", allow_fallback=False)
        assert [s.provider for s in exc_info.value.snapshots] == ["b"]

    @pytest.mark.asyncio
    async def test_nothing_available_reports_every_attempt(self):
        registry = registry_with(
            NamedMock("a", ProviderStatus.UNAVAILABLE),
            NamedMock("b", fail_init=True),
        )

        with pytest.raises(NoProviderAvailableError) as exc_info:
            await registry.select_provider()

        error = exc_info.value
        assert [s.provider for s in error.snapshots] == ["a", "b"]
        assert error.snapshots[0].status == ProviderStatus.UNAVAILABLE
        assert error.snapshots[1].status == ProviderStatus.ERROR
        assert "Tried 2 provider(s)" in error.message

    @pytest.mark.asyncio
    async def test_empty_registry(self):
        with pytest.raises(NoProviderAvailableError) as exc_info:
            await ProviderRegistry().select_provider()
        assert exc_info.value.snapshots == []

    @pytest.mark.asyncio
    async def test_factory_failure_recorded(self):
        registry = ProviderRegistry()

        def broken():
            raise RuntimeError("factory exploded")

        registry.register("broken", broken)
        registry.register("a", lambda: NamedMock("a"))

        provider = await registry.select_provider()
        assert provider.name == "a"

    @pytest.mark.asyncio
    async def test_errored_instance_is_rebuilt(self):
        registry = ProviderRegistry()
        registry.register("a", lambda: NamedMock("a"))

        first = await registry.select_provider()
        first.mark_error("lost session")
        second = await registry.select_provider()

        assert second is not first
        assert second.is_ready


class TestAvailabilityAndDisposal:
    """Tests for availability reports and disposal."""

    @pytest.mark.asyncio
    async def test_check_availability_does_not_initialize(self):
        registry = registry_with(NamedMock("a"), NamedMock("b", ProviderStatus.UNAVAILABLE))
        report = await registry.check_availability()

        assert report["a"].status == ProviderStatus.READY
        assert report["b"].status == ProviderStatus.UNAVAILABLE
        assert registry.get_provider("a") is None

    @pytest.mark.asyncio
    async def test_dispose_all(self):
        registry = registry_with(NamedMock("a"))
        provider = await registry.select_provider()
        await registry.dispose_all()

        assert provider.state == ProviderState.DISPOSED
        assert registry.get_provider("a") is None


class TestDefaultRegistry:
    """Tests for the process-wide registry."""

    def test_singleton(self):
        assert get_provider_registry() is get_provider_registry()
        first = get_provider_registry()
        reset_provider_registry()
        assert get_provider_registry() is not first

    def test_builtin_providers(self):
        assert get_provider_registry().fallback_order == ["on-device", "mock"]

    @pytest.mark.asyncio
    async def test_falls_back_to_mock_without_runtime(self):
        provider = await get_provider_registry().select_provider()
        assert isinstance(provider, MockProvider)

    @pytest.mark.asyncio
    async def test_prefers_on_device_when_runtime_ready(self):
        class Runtime:
            async def availability(self):
                return "readily"

            async def create(self, **options):
                return object()

        install_host_runtime(Runtime())
        provider = await get_provider_registry().select_provider()
        assert isinstance(provider, OnDeviceProvider)
