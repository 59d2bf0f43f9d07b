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

"""Capability providers for Lumara.

Providers wrap an AI backend behind one lifecycle (initialize, dispose,
health check) and declare which capabilities (chat, embed, streaming) they
offer. The registry picks the first usable provider at runtime.

Usage:
    from lumara.providers import get_provider_registry

    registry = get_provider_registry()
    provider = await registry.select_provider()
    reply = await provider.chat("Hello")
"""

from lumara.providers.base import BaseProvider, CapabilityProvider, ProviderConfig
from lumara.providers.mock import MockProvider, MockStats, deterministic_embedding
from lumara.providers.on_device import (
    LanguageRuntime,
    LanguageSession,
    OnDeviceProvider,
    RuntimeAvailability,
    get_host_runtime,
    install_host_runtime,
)
from lumara.providers.registry import (
    ProviderRegistry,
    create_default_registry,
    get_provider_registry,
    reset_provider_registry,
)

__all__ = [
    # Base
    "BaseProvider",
    "CapabilityProvider",
    "ProviderConfig",
    # Implementations
    "MockProvider",
    "MockStats",
    "deterministic_embedding",
    "OnDeviceProvider",
    "RuntimeAvailability",
    "LanguageRuntime",
    "LanguageSession",
    "get_host_runtime",
    "install_host_runtime",
    # Registry
    "ProviderRegistry",
    "create_default_registry",
    "get_provider_registry",
    "reset_provider_registry",
]
