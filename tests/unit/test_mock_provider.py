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

"""Tests for the deterministic mock provider."""

import asyncio

import numpy as np
import pytest

from lumara.core.errors import (
    BackendError,
    DimensionMismatchError,
    InitializationError,
    InvalidInputError,
)
from lumara.core.types import Capability, ProviderState, ProviderStatus
from lumara.providers.mock import MockProvider, deterministic_embedding


class TestChat:
    """Tests for programmed and default chat replies."""

    @pytest.mark.asyncio
    async def test_default_reply(self, mock_provider):
        await mock_provider.initialize()
        assert await mock_provider.chat("hello") == "Mock response to: hello"

    @pytest.mark.asyncio
    async def test_default_reply_mentions_context(self, mock_provider):
        await mock_provider.initialize()
        reply = await mock_provider.chat("hello", context=["one", "two"])
        assert reply == "Mock response to: hello (with 2 context messages)"

    @pytest.mark.asyncio
    async def test_exact_match_wins(self, mock_provider):
        await mock_provider.initialize()
        mock_provider.set_response("hello", "Hi there!")
        mock_provider.set_response("hello world", "Hello, world!")

        assert await mock_provider.chat("hello world") == "Hello, world!"
        assert await mock_provider.chat("hello") == "Hi there!"

    @pytest.mark.asyncio
    async def test_substring_match(self, mock_provider):
        await mock_provider.initialize()
        mock_provider.set_response("weather", "Sunny")
        assert await mock_provider.chat("what is the weather today?") == "Sunny"

    @pytest.mark.asyncio
    async def test_simulated_failures_are_retried(self, mock_provider):
        await mock_provider.initialize()
        mock_provider.fail_next_chat(count=2)

        assert await mock_provider.chat("hi") == "Mock response to: hi"
        assert mock_provider.get_stats().chat_calls == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise(self, mock_provider):
        await mock_provider.initialize()
        mock_provider.fail_next_chat(count=5)

        with pytest.raises(BackendError, match="Simulated chat failure"):
            await mock_provider.chat("hi")
        assert mock_provider.get_stats().chat_calls == 3

    @pytest.mark.asyncio
    async def test_chat_delay_with_timeout(self, mock_provider):
        await mock_provider.initialize()
        mock_provider.set_delays(chat=1.0)

        with pytest.raises(BackendError):
            await mock_provider.chat("hi", timeout=0.01)


class TestEmbed:
    """Tests for mock embeddings."""

    @pytest.mark.asyncio
    async def test_deterministic_and_normalized(self, mock_provider):
        await mock_provider.initialize()
        first = await mock_provider.embed("Use TypeScript")
        second = await mock_provider.embed("Use TypeScript")

        assert first == second
        assert len(first) == 384
        assert np.linalg.norm(first) == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_different_texts_differ(self, mock_provider):
        await mock_provider.initialize()
        assert await mock_provider.embed("alpha") != await mock_provider.embed("beta")

    def test_module_function_matches_provider_dimension(self):
        assert len(deterministic_embedding("x", 16)) == 16
        assert deterministic_embedding("x", 16) == deterministic_embedding("x", 16)

    @pytest.mark.asyncio
    async def test_programmed_embedding(self, mock_provider):
        await mock_provider.initialize()
        mock_provider.set_embedding("test", [0.5] * 384)
        assert await mock_provider.embed("test") == [0.5] * 384

    def test_programmed_embedding_wrong_dimension(self, mock_provider):
        with pytest.raises(DimensionMismatchError):
            mock_provider.set_embedding("test", [0.5] * 3)

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self, mock_provider):
        await mock_provider.initialize()
        with pytest.raises(InvalidInputError):
            await mock_provider.embed("   ")

    @pytest.mark.asyncio
    async def test_custom_dimension(self, fast_retry):
        provider = MockProvider(dimension=8, retry_strategy=fast_retry)
        await provider.initialize()
        assert len(await provider.embed("short")) == 8


class TestLifecycleAndHealth:
    """Tests for programmed failures, health and stats."""

    def test_capabilities(self, mock_provider):
        assert mock_provider.supports(Capability.CHAT)
        assert mock_provider.supports(Capability.EMBED)
        assert not mock_provider.supports(Capability.STREAMING)

    @pytest.mark.asyncio
    async def test_fail_initialize_once(self, mock_provider):
        mock_provider.fail_initialize()

        with pytest.raises(InitializationError):
            await mock_provider.initialize()
        assert mock_provider.state == ProviderState.ERROR

        await mock_provider.initialize()
        assert mock_provider.is_ready
        assert mock_provider.get_stats().initialize_calls == 2

    @pytest.mark.asyncio
    async def test_init_delay_timeout(self, mock_provider):
        mock_provider.set_delays(init=1.0)

        with pytest.raises(InitializationError):
            await mock_provider.initialize(timeout=0.01)
        assert mock_provider.state == ProviderState.ERROR

    @pytest.mark.asyncio
    async def test_dispose_while_initializing(self, mock_provider):
        mock_provider.set_delays(init=0.05)
        task = asyncio.create_task(mock_provider.initialize())
        await asyncio.sleep(0.01)

        await mock_provider.dispose()

        with pytest.raises(InitializationError, match="disposed during initialization"):
            await task
        assert mock_provider.state == ProviderState.DISPOSED
        assert (await mock_provider.health_check()).status == ProviderStatus.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_health_override(self, mock_provider):
        assert (await mock_provider.health_check()).status == ProviderStatus.READY

        mock_provider.set_health(ProviderStatus.NEEDS_DOWNLOAD, "downloading")
        snapshot = await mock_provider.health_check()
        assert snapshot.status == ProviderStatus.NEEDS_DOWNLOAD
        assert snapshot.message == "downloading"

        mock_provider.set_health(None)
        assert (await mock_provider.health_check()).available

    @pytest.mark.asyncio
    async def test_stats_and_clearing(self, mock_provider):
        await mock_provider.initialize()
        mock_provider.set_response("a", "b")
        mock_provider.set_embedding("c", [0.1] * 384)
        await mock_provider.embed("c")

        stats = mock_provider.get_stats()
        assert stats.configured_responses == 1
        assert stats.configured_embeddings == 1
        assert stats.embed_calls == 1

        mock_provider.clear_responses()
        mock_provider.clear_embeddings()
        mock_provider.reset_stats()
        stats = mock_provider.get_stats()
        assert stats.configured_responses == 0
        assert stats.configured_embeddings == 0
        assert stats.embed_calls == 0

    @pytest.mark.asyncio
    async def test_dispose_clears_programming(self, mock_provider):
        await mock_provider.initialize()
        mock_provider.set_response("a", "b")
        await mock_provider.dispose()

        assert mock_provider.get_stats().configured_responses == 0
        assert mock_provider.state == ProviderState.DISPOSED
