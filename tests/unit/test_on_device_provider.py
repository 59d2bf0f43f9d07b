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

"""Tests for the on-device runtime provider."""

from typing import Any, Dict, List

import pytest

from lumara.core.errors import (
    BackendError,
    InitializationError,
    NotInitializedError,
    UnsupportedCapabilityError,
)
from lumara.core.types import ProviderState, ProviderStatus
from lumara.providers.base import ProviderConfig
from lumara.providers.on_device import (
    OnDeviceProvider,
    RuntimeAvailability,
    build_prompt,
    install_host_runtime,
    session_options,
)


class FakeSession:
    def __init__(self, reply: str = "on-device reply", chunks=None, error=None):
        self.reply = reply
        self.chunks = chunks
        self.error = error
        self.prompts: List[str] = []
        self.destroyed = False

    async def prompt(self, text):
        self.prompts.append(text)
        if self.error is not None:
            raise self.error
        return self.reply

    def destroy(self):
        self.destroyed = True


class StreamingSession(FakeSession):
    async def prompt_streaming(self, text):
        self.prompts.append(text)
        for chunk in self.chunks or []:
            yield chunk
        if self.error is not None:
            raise self.error


class FakeRuntime:
    def __init__(self, availability: str = "readily", session=None):
        self.state = availability
        self.session = session or FakeSession()
        self.created: List[Dict[str, Any]] = []

    async def availability(self):
        return self.state

    async def create(self, **options):
        self.created.append(options)
        if self.state == "after-download":
            self.state = "readily"
        return self.session


def make_provider(runtime=None, fast_retry=None):
    return OnDeviceProvider(runtime=runtime, retry_strategy=fast_retry)


class TestHelpers:
    """Tests for prompt and session option building."""

    def test_prompt_without_context(self):
        assert build_prompt("Hello") == "Hello"

    def test_prompt_with_context(self):
        prompt = build_prompt("What now?", ["first note", "second note"])
        assert prompt == "Context:\nfirst note\n\nsecond note\n\nUser: What now?"

    def test_options_default_language(self):
        assert session_options(None) == {"language": "en"}

    def test_temperature_requires_top_k(self):
        options = session_options(ProviderConfig(temperature=0.5))
        assert "temperature" not in options
        assert "top_k" not in options

    def test_temperature_and_top_k_forwarded_together(self):
        options = session_options(
            ProviderConfig(temperature=0.5, top_k=3, system_prompt="Be brief", language="de")
        )
        assert options == {
            "language": "de",
            "temperature": 0.5,
            "top_k": 3,
            "system_prompt": "Be brief",
        }


class TestHealth:
    """Tests for availability probing."""

    @pytest.mark.asyncio
    async def test_missing_runtime_is_unavailable(self):
        snapshot = await make_provider().health_check()
        assert snapshot.status == ProviderStatus.UNAVAILABLE
        assert "not found" in snapshot.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "availability,status",
        [
            ("readily", ProviderStatus.READY),
            ("after-download", ProviderStatus.NEEDS_DOWNLOAD),
            ("no", ProviderStatus.UNAVAILABLE),
        ],
    )
    async def test_availability_mapping(self, availability, status):
        snapshot = await make_provider(FakeRuntime(availability)).health_check()
        assert snapshot.status == status

    @pytest.mark.asyncio
    async def test_host_runtime_is_used(self):
        install_host_runtime(FakeRuntime("readily"))
        snapshot = await make_provider().health_check()
        assert snapshot.status == ProviderStatus.READY
        assert "not initialized" in snapshot.message

    @pytest.mark.asyncio
    async def test_probe_does_not_initialize(self):
        runtime = FakeRuntime("readily")
        provider = make_provider(runtime)
        await provider.health_check()

        assert provider.state == ProviderState.UNINITIALIZED
        assert runtime.created == []


class TestInitialization:
    """Tests for session creation."""

    @pytest.mark.asyncio
    async def test_missing_runtime(self):
        with pytest.raises(InitializationError) as exc_info:
            await make_provider().initialize()
        assert exc_info.value.reason == "runtime missing"

    @pytest.mark.asyncio
    async def test_unsupported_device(self):
        provider = make_provider(FakeRuntime("no"))
        with pytest.raises(InitializationError) as exc_info:
            await provider.initialize()
        assert exc_info.value.reason == "unavailable"
        assert provider.state == ProviderState.ERROR

    @pytest.mark.asyncio
    async def test_needs_download(self):
        with pytest.raises(InitializationError) as exc_info:
            await make_provider(FakeRuntime("after-download")).initialize()
        assert exc_info.value.reason == "needs download"

    @pytest.mark.asyncio
    async def test_session_created_with_options(self):
        runtime = FakeRuntime("readily")
        provider = make_provider(runtime)
        await provider.initialize(ProviderConfig(temperature=0.2, top_k=4))

        assert provider.is_ready
        assert runtime.created == [{"language": "en", "temperature": 0.2, "top_k": 4}]


class TestChat:
    """Tests for chat and streaming chat."""

    @pytest.mark.asyncio
    async def test_chat_sends_built_prompt(self, fast_retry):
        session = FakeSession(reply="Sure.")
        provider = make_provider(FakeRuntime(session=session), fast_retry)
        await provider.initialize()

        assert await provider.chat("Plan?", context=["notes"]) == "Sure."
        assert session.prompts == ["Context:\nnotes\n\nUser: Plan?"]

    @pytest.mark.asyncio
    async def test_runtime_failure_becomes_backend_error(self, fast_retry):
        session = FakeSession(error=RuntimeError("model crashed"))
        provider = make_provider(FakeRuntime(session=session), fast_retry)
        await provider.initialize()

        with pytest.raises(BackendError, match="model crashed"):
            await provider.chat("hi")
        assert len(session.prompts) == 3

    @pytest.mark.asyncio
    async def test_embed_not_supported(self):
        provider = make_provider(FakeRuntime())
        await provider.initialize()
        with pytest.raises(UnsupportedCapabilityError):
            await provider.embed("text")

    @pytest.mark.asyncio
    async def test_stream_yields_chunks(self):
        session = StreamingSession(chunks=["Hel", "lo"])
        provider = make_provider(FakeRuntime(session=session))
        await provider.initialize()

        chunks = [chunk async for chunk in provider.chat_stream("Hi")]
        assert chunks == ["Hel", "lo"]
        assert session.prompts == ["Hi"]

    @pytest.mark.asyncio
    async def test_stream_failure_midway(self):
        session = StreamingSession(chunks=["partial"], error=RuntimeError("cut off"))
        provider = make_provider(FakeRuntime(session=session))
        await provider.initialize()

        received = []
        with pytest.raises(BackendError, match="cut off"):
            async for chunk in provider.chat_stream("Hi"):
                received.append(chunk)
        assert received == ["partial"]

    @pytest.mark.asyncio
    async def test_stream_requires_streaming_session(self):
        provider = make_provider(FakeRuntime(session=FakeSession()))
        await provider.initialize()

        with pytest.raises(UnsupportedCapabilityError):
            async for _ in provider.chat_stream("Hi"):
                pass

    @pytest.mark.asyncio
    async def test_stream_before_initialize(self):
        provider = make_provider(FakeRuntime(session=StreamingSession()))
        with pytest.raises(NotInitializedError):
            async for _ in provider.chat_stream("Hi"):
                pass


class TestDownloadAndDispose:
    """Tests for model download and session teardown."""

    @pytest.mark.asyncio
    async def test_download_triggers_session(self):
        runtime = FakeRuntime("after-download")
        provider = make_provider(runtime)

        assert await provider.download_model() == RuntimeAvailability.READILY
        assert runtime.session.destroyed
        assert (await provider.health_check()).status == ProviderStatus.READY

    @pytest.mark.asyncio
    async def test_download_noop_when_ready(self):
        runtime = FakeRuntime("readily")
        assert await make_provider(runtime).download_model() == RuntimeAvailability.READILY
        assert runtime.created == []

    @pytest.mark.asyncio
    async def test_download_without_runtime(self):
        with pytest.raises(InitializationError):
            await make_provider().download_model()

    @pytest.mark.asyncio
    async def test_dispose_destroys_session(self):
        runtime = FakeRuntime("readily")
        provider = make_provider(runtime)
        await provider.initialize()
        await provider.dispose()

        assert runtime.session.destroyed
        assert provider.state == ProviderState.DISPOSED
