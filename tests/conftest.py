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

"""Shared pytest fixtures and configuration."""

import pytest

from lumara.config.settings import reset_settings
from lumara.core.performance import performance_monitor
from lumara.embeddings.service import EmbeddingService
from lumara.providers.on_device import install_host_runtime
from lumara.providers.registry import reset_provider_registry


def _reset_singletons() -> None:
    reset_settings()
    reset_provider_registry()
    EmbeddingService.reset_instance()
    install_host_runtime(None)
    performance_monitor.clear()


@pytest.fixture(autouse=True)
def isolate_environment_variables(monkeypatch, tmp_path):
    """Isolate tests from environment variables, .env files and singletons.

    Settings are re-read per test with the .env file disabled and the cache
    directory pointed at a temporary path, so no test touches ~/.lumara.
    """
    monkeypatch.setenv("LUMARA_SKIP_ENV_FILE", "1")
    monkeypatch.setenv("LUMARA_CACHE_DIR", str(tmp_path / "lumara-cache"))

    for var in (
        "LUMARA_PROVIDER_ORDER",
        "LUMARA_DUPLICATE_THRESHOLD",
        "LUMARA_CONTRADICTION_THRESHOLD",
        "LUMARA_SIMILARITY_THRESHOLD",
        "LUMARA_EMBEDDING_MODEL",
        "LUMARA_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)

    _reset_singletons()
    yield
    _reset_singletons()
