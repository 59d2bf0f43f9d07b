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

"""Pytest fixtures for unit tests."""

import logging
from pathlib import Path

import pytest

from lumara.cache.config import CacheConfig
from lumara.cache.manager import EmbeddingCacheManager
from lumara.core.retry import backend_retry_strategy, model_load_retry_strategy
from lumara.providers.mock import MockProvider


@pytest.fixture(autouse=True)
def reset_lumara_logger():
    """Reset the lumara logger so caplog sees every record.

    Prior tests may have called configure_logging() and changed the level or
    attached handlers.
    """
    logger = logging.getLogger("lumara")

    original_handlers = logger.handlers.copy()
    original_level = logger.level
    original_propagate = logger.propagate

    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.DEBUG)

    yield

    logger.handlers = original_handlers
    logger.level = original_level
    logger.propagate = original_propagate


@pytest.fixture
def fast_retry():
    """Backend retry strategy without delays."""
    return backend_retry_strategy(max_retries=3, base_delay=0)


@pytest.fixture
def fast_load_retry():
    """Model load retry strategy without delays."""
    return model_load_retry_strategy(max_retries=3, base_delay=0)


@pytest.fixture
def mock_provider(fast_retry):
    """Uninitialized mock provider with instant retries."""
    return MockProvider(retry_strategy=fast_retry)


@pytest.fixture
def cache_config(tmp_path: Path) -> CacheConfig:
    return CacheConfig(disk_path=tmp_path / "cache", memory_max_size=100)


@pytest.fixture
def cache_manager(cache_config):
    manager = EmbeddingCacheManager(cache_config)
    yield manager
    manager.close()
