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

"""Tests for settings and logging configuration."""

import logging

import pytest
from pydantic import ValidationError

from lumara.config.logging_config import NOISY_LOGGERS, configure_logging
from lumara.config.settings import Settings, get_settings, reset_settings


class TestSettings:
    """Tests for defaults, environment overrides and validation."""

    def test_defaults(self):
        settings = Settings()
        assert settings.duplicate_threshold == 0.85
        assert settings.contradiction_threshold == 0.70
        assert settings.similarity_threshold == 0.7
        assert settings.embedding_dimension == 384
        assert settings.provider_order == ["on-device", "mock"]
        assert settings.monitor_interval_seconds == 60.0

    def test_cache_dir_from_environment(self, tmp_path):
        assert get_settings().cache_dir == tmp_path / "lumara-cache"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("LUMARA_DUPLICATE_THRESHOLD", "0.9")
        monkeypatch.setenv("LUMARA_PROVIDER_ORDER", '["mock"]')
        reset_settings()

        settings = get_settings()
        assert settings.duplicate_threshold == 0.9
        assert settings.provider_order == ["mock"]

    def test_settings_cached(self):
        assert get_settings() is get_settings()

    @pytest.mark.parametrize(
        "field", ["similarity_threshold", "duplicate_threshold", "contradiction_threshold"]
    )
    def test_threshold_out_of_range(self, field):
        with pytest.raises(ValidationError):
            Settings(**{field: 1.2})

    def test_contradiction_above_duplicate(self):
        with pytest.raises(ValidationError, match="must not exceed duplicate_threshold"):
            Settings(duplicate_threshold=0.6, contradiction_threshold=0.7)

    def test_log_level_normalized(self):
        assert Settings(log_level="debug").log_level == "DEBUG"
        with pytest.raises(ValidationError):
            Settings(log_level="chatty")

    def test_cache_dir_expands_user(self):
        settings = Settings(cache_dir="~/lumara-test-cache")
        assert "~" not in str(settings.cache_dir)


class TestConfigureLogging:
    def test_sets_level_and_silences_noise(self):
        configure_logging("ERROR")

        assert logging.getLogger("lumara").level == logging.ERROR
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_level_from_settings(self, monkeypatch):
        monkeypatch.setenv("LUMARA_LOG_LEVEL", "warning")
        reset_settings()

        configure_logging()
        assert logging.getLogger("lumara").level == logging.WARNING

    def test_handler_added_once(self):
        configure_logging("INFO", add_handler=True)
        configure_logging("INFO", add_handler=True)
        assert len(logging.getLogger("lumara").handlers) == 1
