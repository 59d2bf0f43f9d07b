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

"""Configuration management for Lumara."""

from lumara.config.settings import (
    DEFAULT_EMBEDDING_DIMENSION,
    DEFAULT_EMBEDDING_MODEL,
    DEFAULT_PROVIDER_ORDER,
    GLOBAL_LUMARA_DIR,
    Settings,
    get_settings,
    load_settings,
    reset_settings,
)
from lumara.config.logging_config import configure_logging

__all__ = [
    "DEFAULT_EMBEDDING_DIMENSION",
    "DEFAULT_EMBEDDING_MODEL",
    "DEFAULT_PROVIDER_ORDER",
    "GLOBAL_LUMARA_DIR",
    "Settings",
    "configure_logging",
    "get_settings",
    "load_settings",
    "reset_settings",
]
