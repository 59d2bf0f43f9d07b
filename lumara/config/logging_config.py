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

"""Logging setup for Lumara."""

import logging
from typing import Optional

# Third-party loggers that flood the console during model loading
NOISY_LOGGERS = [
    "urllib3",
    "asyncio",
    "filelock",
    "sentence_transformers",
    "transformers",
    "huggingface_hub",
]

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(log_level: Optional[str] = None, add_handler: bool = False) -> None:
    """Set the Lumara logger level and silence noisy third-party loggers.

    Args:
        log_level: Level for ``lumara.*`` loggers. Defaults to the
            ``log_level`` setting.
        add_handler: Attach a stream handler to the ``lumara`` logger if it
            has none. Applications that configure the root logger leave
            this off.
    """
    if log_level is None:
        from lumara.config.settings import get_settings

        log_level = get_settings().log_level

    level = getattr(logging, log_level.upper(), logging.INFO)
    lumara_logger = logging.getLogger("lumara")
    lumara_logger.setLevel(level)

    if add_handler and not lumara_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        lumara_logger.addHandler(handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
