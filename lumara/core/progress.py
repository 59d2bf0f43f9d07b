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

"""Progress reporting for long-running operations such as model loading.

Progress values are percentages in [0, 100]. ``-1`` signals failure.
"""

import logging
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, Optional[str]], None]

PROGRESS_ERROR = -1.0
PROGRESS_COMPLETE = 100.0


class ProgressTracker:
    """Broadcasts progress updates to subscribers.

    Usage:
        tracker = ProgressTracker()
        unsubscribe = tracker.subscribe(lambda pct, msg: print(pct, msg))
        tracker.update(50, "Loading model")
        tracker.complete()
        unsubscribe()
    """

    def __init__(self) -> None:
        self._callbacks: List[ProgressCallback] = []
        self._progress: float = 0.0
        self._message: Optional[str] = None

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register a callback.

        A new subscriber immediately receives the current progress if any has
        been reported.

        Returns:
            Function that removes the subscription.
        """
        self._callbacks.append(callback)
        if self._progress > 0:
            self.deliver(callback, self._progress, self._message)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def update(self, progress: float, message: Optional[str] = None) -> None:
        """Record progress and notify every subscriber."""
        self._progress = progress
        self._message = message
        for callback in list(self._callbacks):
            self.deliver(callback, progress, message)

    def complete(self, message: str = "Complete") -> None:
        """Mark the operation as finished."""
        self.update(PROGRESS_COMPLETE, message)

    def error(self, message: str) -> None:
        """Report a failure."""
        self.update(PROGRESS_ERROR, f"Error: {message}")

    def reset(self) -> None:
        """Forget the current progress. Subscribers are kept."""
        self._progress = 0.0
        self._message = None

    def get_progress(self) -> Tuple[float, Optional[str]]:
        """Current ``(progress, message)``."""
        return self._progress, self._message

    def has_subscribers(self) -> bool:
        return bool(self._callbacks)

    @staticmethod
    def deliver(callback: ProgressCallback, progress: float, message: Optional[str]) -> None:
        """Invoke one callback, logging rather than raising its errors."""
        try:
            callback(progress, message)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")


# Process-wide tracker for embedding model loading
embedding_progress = ProgressTracker()
