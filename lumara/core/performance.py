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

"""Latency tracking for embedding and detection operations.

Keeps a bounded window of recent durations per named metric and reports
count, min, max, mean, median, p95 and p99 over that window.

Example:
    monitor = PerformanceMonitor()
    vector = await monitor.measure("embedding.embed", lambda: service.embed(text))

    stats = monitor.get_stats("embedding.embed")
    if stats and stats.p95_ms > 100:
        logger.warning("Embedding p95 above target")
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Deque, Dict, Iterator, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_MEASUREMENTS = 100

STAT_FIELDS = ("min_ms", "max_ms", "avg_ms", "median_ms", "p95_ms", "p99_ms")


@dataclass(frozen=True)
class PerformanceStats:
    """Summary of one metric's retained measurements, in milliseconds."""

    count: int
    min_ms: float
    max_ms: float
    avg_ms: float
    median_ms: float
    p95_ms: float
    p99_ms: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def summarize(samples: List[float]) -> Optional[PerformanceStats]:
    """Nearest-rank statistics; ``None`` for no samples.

    The median is the upper middle element for even counts.
    """
    if not samples:
        return None
    ordered = sorted(samples)
    n = len(ordered)
    return PerformanceStats(
        count=n,
        min_ms=ordered[0],
        max_ms=ordered[-1],
        avg_ms=sum(ordered) / n,
        median_ms=ordered[n // 2],
        p95_ms=ordered[min(int(n * 0.95), n - 1)],
        p99_ms=ordered[min(int(n * 0.99), n - 1)],
    )


class PerformanceMonitor:
    """Per-metric duration windows.

    Args:
        max_measurements: Durations kept per metric; older ones drop off
    """

    def __init__(self, max_measurements: int = DEFAULT_MAX_MEASUREMENTS):
        if max_measurements < 1:
            raise ValueError("max_measurements must be at least 1")
        self._max_measurements = max_measurements
        self._metrics: Dict[str, Deque[float]] = {}
        self._data_lock = threading.Lock()

    @property
    def max_measurements(self) -> int:
        return self._max_measurements

    async def measure(self, name: str, func: Callable[[], Awaitable[T]]) -> T:
        """Await ``func()`` and record its duration, also when it raises."""
        start = time.perf_counter()
        try:
            return await func()
        finally:
            self.record(name, (time.perf_counter() - start) * 1000)

    def measure_sync(self, name: str, func: Callable[[], T]) -> T:
        with self.timer(name):
            return func()

    @contextmanager
    def timer(self, name: str) -> Iterator[None]:
        """Record the duration of the ``with`` block."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record(name, (time.perf_counter() - start) * 1000)

    def record(self, name: str, duration_ms: float) -> None:
        with self._data_lock:
            window = self._metrics.get(name)
            if window is None:
                window = self._metrics[name] = deque(maxlen=self._max_measurements)
            window.append(float(duration_ms))

    def get_stats(self, name: str) -> Optional[PerformanceStats]:
        with self._data_lock:
            samples = list(self._metrics.get(name, ()))
        return summarize(samples)

    def get_all_stats(self) -> Dict[str, PerformanceStats]:
        with self._data_lock:
            snapshot = {name: list(window) for name, window in self._metrics.items()}
        stats: Dict[str, PerformanceStats] = {}
        for name, samples in snapshot.items():
            summary = summarize(samples)
            if summary is not None:
                stats[name] = summary
        return stats

    def get_recent(self, name: str, limit: int = 10) -> List[float]:
        """Most recent durations, oldest first."""
        if limit <= 0:
            return []
        with self._data_lock:
            samples = list(self._metrics.get(name, ()))
        return samples[-limit:]

    def exceeds(self, name: str, threshold_ms: float, stat: str = "avg_ms") -> bool:
        """True if ``stat`` of the metric is above ``threshold_ms``.

        A metric without measurements never exceeds.

        Raises:
            ValueError: If ``stat`` is not one of STAT_FIELDS
        """
        if stat not in STAT_FIELDS:
            raise ValueError(f"Unknown statistic '{stat}', expected one of {STAT_FIELDS}")
        stats = self.get_stats(name)
        if stats is None:
            return False
        return getattr(stats, stat) > threshold_ms

    @property
    def metric_names(self) -> List[str]:
        with self._data_lock:
            return list(self._metrics)

    def clear_metric(self, name: str) -> None:
        with self._data_lock:
            self._metrics.pop(name, None)

    def clear(self) -> None:
        with self._data_lock:
            self._metrics.clear()

    def export_data(self) -> Dict[str, List[float]]:
        """Raw retained durations per metric."""
        with self._data_lock:
            return {name: list(window) for name, window in self._metrics.items()}

    def import_data(self, data: Dict[str, List[float]]) -> None:
        """Replace the named metrics' windows with ``data``, trimmed to the window size."""
        with self._data_lock:
            for name, samples in data.items():
                self._metrics[name] = deque(
                    (float(s) for s in samples), maxlen=self._max_measurements
                )
        logger.debug("Imported measurements for %d metric(s)", len(data))


# Process-wide monitor used by the embedding service and detector by default
performance_monitor = PerformanceMonitor()
