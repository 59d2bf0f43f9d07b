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

"""Health monitoring for Lumara providers and components.

This module provides two layers:
- HealthMonitor: periodic checks of one provider, with uptime tracking and
  degradation detection
- HealthChecker: one-shot aggregation of component checks (provider,
  embedding service, cache) into a single report

Design Patterns:
- Composite Pattern: HealthChecker aggregates multiple checks
- Strategy Pattern: Different health check implementations
- Observer Pattern: Health status change notifications

Example:
    from lumara.core.health import HealthMonitor, HealthChecker, ProviderHealthCheck

    monitor = HealthMonitor(check_interval=60)
    await monitor.start_monitoring(provider)
    print(monitor.get_status().status)

    checker = HealthChecker()
    checker.add_check(ProviderHealthCheck(provider))
    report = await checker.check_health()
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Deque,
    Dict,
    List,
    Optional,
    Protocol,
    Union,
    cast,
    runtime_checkable,
)

from lumara.core.types import ProviderStatus

if TYPE_CHECKING:
    from lumara.cache.manager import EmbeddingCacheManager
    from lumara.config.settings import Settings
    from lumara.embeddings.service import EmbeddingService
    from lumara.providers.base import BaseProvider

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Provider Health Monitor
# =============================================================================


class MonitorState(str, Enum):
    """Monitored provider condition."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


@dataclass
class MonitorStatus:
    """Current view of a monitored provider."""

    provider: Optional[str] = None
    status: MonitorState = MonitorState.UNAVAILABLE
    last_check: datetime = field(default_factory=_utcnow)
    consecutive_failures: int = 0
    uptime: float = 100.0
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "consecutive_failures": self.consecutive_failures,
            "uptime": self.uptime,
            "message": self.message,
        }


@dataclass(frozen=True)
class CheckRecord:
    """One health check outcome."""

    success: bool
    timestamp: datetime
    message: Optional[str] = None


StatusCallback = Callable[[MonitorStatus], None]


class HealthMonitor:
    """Periodically checks a provider and tracks its availability.

    Failed checks below ``failure_threshold`` in a row mark the provider
    ``degraded``; at or above it, ``unavailable``. One successful check
    makes it ``healthy`` again. Uptime is the success percentage over the
    retained check history.

    Args:
        check_interval: Seconds between periodic checks
        max_check_history: Check results kept for uptime
        failure_threshold: Consecutive failures before ``unavailable``
        check_timeout: Seconds a single check may take
        on_status_change: Optional callback for status transitions
    """

    def __init__(
        self,
        check_interval: float = 60.0,
        max_check_history: int = 100,
        failure_threshold: int = 3,
        check_timeout: float = 10.0,
        on_status_change: Optional[StatusCallback] = None,
    ) -> None:
        if check_interval <= 0:
            raise ValueError("check_interval must be positive")
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self._check_interval = check_interval
        self._failure_threshold = failure_threshold
        self._check_timeout = check_timeout
        self._checks: Deque[CheckRecord] = deque(maxlen=max_check_history)
        self._status = MonitorStatus()
        self._provider: Optional["BaseProvider"] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._check_lock = asyncio.Lock()
        self._callbacks: List[StatusCallback] = []
        if on_status_change is not None:
            self._callbacks.append(on_status_change)

    @classmethod
    def from_settings(cls, settings: Optional["Settings"] = None) -> "HealthMonitor":
        if settings is None:
            from lumara.config.settings import get_settings

            settings = get_settings()
        return cls(
            check_interval=settings.monitor_interval_seconds,
            failure_threshold=settings.monitor_failure_threshold,
            check_timeout=settings.monitor_check_timeout_seconds,
        )

    def on_status_change(self, callback: StatusCallback) -> None:
        """Register callback invoked with the new status on every transition."""
        self._callbacks.append(callback)

    async def start_monitoring(
        self, provider: "BaseProvider", interval: Optional[float] = None
    ) -> None:
        """Check ``provider`` now, then every ``interval`` seconds.

        Any previous monitoring is stopped first.
        """
        await self.stop_monitoring()

        self._provider = provider
        self._status.provider = provider.name
        period = interval if interval is not None else self._check_interval

        await self._perform_check()
        self._task = asyncio.create_task(self._run(period))
        logger.info("[HealthMonitor] Started monitoring %r (interval: %ss)", provider.name, period)

    async def stop_monitoring(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            if self._status.provider:
                logger.info("[HealthMonitor] Stopped monitoring %r", self._status.provider)
        self._provider = None

    async def _run(self, period: float) -> None:
        while True:
            await asyncio.sleep(period)
            await self._perform_check()

    async def check_now(self) -> MonitorStatus:
        """Run a check immediately and return the resulting status."""
        await self._perform_check()
        return self.get_status()

    async def _perform_check(self) -> None:
        provider = self._provider
        if provider is None:
            return

        async with self._check_lock:
            previous = self._status.status
            try:
                snapshot = await asyncio.wait_for(
                    provider.health_check(force=True), timeout=self._check_timeout
                )
            except asyncio.TimeoutError:
                self._record_failure(f"Health check timed out after {self._check_timeout}s")
            except Exception as e:
                logger.warning("[HealthMonitor] Health check failed for %r: %s", provider.name, e)
                self._record_failure(str(e) or "Health check error")
            else:
                if snapshot.available:
                    self._checks.append(CheckRecord(True, _utcnow(), snapshot.message))
                    self._status.status = MonitorState.HEALTHY
                    self._status.consecutive_failures = 0
                    self._status.message = snapshot.message
                else:
                    self._record_failure(snapshot.message or "Provider reported unavailable")

            self._status.last_check = _utcnow()
            self._status.uptime = self._calculate_uptime()

            if previous != self._status.status:
                logger.info(
                    "[HealthMonitor] Status changed: %s -> %s",
                    previous.value,
                    self._status.status.value,
                )
                self._notify()

    def _record_failure(self, message: str) -> None:
        self._checks.append(CheckRecord(False, _utcnow(), message))
        self._status.consecutive_failures += 1
        self._status.status = (
            MonitorState.UNAVAILABLE
            if self._status.consecutive_failures >= self._failure_threshold
            else MonitorState.DEGRADED
        )
        self._status.message = message

    def _calculate_uptime(self) -> float:
        if not self._checks:
            return 100.0
        successes = sum(1 for c in self._checks if c.success)
        return round(successes / len(self._checks) * 100, 2)

    def _notify(self) -> None:
        status = self.get_status()
        for callback in self._callbacks:
            try:
                callback(status)
            except Exception as e:
                logger.warning(f"Status change callback error: {e}")

    def get_status(self) -> MonitorStatus:
        """Copy of the current status."""
        return dataclasses.replace(self._status)

    def get_check_history(self) -> List[CheckRecord]:
        return list(self._checks)

    def reset(self) -> None:
        """Forget history and counters. The provider name is kept."""
        self._checks.clear()
        self._status = MonitorStatus(provider=self._status.provider)

    def is_healthy(self) -> bool:
        return self._status.status == MonitorState.HEALTHY

    def is_degraded(self) -> bool:
        return self._status.status == MonitorState.DEGRADED

    def is_unavailable(self) -> bool:
        return self._status.status == MonitorState.UNAVAILABLE

    def is_monitoring(self) -> bool:
        return self._task is not None and not self._task.done()


# =============================================================================
# Component Health Checks
# =============================================================================


class HealthStatus(str, Enum):
    """Health status enumeration."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class ComponentHealth:
    """Health status for a single component."""

    name: str
    status: HealthStatus
    message: Optional[str] = None
    latency_ms: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)
    last_check: Optional[datetime] = None
    consecutive_failures: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "latency_ms": self.latency_ms,
            "details": self.details,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "consecutive_failures": self.consecutive_failures,
        }


@dataclass
class HealthReport:
    """Aggregated health report for the system."""

    status: HealthStatus
    components: Dict[str, ComponentHealth]
    timestamp: datetime
    uptime_seconds: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "uptime_seconds": self.uptime_seconds,
            "components": {name: comp.to_dict() for name, comp in self.components.items()},
        }

    @property
    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    @property
    def is_degraded(self) -> bool:
        return self.status == HealthStatus.DEGRADED

    @property
    def unhealthy_components(self) -> List[str]:
        return [
            name for name, comp in self.components.items() if comp.status == HealthStatus.UNHEALTHY
        ]


@runtime_checkable
class HealthCheckProtocol(Protocol):
    """Protocol for health check implementations."""

    @property
    def name(self) -> str: ...

    async def check(self) -> ComponentHealth: ...


class BaseHealthCheck(ABC):
    """Abstract base class for health checks."""

    def __init__(
        self,
        name: str,
        timeout: float = 5.0,
        critical: bool = True,
    ) -> None:
        """Initialize health check.

        Args:
            name: Component name.
            timeout: Check timeout in seconds.
            critical: Whether failure makes system unhealthy (vs degraded).
        """
        self._name = name
        self._timeout = timeout
        self._critical = critical
        self._consecutive_failures = 0
        self._last_health: Optional[ComponentHealth] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_critical(self) -> bool:
        return self._critical

    @property
    def last_health(self) -> Optional[ComponentHealth]:
        return self._last_health

    @abstractmethod
    async def _do_check(self) -> ComponentHealth:
        """Perform the actual health check."""

    async def check(self) -> ComponentHealth:
        """Perform health check with timeout and error handling."""
        start = time.perf_counter()

        try:
            health = await asyncio.wait_for(self._do_check(), timeout=self._timeout)
        except asyncio.TimeoutError:
            health = ComponentHealth(
                name=self._name,
                status=HealthStatus.UNHEALTHY,
                message=f"Health check timed out after {self._timeout}s",
            )
        except Exception as e:
            health = ComponentHealth(
                name=self._name,
                status=HealthStatus.UNHEALTHY,
                message=f"Health check failed: {e}",
            )

        health.latency_ms = (time.perf_counter() - start) * 1000
        health.last_check = _utcnow()
        if health.status == HealthStatus.HEALTHY:
            self._consecutive_failures = 0
        else:
            self._consecutive_failures += 1
        health.consecutive_failures = self._consecutive_failures
        self._last_health = health
        return health


class CallableHealthCheck(BaseHealthCheck):
    """Health check using a callable function.

    Example:
        async def check_store():
            return ComponentHealth(name="store", status=HealthStatus.HEALTHY)

        checker.add_check(CallableHealthCheck("store", check_store))
    """

    def __init__(
        self,
        name: str,
        check_fn: Callable[[], Union[ComponentHealth, Awaitable[ComponentHealth]]],
        timeout: float = 5.0,
        critical: bool = True,
    ) -> None:
        super().__init__(name, timeout, critical)
        self._check_fn = check_fn

    async def _do_check(self) -> ComponentHealth:
        result = self._check_fn()
        if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
            return cast(ComponentHealth, await result)
        return cast(ComponentHealth, result)


_PROVIDER_STATUS_MAP: Dict[ProviderStatus, HealthStatus] = {
    ProviderStatus.READY: HealthStatus.HEALTHY,
    ProviderStatus.INITIALIZING: HealthStatus.DEGRADED,
    ProviderStatus.NEEDS_DOWNLOAD: HealthStatus.DEGRADED,
    ProviderStatus.UNAVAILABLE: HealthStatus.UNHEALTHY,
    ProviderStatus.ERROR: HealthStatus.UNHEALTHY,
}


class ProviderHealthCheck(BaseHealthCheck):
    """Health check for a capability provider, from its health snapshot."""

    def __init__(
        self,
        provider: "BaseProvider",
        timeout: float = 10.0,
        critical: bool = True,
    ) -> None:
        super().__init__(f"provider.{provider.name}", timeout, critical)
        self._provider = provider

    async def _do_check(self) -> ComponentHealth:
        snapshot = await self._provider.health_check()
        return ComponentHealth(
            name=self._name,
            status=_PROVIDER_STATUS_MAP.get(snapshot.status, HealthStatus.UNKNOWN),
            message=snapshot.message,
            details=snapshot.to_dict(),
        )


class EmbeddingServiceHealthCheck(BaseHealthCheck):
    """Health check for the embedding model."""

    def __init__(
        self,
        service: "EmbeddingService",
        timeout: float = 3.0,
        critical: bool = True,
    ) -> None:
        super().__init__("embeddings", timeout, critical)
        self._service = service

    async def _do_check(self) -> ComponentHealth:
        details = {"model": self._service.model_name, "dimension": self._service.dimension}
        if self._service.is_ready:
            return ComponentHealth(
                name=self._name, status=HealthStatus.HEALTHY, message="Model loaded", details=details
            )
        if self._service.is_loading:
            return ComponentHealth(
                name=self._name,
                status=HealthStatus.DEGRADED,
                message="Model loading",
                details=details,
            )
        if self._service.last_error:
            return ComponentHealth(
                name=self._name,
                status=HealthStatus.UNHEALTHY,
                message=f"Model load failed: {self._service.last_error}",
                details=details,
            )
        return ComponentHealth(
            name=self._name,
            status=HealthStatus.DEGRADED,
            message="Model not loaded yet",
            details=details,
        )


class CacheHealthCheck(BaseHealthCheck):
    """Health check for the embedding cache.

    A cache configured for disk that fell back to memory only is degraded.
    """

    def __init__(
        self,
        cache: "EmbeddingCacheManager",
        timeout: float = 3.0,
        critical: bool = False,
    ) -> None:
        super().__init__("cache.embeddings", timeout, critical)
        self._cache = cache

    async def _do_check(self) -> ComponentHealth:
        stats = await self._cache.get_stats()
        details = stats.to_dict()
        last_error = self._cache.last_error
        if last_error is not None:
            details["last_error"] = last_error.message
        if self._cache.config.enable_disk and not stats.durable_available:
            return ComponentHealth(
                name=self._name,
                status=HealthStatus.DEGRADED,
                message="Durable tier unavailable, running memory only",
                details=details,
            )
        return ComponentHealth(
            name=self._name,
            status=HealthStatus.HEALTHY,
            message="Cache is operational",
            details=details,
        )


# =============================================================================
# Health Checker (Composite Pattern)
# =============================================================================


class HealthChecker:
    """Aggregates multiple health checks into a single report.

    Results are cached for ``cache_ttl`` seconds to avoid excessive checking.

    Example:
        checker = HealthChecker()
        checker.add_check(ProviderHealthCheck(provider))
        checker.add_check(CacheHealthCheck(cache))

        report = await checker.check_health()
        print(report.to_dict())
    """

    def __init__(self, cache_ttl: float = 5.0) -> None:
        self._checks: Dict[str, BaseHealthCheck] = {}
        self._cache_ttl = cache_ttl
        self._start_time = time.time()
        self._cached_report: Optional[HealthReport] = None
        self._cache_time: Optional[float] = None
        self._on_status_change: List[Callable[[HealthStatus, HealthStatus], None]] = []

    def add_check(self, check: BaseHealthCheck) -> "HealthChecker":
        """Add a health check. Returns self for chaining."""
        self._checks[check.name] = check
        return self

    def remove_check(self, name: str) -> "HealthChecker":
        self._checks.pop(name, None)
        return self

    def on_status_change(self, callback: Callable[[HealthStatus, HealthStatus], None]) -> None:
        """Register callback called with (old_status, new_status)."""
        self._on_status_change.append(callback)

    async def check_health(self, use_cache: bool = True) -> HealthReport:
        """Perform all health checks and aggregate results.

        Args:
            use_cache: Whether to use cached results if available.
        """
        if use_cache and self._cached_report and self._cache_time:
            if time.time() - self._cache_time < self._cache_ttl:
                return self._cached_report

        component_healths: Dict[str, ComponentHealth] = {}
        if self._checks:
            results = await asyncio.gather(
                *(check.check() for check in self._checks.values()), return_exceptions=True
            )
            for check, result in zip(self._checks.values(), results):
                if isinstance(result, BaseException):
                    component_healths[check.name] = ComponentHealth(
                        name=check.name,
                        status=HealthStatus.UNHEALTHY,
                        message=f"Check error: {result}",
                        last_check=_utcnow(),
                    )
                else:
                    component_healths[check.name] = result

        overall_status = self._aggregate_status(component_healths)
        report = HealthReport(
            status=overall_status,
            components=component_healths,
            timestamp=_utcnow(),
            uptime_seconds=time.time() - self._start_time,
        )

        if self._cached_report and self._cached_report.status != overall_status:
            for callback in self._on_status_change:
                try:
                    callback(self._cached_report.status, overall_status)
                except Exception as e:
                    logger.warning(f"Status change callback error: {e}")

        self._cached_report = report
        self._cache_time = time.time()
        return report

    def _aggregate_status(self, components: Dict[str, ComponentHealth]) -> HealthStatus:
        """Critical failures make the report unhealthy, others degraded."""
        if not components:
            return HealthStatus.HEALTHY

        has_unhealthy = False
        has_degraded = False
        for name, health in components.items():
            check = self._checks.get(name)
            is_critical = check.is_critical if check else True

            if health.status == HealthStatus.UNHEALTHY:
                if is_critical:
                    has_unhealthy = True
                else:
                    has_degraded = True
            elif health.status in (HealthStatus.DEGRADED, HealthStatus.UNKNOWN):
                has_degraded = True

        if has_unhealthy:
            return HealthStatus.UNHEALTHY
        if has_degraded:
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    async def is_healthy(self) -> bool:
        report = await self.check_health()
        return report.status == HealthStatus.HEALTHY

    async def is_ready(self) -> bool:
        """True if the system can serve requests (healthy or degraded)."""
        report = await self.check_health()
        return report.status in (HealthStatus.HEALTHY, HealthStatus.DEGRADED)

    def get_check_names(self) -> List[str]:
        return list(self._checks.keys())
