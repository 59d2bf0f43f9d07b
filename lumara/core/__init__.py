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

"""Core infrastructure for Lumara.

This package provides foundational infrastructure:
- Shared types (capabilities, provider states, health snapshots)
- Error taxonomy and classification
- Retry and timeout helpers
- Progress reporting
- Latency statistics
- Health monitoring
"""

from lumara.core.types import (
    DEFAULT_HEALTH_FRESHNESS_SECONDS,
    Capability,
    HealthSnapshot,
    ProviderKind,
    ProviderState,
    ProviderStatus,
)
from lumara.core.errors import (
    BackendError,
    CacheError,
    DimensionMismatchError,
    ErrorCategory,
    ErrorHandler,
    ErrorSeverity,
    InitializationError,
    InvalidInputError,
    LumaraError,
    NoProviderAvailableError,
    NotInitializedError,
    ProviderNotFoundError,
    UnsupportedCapabilityError,
    get_error_handler,
)
from lumara.core.retry import (
    BaseRetryStrategy,
    ExponentialBackoffStrategy,
    NoRetryStrategy,
    RetryContext,
    RetryExecutor,
    RetryResult,
    backend_retry_strategy,
    model_load_retry_strategy,
    retry_async,
    with_retry,
    with_timeout,
)
from lumara.core.progress import (
    PROGRESS_COMPLETE,
    PROGRESS_ERROR,
    ProgressCallback,
    ProgressTracker,
    embedding_progress,
)
from lumara.core.performance import (
    PerformanceMonitor,
    PerformanceStats,
    performance_monitor,
)
from lumara.core.health import (
    BaseHealthCheck,
    CacheHealthCheck,
    CallableHealthCheck,
    CheckRecord,
    ComponentHealth,
    EmbeddingServiceHealthCheck,
    HealthChecker,
    HealthMonitor,
    HealthReport,
    HealthStatus,
    MonitorState,
    MonitorStatus,
    ProviderHealthCheck,
)

__all__ = [
    # Types
    "DEFAULT_HEALTH_FRESHNESS_SECONDS",
    "Capability",
    "HealthSnapshot",
    "ProviderKind",
    "ProviderState",
    "ProviderStatus",
    # Errors
    "BackendError",
    "CacheError",
    "DimensionMismatchError",
    "ErrorCategory",
    "ErrorHandler",
    "ErrorSeverity",
    "InitializationError",
    "InvalidInputError",
    "LumaraError",
    "NoProviderAvailableError",
    "NotInitializedError",
    "ProviderNotFoundError",
    "UnsupportedCapabilityError",
    "get_error_handler",
    # Retry
    "BaseRetryStrategy",
    "ExponentialBackoffStrategy",
    "NoRetryStrategy",
    "RetryContext",
    "RetryExecutor",
    "RetryResult",
    "backend_retry_strategy",
    "model_load_retry_strategy",
    "retry_async",
    "with_retry",
    "with_timeout",
    # Progress
    "PROGRESS_COMPLETE",
    "PROGRESS_ERROR",
    "ProgressCallback",
    "ProgressTracker",
    "embedding_progress",
    # Performance
    "PerformanceMonitor",
    "PerformanceStats",
    "performance_monitor",
    # Health
    "BaseHealthCheck",
    "CacheHealthCheck",
    "CallableHealthCheck",
    "CheckRecord",
    "ComponentHealth",
    "EmbeddingServiceHealthCheck",
    "HealthChecker",
    "HealthMonitor",
    "HealthReport",
    "HealthStatus",
    "MonitorState",
    "MonitorStatus",
    "ProviderHealthCheck",
]
