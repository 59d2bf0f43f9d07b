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

"""Centralized error handling for Lumara.

This module provides:
- The error taxonomy raised by providers, the registry, the embedding
  service and the vector math kernel
- An error handler that classifies foreign exceptions into that taxonomy
- User-friendly messages and support information for UI layers
- Correlation IDs for tracing a failure across log lines

Every error keeps its specific type when it propagates, so callers can
react differently to, e.g., "switch provider" versus "retry".
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from lumara.core.types import HealthSnapshot, ProviderStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Error Categories
# =============================================================================


class ErrorCategory(Enum):
    """Categories of errors for classification and handling."""

    # Provider errors
    PROVIDER_INITIALIZATION = "provider_initialization"
    PROVIDER_NOT_INITIALIZED = "provider_not_initialized"
    PROVIDER_UNSUPPORTED = "provider_unsupported"
    PROVIDER_BACKEND = "provider_backend"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    PROVIDER_NOT_FOUND = "provider_not_found"

    # Data errors
    INVALID_INPUT = "invalid_input"
    DIMENSION_MISMATCH = "dimension_mismatch"

    # Storage errors
    CACHE = "cache"

    # System errors
    INTERNAL_ERROR = "internal_error"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


# =============================================================================
# Custom Exception Types
# =============================================================================


class LumaraError(Exception):
    """Base exception for all Lumara errors.

    Provides structured error information including:
    - Error category and severity
    - Whether the failure is worth retrying
    - Correlation ID for tracking
    - Recovery suggestions
    - Original exception chain
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        recovery_hint: Optional[str] = None,
        correlation_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.recovery_hint = recovery_hint
        self.correlation_id = correlation_id or str(uuid.uuid4())[:8]
        self.cause = cause
        self.recoverable = recoverable
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.message,
            "type": type(self).__name__,
            "category": self.category.value,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "correlation_id": self.correlation_id,
            "recovery_hint": self.recovery_hint,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        result = f"[{self.correlation_id}] {self.message}"
        if self.recovery_hint:
            result += f"\nRecovery hint: {self.recovery_hint}"
        return result


class InitializationError(LumaraError):
    """A backend failed to start. Recoverable by retry or by another provider."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        reason: Optional[str] = None,
        **kwargs: Any,
    ):
        kwargs.setdefault(
            "recovery_hint",
            "Retry initialization or select a different provider.",
        )
        super().__init__(
            message,
            category=ErrorCategory.PROVIDER_INITIALIZATION,
            recoverable=True,
            **kwargs,
        )
        self.provider = provider
        self.reason = reason
        self.details["provider"] = provider
        self.details["reason"] = reason


class NotInitializedError(LumaraError):
    """An operation was called before initialize() completed."""

    def __init__(self, provider: str, state: Optional[str] = None, **kwargs: Any):
        super().__init__(
            f"{provider} is not initialized. Call initialize() first.",
            category=ErrorCategory.PROVIDER_NOT_INITIALIZED,
            recovery_hint="Call initialize() and wait for it to complete before use.",
            **kwargs,
        )
        self.provider = provider
        self.state = state
        self.details["provider"] = provider
        self.details["state"] = state


class UnsupportedCapabilityError(LumaraError):
    """The provider does not declare the requested capability."""

    def __init__(self, provider: str, capability: str, **kwargs: Any):
        super().__init__(
            f"{provider} does not support '{capability}'",
            category=ErrorCategory.PROVIDER_UNSUPPORTED,
            recovery_hint=f"Select a provider that declares the '{capability}' capability.",
            **kwargs,
        )
        self.provider = provider
        self.capability = capability
        self.details["provider"] = provider
        self.details["capability"] = capability


class InvalidInputError(LumaraError, ValueError):
    """Caller supplied empty or malformed input."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs: Any):
        super().__init__(
            message,
            category=ErrorCategory.INVALID_INPUT,
            severity=ErrorSeverity.WARNING,
            recovery_hint="Provide non-empty text.",
            **kwargs,
        )
        self.field = field
        self.details["field"] = field


class BackendError(LumaraError):
    """Transient backend failure. Eligible for retry with backoff."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        operation: Optional[str] = None,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ):
        if timeout is not None:
            hint = f"Operation timed out after {timeout}s. Try again or increase the timeout."
        else:
            hint = "The backend failed temporarily. Try again in a moment."
        kwargs.setdefault("recovery_hint", hint)
        super().__init__(
            message,
            category=ErrorCategory.PROVIDER_BACKEND,
            recoverable=True,
            **kwargs,
        )
        self.provider = provider
        self.operation = operation
        self.timeout = timeout
        self.details["provider"] = provider
        self.details["operation"] = operation
        if timeout is not None:
            self.details["timeout"] = timeout


class NoProviderAvailableError(LumaraError):
    """Selection found no usable provider.

    Carries the health snapshots collected while scanning, so the caller can
    explain why nothing could be used.
    """

    def __init__(
        self,
        message: Optional[str] = None,
        snapshots: Optional[Sequence[HealthSnapshot]] = None,
        **kwargs: Any,
    ):
        self.snapshots: List[HealthSnapshot] = list(snapshots or [])
        if message is None:
            message = self._build_message(self.snapshots)
        super().__init__(
            message,
            category=ErrorCategory.PROVIDER_UNAVAILABLE,
            recovery_hint=self.user_message(),
            **kwargs,
        )
        self.details["snapshots"] = [s.to_dict() for s in self.snapshots]

    @staticmethod
    def _build_message(snapshots: Sequence[HealthSnapshot]) -> str:
        if not snapshots:
            return "No AI provider available: no provider is configured"
        lines = [f"No AI provider available. Tried {len(snapshots)} provider(s):"]
        for snap in snapshots:
            lines.append(f"  - {snap.provider}: {snap.status.value}: {snap.message or 'no details'}")
        return "\n".join(lines)

    def user_message(self) -> str:
        """Explain the failure in terms a user can act on."""
        if not self.snapshots:
            return "No AI backend is configured. Configure a provider and try again."
        statuses = {s.status for s in self.snapshots}
        if ProviderStatus.NEEDS_DOWNLOAD in statuses or ProviderStatus.INITIALIZING in statuses:
            waiting = [
                s.provider
                for s in self.snapshots
                if s.status in (ProviderStatus.NEEDS_DOWNLOAD, ProviderStatus.INITIALIZING)
            ]
            return (
                f"The on-device model for {', '.join(waiting)} is still downloading. "
                "Wait for the download to finish and try again."
            )
        if statuses == {ProviderStatus.UNAVAILABLE}:
            return "No AI backend is available on this device."
        return "AI backends failed to start. Try again, or check the provider configuration."


class DimensionMismatchError(LumaraError, ValueError):
    """Vectors of different lengths were compared."""

    def __init__(self, expected: int, actual: int, **kwargs: Any):
        super().__init__(
            f"Vector dimension mismatch: {expected} vs {actual}",
            category=ErrorCategory.DIMENSION_MISMATCH,
            recovery_hint="Only compare vectors produced by the same embedding model.",
            **kwargs,
        )
        self.expected = expected
        self.actual = actual
        self.details["expected"] = expected
        self.details["actual"] = actual


class ProviderNotFoundError(LumaraError):
    """Provider name not present in the registry."""

    def __init__(
        self,
        provider: str,
        available_providers: Optional[List[str]] = None,
        **kwargs: Any,
    ):
        message = f"Provider not found: {provider}"
        if available_providers:
            message += f". Available: {', '.join(available_providers[:5])}"
        super().__init__(
            message,
            category=ErrorCategory.PROVIDER_NOT_FOUND,
            recovery_hint="Check provider name spelling.",
            **kwargs,
        )
        self.provider = provider
        self.available_providers = available_providers or []
        self.details["available_providers"] = self.available_providers


class CacheError(LumaraError):
    """Durable cache tier failure.

    Recorded by the cache manager, which keeps serving from memory. Never
    surfaced from embedding calls.
    """

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs: Any):
        super().__init__(
            message,
            category=ErrorCategory.CACHE,
            severity=ErrorSeverity.WARNING,
            recoverable=True,
            **kwargs,
        )
        self.operation = operation
        self.details["operation"] = operation


# =============================================================================
# Error Handler
# =============================================================================


_USER_MESSAGES: Dict[ErrorCategory, str] = {
    ErrorCategory.PROVIDER_INITIALIZATION: (
        "The AI backend failed to start. Please try again."
    ),
    ErrorCategory.PROVIDER_NOT_INITIALIZED: (
        "The AI backend is still starting up. Please wait a moment."
    ),
    ErrorCategory.PROVIDER_UNSUPPORTED: (
        "The selected AI backend cannot perform this operation."
    ),
    ErrorCategory.PROVIDER_BACKEND: "Unable to complete the request. Please try again.",
    ErrorCategory.PROVIDER_UNAVAILABLE: "AI is currently unavailable on this device.",
    ErrorCategory.PROVIDER_NOT_FOUND: "The requested AI backend is not installed.",
    ErrorCategory.INVALID_INPUT: "Could not process your text. Please enter some text and try again.",
    ErrorCategory.DIMENSION_MISMATCH: (
        "Stored data was produced by a different model. Rebuild the embedding cache."
    ),
    ErrorCategory.CACHE: "Local storage is unavailable. Results will not be saved.",
}

# Ordered keyword rules for exceptions raised by third-party code.
_KEYWORD_RULES = (
    (("not initialized",), "not_initialized"),
    (("sqlite", "database", "disk", "storage"), "cache"),
    (("does not support", "not supported", "unsupported"), "unsupported"),
    (("not available", "unavailable"), "unavailable"),
    (("chat", "completion", "prompt"), "backend"),
    (("embedding", "tokenize", "pipeline"), "backend"),
    (("model", "load", "download"), "initialization"),
    (("network", "fetch", "timeout", "timed out", "connection"), "backend"),
    (("initialize", "setup", "config"), "initialization"),
)


class ErrorHandler:
    """Classifies exceptions into the Lumara taxonomy.

    Usage:
        handler = ErrorHandler()

        try:
            await provider.chat(message)
        except Exception as e:
            error = handler.handle(e, context="chat")
            show(handler.user_message(error))
    """

    def __init__(self, logger_name: str = "lumara", max_history: int = 100):
        self.logger = logging.getLogger(logger_name)
        self._history: List[LumaraError] = []
        self._max_history = max_history

    def handle(self, exception: BaseException, context: Optional[str] = None) -> LumaraError:
        """Convert an exception to a LumaraError, log it, and record it.

        Lumara errors are returned unchanged so their specific type survives.
        """
        error = self.classify(exception)

        label = f" - {context}" if context else ""
        self.logger.log(
            _severity_to_level(error.severity),
            "[%s] %s%s: %s",
            error.correlation_id,
            error.category.value,
            label,
            error.message,
        )
        if error.cause is not None:
            self.logger.debug("[%s] Caused by: %r", error.correlation_id, error.cause)

        self._history.append(error)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history :]
        return error

    def classify(self, exception: BaseException) -> LumaraError:
        """Map an arbitrary exception onto the taxonomy without logging."""
        if isinstance(exception, LumaraError):
            return exception

        if isinstance(exception, (asyncio.TimeoutError, TimeoutError)):
            return BackendError("Operation timed out", cause=exception)
        if isinstance(exception, ConnectionError):
            return BackendError(f"Connection failed: {exception}", cause=exception)
        if isinstance(exception, sqlite3.Error):
            # diskcache is backed by SQLite
            return CacheError(f"Cache storage failed: {exception}", cause=exception)

        text = str(exception) or type(exception).__name__
        lowered = text.lower()
        for keywords, kind in _KEYWORD_RULES:
            if any(k in lowered for k in keywords):
                return self._build(kind, text, exception)

        return LumaraError(text or "Unknown AI error", cause=exception)

    @staticmethod
    def _build(kind: str, text: str, cause: BaseException) -> LumaraError:
        if kind == "not_initialized":
            return NotInitializedError("provider", cause=cause)
        if kind == "unsupported":
            return UnsupportedCapabilityError("provider", "unknown", cause=cause)
        if kind == "unavailable":
            return NoProviderAvailableError(text, cause=cause)
        if kind == "initialization":
            return InitializationError(text, reason=text, cause=cause)
        if kind == "cache":
            return CacheError(text, cause=cause)
        return BackendError(text, cause=cause)

    def user_message(self, error: LumaraError) -> str:
        """Get a message suitable for display in the UI."""
        if isinstance(error, NoProviderAvailableError):
            return error.user_message()
        return _USER_MESSAGES.get(
            error.category, "An unexpected error occurred. Please try again."
        )

    def support_info(self, error: LumaraError) -> str:
        """Technical details to attach to a bug report."""
        lines = [
            f"Error Code: {error.category.value}",
            f"Recoverable: {error.recoverable}",
            f"Error Type: {type(error).__name__}",
            f"Correlation ID: {error.correlation_id}",
        ]
        if error.cause is not None:
            lines.append(f"Cause: {error.cause}")
        return "\n".join(lines)

    @staticmethod
    def is_recoverable(error: BaseException) -> bool:
        """Check if an error is worth retrying."""
        return isinstance(error, LumaraError) and error.recoverable

    def get_recent_errors(self, count: int = 10) -> List[LumaraError]:
        """Get recent errors from history."""
        return self._history[-count:]

    def clear_history(self) -> None:
        """Clear error history."""
        self._history = []


def _severity_to_level(severity: ErrorSeverity) -> int:
    return {
        ErrorSeverity.DEBUG: logging.DEBUG,
        ErrorSeverity.INFO: logging.INFO,
        ErrorSeverity.WARNING: logging.WARNING,
        ErrorSeverity.ERROR: logging.ERROR,
        ErrorSeverity.CRITICAL: logging.CRITICAL,
    }.get(severity, logging.ERROR)


# =============================================================================
# Singleton Error Handler
# =============================================================================


_global_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """Get the global error handler instance."""
    global _global_handler
    if _global_handler is None:
        _global_handler = ErrorHandler()
    return _global_handler
