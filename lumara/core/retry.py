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

"""Retry strategies and timeout wrapping for Lumara.

Used by:
- Provider chat/embed calls (transient BackendError)
- Embedding model loading
- Any other awaitable that talks to a backend

Exceptions are matched against the retryable/non-retryable sets with
``isinstance`` so that subclasses of a listed type are covered too.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import wraps
from typing import (
    Any,
    Awaitable,
    Callable,
    Optional,
    Set,
    Type,
    TypeVar,
    cast,
)

from lumara.core.errors import BackendError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryContext:
    """State of a retriable operation: attempt count, elapsed time, failures."""

    attempt: int = 0
    max_attempts: int = 3
    start_time: float = field(default_factory=time.time)
    last_exception: Optional[Exception] = None
    exceptions: list[Exception] = field(default_factory=list)
    total_delay: float = 0.0

    @property
    def elapsed(self) -> float:
        """Time elapsed since first attempt."""
        return time.time() - self.start_time

    @property
    def attempts_remaining(self) -> int:
        """Number of attempts remaining."""
        return max(0, self.max_attempts - self.attempt)

    def record_exception(self, exc: Exception) -> None:
        """Record an exception from a failed attempt."""
        self.last_exception = exc
        self.exceptions.append(exc)

    def record_delay(self, delay: float) -> None:
        """Record delay time."""
        self.total_delay += delay


class BaseRetryStrategy(ABC):
    """Decides when and how long to wait between attempts."""

    max_attempts: int = 1

    @abstractmethod
    def should_retry(self, context: RetryContext) -> bool:
        """Determine if another attempt should be made.

        Args:
            context: Current retry context with attempt info

        Returns:
            True if should retry, False to abort
        """

    @abstractmethod
    def get_delay(self, context: RetryContext) -> float:
        """Calculate delay before next attempt.

        Args:
            context: Current retry context

        Returns:
            Delay in seconds before next attempt
        """

    def on_retry(self, context: RetryContext) -> None:  # noqa: B027
        """Hook called before each retry attempt."""

    def on_success(self, context: RetryContext) -> None:  # noqa: B027
        """Hook called on successful completion."""

    def on_failure(self, context: RetryContext) -> None:  # noqa: B027
        """Hook called when all retries are exhausted."""


class ExponentialBackoffStrategy(BaseRetryStrategy):
    """Exponential backoff with optional jitter.

    Delay formula: min(max_delay, base_delay * multiplier ^ (attempt - 1)) * (1 ± jitter)
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        multiplier: float = 2.0,
        jitter: float = 0.0,
        retryable_exceptions: Optional[Set[Type[Exception]]] = None,
        non_retryable_exceptions: Optional[Set[Type[Exception]]] = None,
    ):
        """Initialize exponential backoff strategy.

        Args:
            max_attempts: Maximum number of attempts (including initial)
            base_delay: Initial delay in seconds
            max_delay: Maximum delay cap in seconds
            multiplier: Exponential multiplier (default 2.0 = doubling)
            jitter: Random jitter factor (0.1 = ±10% randomness)
            retryable_exceptions: Only retry these exception types (None = all)
            non_retryable_exceptions: Never retry these exception types
        """
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions
        self.non_retryable_exceptions = non_retryable_exceptions or set()

    def should_retry(self, context: RetryContext) -> bool:
        """Check attempt budget and exception type."""
        if context.attempt >= self.max_attempts:
            return False

        exc = context.last_exception
        if exc is not None:
            if self.non_retryable_exceptions and isinstance(
                exc, tuple(self.non_retryable_exceptions)
            ):
                return False
            if self.retryable_exceptions is not None:
                return isinstance(exc, tuple(self.retryable_exceptions))

        return True

    def get_delay(self, context: RetryContext) -> float:
        """Calculate exponential delay with jitter."""
        exponent = max(0, context.attempt - 1)
        delay = min(self.base_delay * (self.multiplier**exponent), self.max_delay)

        if self.jitter > 0:
            jitter_amount = delay * self.jitter
            delay += random.uniform(-jitter_amount, jitter_amount)

        return max(0.0, delay)

    def on_retry(self, context: RetryContext) -> None:
        """Log retry attempt."""
        logger.debug(
            "Retry attempt %d/%d after %r (%.2fs total delay)",
            context.attempt + 1,
            self.max_attempts,
            context.last_exception,
            context.total_delay,
        )


class NoRetryStrategy(BaseRetryStrategy):
    """Fail immediately on the first error."""

    def should_retry(self, context: RetryContext) -> bool:
        return False

    def get_delay(self, context: RetryContext) -> float:
        return 0.0


@dataclass
class RetryResult:
    """Result of a retry operation."""

    success: bool
    result: Any = None
    exception: Optional[Exception] = None
    context: RetryContext = field(default_factory=RetryContext)

    @property
    def attempts(self) -> int:
        """Number of attempts made."""
        return self.context.attempt

    @property
    def total_time(self) -> float:
        """Total time including delays."""
        return self.context.elapsed


class RetryExecutor:
    """Executes coroutines with retry logic."""

    def __init__(self, strategy: Optional[BaseRetryStrategy] = None):
        """Initialize executor with a retry strategy.

        Args:
            strategy: Retry strategy to use (default: ExponentialBackoffStrategy)
        """
        self.strategy = strategy or ExponentialBackoffStrategy()

    async def execute_async(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> RetryResult:
        """Execute an async function with retries.

        Cancellation is never retried and propagates immediately.

        Args:
            func: Async function to execute
            *args: Positional arguments
            **kwargs: Keyword arguments

        Returns:
            RetryResult with success status, result, and context
        """
        context = RetryContext(max_attempts=getattr(self.strategy, "max_attempts", 1))

        while True:
            context.attempt += 1

            try:
                result = await func(*args, **kwargs)
                self.strategy.on_success(context)
                return RetryResult(success=True, result=result, context=context)
            except Exception as e:
                context.record_exception(e)

                if self.strategy.should_retry(context):
                    self.strategy.on_retry(context)
                    delay = self.strategy.get_delay(context)
                    context.record_delay(delay)

                    if delay > 0:
                        await asyncio.sleep(delay)
                else:
                    self.strategy.on_failure(context)
                    return RetryResult(success=False, exception=e, context=context)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    strategy: Optional[BaseRetryStrategy] = None,
) -> T:
    """Run ``func`` under ``strategy`` and return its result.

    Raises:
        The last exception raised by ``func`` once retries are exhausted.
    """
    result = await RetryExecutor(strategy).execute_async(func)
    if result.success:
        return cast(T, result.result)
    assert result.exception is not None
    raise result.exception


def with_retry(
    strategy: Optional[BaseRetryStrategy] = None,
    raise_on_failure: bool = True,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator for async functions with retry logic.

    Args:
        strategy: Retry strategy (default: ExponentialBackoffStrategy)
        raise_on_failure: Whether to raise exception on final failure

    Usage:
        @with_retry(backend_retry_strategy())
        async def call_backend():
            ...
    """
    executor = RetryExecutor(strategy)

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            result = await executor.execute_async(func, *args, **kwargs)

            if result.success:
                return cast(T, result.result)
            elif raise_on_failure and result.exception:
                raise result.exception
            else:
                return None  # type: ignore

        return wrapper

    return decorator


async def with_timeout(
    awaitable: Awaitable[T],
    seconds: Optional[float],
    operation: str = "operation",
    provider: Optional[str] = None,
) -> T:
    """Await ``awaitable`` with a deadline.

    ``seconds=None`` disables the deadline.

    Raises:
        BackendError: If the deadline passes first.
    """
    if seconds is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as e:
        raise BackendError(
            f"{operation} timed out after {seconds}s",
            provider=provider,
            operation=operation,
            timeout=seconds,
            cause=e,
        ) from e


# =============================================================================
# Pre-configured strategies
# =============================================================================


def backend_retry_strategy(
    max_retries: int = 3, base_delay: float = 1.0
) -> ExponentialBackoffStrategy:
    """Retry strategy for provider chat/embed calls.

    Only transient ``BackendError`` failures are retried; every other error
    type surfaces on the first attempt.

    Args:
        max_retries: Maximum attempts
        base_delay: Initial delay between attempts

    Returns:
        Configured ExponentialBackoffStrategy
    """
    return ExponentialBackoffStrategy(
        max_attempts=max_retries,
        base_delay=base_delay,
        max_delay=10.0,
        multiplier=2.0,
        jitter=0.1,
        retryable_exceptions={BackendError},
    )


def model_load_retry_strategy(
    max_retries: int = 3, base_delay: float = 1.0
) -> ExponentialBackoffStrategy:
    """Retry strategy for loading an embedding model.

    Waits 1s, 2s, 4s... between attempts. Programming errors are not retried.

    Args:
        max_retries: Maximum attempts
        base_delay: Initial delay between attempts

    Returns:
        Configured ExponentialBackoffStrategy
    """
    return ExponentialBackoffStrategy(
        max_attempts=max_retries,
        base_delay=base_delay,
        max_delay=30.0,
        multiplier=2.0,
        non_retryable_exceptions={TypeError, AttributeError},
    )

