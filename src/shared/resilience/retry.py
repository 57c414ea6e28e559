"""
Retry policy and async retry executor.

The policy describes *how* to retry (attempt budget, delay schedule, which
errors are worth retrying); the executor applies it to any coroutine factory.

Usage:
    policy = RetryPolicy(max_retries=3, delays_ms=(100, 500, 2000))

    outcome = await retry_async(
        lambda: provider.embed_documents(texts),
        policy,
        operation="embed_documents",
    )
    vectors = outcome.value

Delay schedule:
    The delay before retry N (1-based) is delays_ms[N - 1]; once the schedule
    is exhausted the last configured delay repeats.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(RuntimeError):
    """Raised when an operation still fails after the last permitted retry."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException):
        super().__init__(
            f"{operation} failed after {attempts} attempt(s): "
            f"{type(last_error).__name__}: {last_error}"
        )
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """
    Explicit retry policy.

    Attributes:
        max_retries: Retries allowed after the initial attempt (0 = no retry)
        delays_ms: Per-retry backoff schedule in milliseconds
        retryable: Exception types that may be retried
        fatal: Exception types that are never retried, even if also retryable
    """

    max_retries: int = 3
    delays_ms: Tuple[int, ...] = (100, 500, 2000)
    retryable: Tuple[Type[BaseException], ...] = (Exception,)
    fatal: Tuple[Type[BaseException], ...] = ()

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if not self.delays_ms:
            raise ValueError("delays_ms must contain at least one delay")
        if any(delay < 0 for delay in self.delays_ms):
            raise ValueError(f"delays_ms must be non-negative, got {self.delays_ms}")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry_number: int) -> float:
        """Backoff in seconds before the given retry (1-based)."""
        if retry_number < 1:
            raise ValueError(f"retry_number must be >= 1, got {retry_number}")
        index = min(retry_number - 1, len(self.delays_ms) - 1)
        return self.delays_ms[index] / 1000.0

    def is_retryable(self, error: BaseException) -> bool:
        if isinstance(error, self.fatal):
            return False
        # Errors may veto retries themselves (e.g. HTTP 4xx from a provider)
        if getattr(error, "retryable", True) is False:
            return False
        return isinstance(error, self.retryable)


@dataclass(frozen=True)
class RetryResult(Generic[T]):
    value: T
    attempts: int
    total_time_ms: float

    @property
    def retries(self) -> int:
        return self.attempts - 1

    @property
    def was_retried(self) -> bool:
        return self.attempts > 1


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    operation: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
) -> RetryResult[T]:
    """
    Run ``fn`` under ``policy``.

    Cancellation is never intercepted: ``asyncio.CancelledError`` raised while
    awaiting ``fn`` or a backoff sleep propagates immediately.

    Args:
        fn: Zero-argument coroutine factory, called once per attempt
        policy: Retry policy to apply
        operation: Name used in logs and in the exhausted error
        sleep: Awaitable sleep (injectable for tests)
        on_retry: Callback invoked with (retry_number, error) before each backoff

    Returns:
        RetryResult carrying the value and the number of attempts made

    Raises:
        RetryExhaustedError: After max_retries retries all failed
        Exception: A non-retryable error from ``fn``, unchanged
    """
    start = time.monotonic()
    attempt = 0

    while True:
        attempt += 1
        try:
            value = await fn()
        except Exception as e:
            if not policy.is_retryable(e):
                logger.error(
                    "retry_non_retryable_error",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                raise

            if attempt >= policy.max_attempts:
                logger.error(
                    "retry_exhausted",
                    extra={
                        "operation": operation,
                        "attempts": attempt,
                        "max_retries": policy.max_retries,
                        "error": str(e),
                    },
                )
                raise RetryExhaustedError(operation, attempt, e) from e

            delay = policy.delay_for(attempt)
            logger.warning(
                "retry_scheduled",
                extra={
                    "operation": operation,
                    "retry": attempt,
                    "max_retries": policy.max_retries,
                    "delay_seconds": delay,
                    "error": str(e),
                },
            )
            if on_retry is not None:
                on_retry(attempt, e)
            await sleep(delay)
            continue

        return RetryResult(
            value=value,
            attempts=attempt,
            total_time_ms=(time.monotonic() - start) * 1000,
        )
