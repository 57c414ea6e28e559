"""Resilience patterns for remote provider calls."""

from src.shared.resilience.retry import (
    RetryExhaustedError,
    RetryPolicy,
    RetryResult,
    retry_async,
)

__all__ = ["RetryExhaustedError", "RetryPolicy", "RetryResult", "retry_async"]
