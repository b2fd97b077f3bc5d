"""
Retry utilities with exception-aware handling.

Uses the exception hierarchy to make retry decisions:
- Transient errors: retry with exponential backoff
- Auth errors: fail immediately, a fresh login is the caller's decision
- Permanent errors: fail immediately (no retry)
"""

import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps

from core.errors.exceptions import (
    WsgwError,
    classify_exception,
    is_retryable_error,
)

logger = logging.getLogger(__name__)


def _extract_error_category(error: Exception) -> str:
    """Return a string error category for an exception."""
    if isinstance(error, WsgwError):
        return error.category.value
    return classify_exception(error).value


def _log_retry_failure(
    func_name: str,
    error: Exception,
    error_category: str,
    config: "RetryConfig",
) -> None:
    """Log permanent-error or max-retries-exhausted."""
    error_type = type(error).__name__
    if not is_retryable_error(error):
        logger.warning(
            "Permanent error for %s, not retrying: %s",
            func_name,
            str(error)[:200],
            extra={
                "operation": func_name,
                "error_type": error_type,
                "error_category": error_category,
                "error_message": str(error)[:200],
            },
        )
        return

    logger.error(
        "Max retries exhausted for %s: %s",
        func_name,
        str(error)[:200],
        extra={
            "operation": func_name,
            "error_type": error_type,
            "error_category": error_category,
            "max_attempts": config.max_attempts,
            "error_message": str(error)[:200],
        },
    )


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 2
    base_delay: float = 0.5
    max_delay: float = 5.0
    exponential_base: float = 2.0

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.max_attempts = max(1, int(self.max_attempts))
        self.base_delay = float(self.base_delay)
        self.max_delay = float(self.max_delay)
        self.exponential_base = float(self.exponential_base)

    @classmethod
    def from_retries(cls, retries: int, base_delay: float = 0.5) -> "RetryConfig":
        """Build a config allowing `retries` extra attempts after the first."""
        return cls(max_attempts=int(retries) + 1, base_delay=base_delay)

    def get_delay(self, attempt: int) -> float:
        """
        Calculate delay with equal jitter to prevent thundering herd.

        Args:
            attempt: 0-indexed attempt number

        Returns:
            Delay in seconds
        """
        base_delay = self.base_delay * (self.exponential_base**attempt)

        # Equal jitter: half fixed, half random
        jitter = random.uniform(0, base_delay / 2)
        delay = (base_delay / 2) + jitter

        return min(delay, self.max_delay)

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """True if `error` is retryable and attempts remain after `attempt` (0-indexed)."""
        if attempt >= self.max_attempts - 1:
            return False
        return is_retryable_error(error)


def with_retry_async(config: RetryConfig):
    """
    Decorator for retrying async functions with backoff.

    Usage:
        @with_retry_async(config=RetryConfig.from_retries(1))
        async def post_json(url, body):
            ...
    """

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(config.max_attempts):
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    error_category = _extract_error_category(e)

                    if not config.should_retry(e, attempt):
                        if config.max_attempts > 1:
                            _log_retry_failure(func.__name__, e, error_category, config)
                        raise

                    delay = config.get_delay(attempt)
                    logger.warning(
                        "Retryable error for %s, will retry",
                        func.__name__,
                        extra={
                            "operation": func.__name__,
                            "attempt": attempt + 1,
                            "max_attempts": config.max_attempts,
                            "error_category": error_category,
                            "delay_seconds": round(delay, 2),
                            "error_message": str(e)[:200],
                        },
                    )
                    await asyncio.sleep(delay)
                    continue

                if attempt > 0:
                    logger.info(
                        "Retry succeeded for %s after %d attempts",
                        func.__name__,
                        attempt + 1,
                        extra={
                            "operation": func.__name__,
                            "attempt": attempt + 1,
                            "total_attempts": config.max_attempts,
                        },
                    )
                return result

        return wrapper

    return decorator


__all__ = [
    "RetryConfig",
    "with_retry_async",
]
