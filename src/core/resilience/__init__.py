"""
Resilience patterns module.

Components:
    - RetryConfig: Exponential backoff configuration
    - @with_retry_async decorator: Retry with jitter for coroutines
"""

from .retry import RetryConfig, with_retry_async

__all__ = [
    "RetryConfig",
    "with_retry_async",
]
