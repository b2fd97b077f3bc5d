"""
Core types and protocols used across modules.

This module provides base types, enums, and protocol definitions that are
shared across the core library to ensure consistency and type safety.
"""

from enum import Enum
from typing import Any, Protocol


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that may succeed on a later attempt
                   (e.g., network timeouts, 5xx, delegation proxy hiccups)
        AUTH: Session or credential failures; a fresh login is needed
              (e.g., rejected credentials, authorize endpoint reporting a dead session)
        PERMANENT: Failures that won't succeed on retry
                   (e.g., 4xx, business error codes, no bound accounts)
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class SessionCache(Protocol):
    """
    Protocol for the key-value store holding one session bundle per scope.

    Values are plain JSON-compatible dicts. Writing None clears the entry.
    No TTL semantics: validity is decided by the caller.
    """

    def get(self, scope_key: str) -> dict[str, Any] | None:
        """Return the stored value for scope_key, or None if absent."""
        ...

    def set(self, scope_key: str, value: dict[str, Any] | None) -> None:
        """Store value for scope_key, or clear it when value is None."""
        ...


__all__ = [
    "ErrorCategory",
    "SessionCache",
]
