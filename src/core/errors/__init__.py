"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- WsgwError hierarchy for typed exceptions
- Classification utilities for error handling
"""

from core.errors.exceptions import (
    AuthenticationError,
    AuthError,
    DelegationError,
    # Enums
    ErrorCategory,
    NoBindingError,
    ProtocolError,
    ReauthRequiredError,
    RunDeadlineExceeded,
    TransportError,
    # Base classes
    WsgwError,
    # Classification utilities
    classify_exception,
    classify_http_status,
    is_retryable_error,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "WsgwError",
    "AuthError",
    # Taxonomy
    "TransportError",
    "DelegationError",
    "ProtocolError",
    "ReauthRequiredError",
    "AuthenticationError",
    "NoBindingError",
    "RunDeadlineExceeded",
    # Classification utilities
    "is_retryable_error",
    "classify_http_status",
    "classify_exception",
]
