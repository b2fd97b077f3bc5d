"""
Unified exception hierarchy for the WSGW client.

Provides typed exceptions with retry classification so that callers can
decide between retrying, re-authenticating and giving up.
"""

# Import ErrorCategory from canonical source to avoid duplicate enum issues
# (comparing enums from different classes always returns False)
from core.types import ErrorCategory


class WsgwError(Exception):
    """
    Base exception for all client errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.UNKNOWN,
        )

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Transport Errors
# =============================================================================


class TransportError(WsgwError):
    """Upstream HTTP call failed: non-2xx status, connection error or timeout."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        raw_body: str = "",
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.status = status
        self.raw_body = raw_body

    @property
    def category(self) -> ErrorCategory:  # type: ignore[override]
        if self.status is None:
            return ErrorCategory.TRANSIENT
        return classify_http_status(self.status)


class DelegationError(WsgwError):
    """The encrypt/decrypt/CAPTCHA delegation proxy returned nothing usable."""

    category = ErrorCategory.TRANSIENT


class ProtocolError(WsgwError):
    """The upstream envelope reported a business failure code."""

    category = ErrorCategory.PERMANENT

    def __init__(
        self,
        message: str,
        code: str | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.code = code


class RunDeadlineExceeded(WsgwError):
    """The whole fetch run did not finish within its deadline."""

    category = ErrorCategory.TRANSIENT


# =============================================================================
# Authentication Errors
# =============================================================================


class AuthError(WsgwError):
    """Base class for authentication errors."""

    category = ErrorCategory.AUTH


class ReauthRequiredError(AuthError):
    """The authorize endpoint reported that the cached session is dead."""

    pass


class AuthenticationError(AuthError):
    """Credentials were rejected during login."""

    pass


# =============================================================================
# Domain Errors
# =============================================================================


class NoBindingError(WsgwError):
    """The authenticated user has no service accounts bound."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# Error Classification Utilities
# =============================================================================


def classify_http_status(status_code: int) -> ErrorCategory:
    """Classify HTTP status code into error category."""
    if 200 <= status_code < 300:
        return ErrorCategory.UNKNOWN  # Not an error

    if status_code == 401:
        return ErrorCategory.AUTH

    if status_code == 429:
        return ErrorCategory.TRANSIENT  # Rate limited

    if 400 <= status_code < 500:
        return ErrorCategory.PERMANENT  # Client errors, won't fix with retry

    if status_code >= 500:
        return ErrorCategory.TRANSIENT  # Server errors, may recover

    return ErrorCategory.UNKNOWN


def classify_exception(exc: Exception) -> ErrorCategory:
    """Classify an exception into error category."""
    # Already classified
    if isinstance(exc, WsgwError):
        return exc.category

    if isinstance(exc, (TimeoutError, ConnectionError)):
        return ErrorCategory.TRANSIENT

    exc_type = type(exc).__name__.lower()
    exc_str = str(exc).lower()

    connection_markers = (
        "connectionerror",
        "connection refused",
        "connection reset",
        "name resolution",
        "timeout",
    )
    if any(m in exc_type or m in exc_str for m in connection_markers):
        return ErrorCategory.TRANSIENT

    return ErrorCategory.UNKNOWN


def is_retryable_error(exc: Exception) -> bool:
    """
    Check if exception should be retried.

    Retryable errors include transient errors (connection, timeout, 5xx,
    delegation failures) and unknown errors (conservative retry). Auth and
    permanent errors are never retried.
    """
    if isinstance(exc, WsgwError):
        return exc.is_retryable

    return classify_exception(exc) in (
        ErrorCategory.TRANSIENT,
        ErrorCategory.UNKNOWN,
    )
