"""
Core library: Reusable, service-agnostic components.

Modules:
    auth        - Session cache backends (in-memory, JSON file)
    resilience  - Retry with exponential backoff and jitter
    logging     - Structured JSON logging with run correlation IDs
    errors      - Exception hierarchy and error classification

Design Principles:
    - No dependencies on the wsgw service package
    - All modules are independently testable
    - Async-first where applicable
"""

from .types import ErrorCategory, SessionCache

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
    "SessionCache",
]
