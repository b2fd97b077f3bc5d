"""
Structured logging module.

Provides JSON logging with run correlation IDs, context propagation and
secret redaction.
"""

from core.logging.context import (
    clear_log_context,
    get_log_context,
    set_log_context,
)
from core.logging.context_managers import LogContext, log_phase
from core.logging.filters import RunDebugFilter
from core.logging.formatters import ConsoleFormatter, JSONFormatter, redact
from core.logging.setup import (
    generate_run_id,
    get_log_file_path,
    get_logger,
    setup_logging,
)
from core.logging.utilities import log_exception, log_with_context

__all__ = [
    # Setup
    "setup_logging",
    "get_logger",
    "generate_run_id",
    "get_log_file_path",
    # Formatters
    "JSONFormatter",
    "ConsoleFormatter",
    "redact",
    # Filters
    "RunDebugFilter",
    # Context
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    # Context Managers
    "LogContext",
    "log_phase",
    # Utilities
    "log_with_context",
    "log_exception",
]
