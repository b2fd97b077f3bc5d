"""Log formatters for JSON and console output."""

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any

from core.logging.context import get_log_context
from core.utils.json_serializers import json_serializer

# Header/field names whose values are secrets
SECRET_KEYS = frozenset(
    {
        "token",
        "acctoken",
        "access_token",
        "password",
        "authorizecode",
        "encryptkey",
    }
)

# Matches secret-bearing query parameters in URLs and redirect targets
SENSITIVE_PARAMS_PATTERN = re.compile(
    r"([?&])(code|token|key|secret|password|auth)=[^&]*",
    re.IGNORECASE,
)


def redact(value: Any) -> Any:
    """
    Return a copy of value with secrets masked.

    Dicts are walked recursively; keys in SECRET_KEYS have their value
    replaced, strings have sensitive query parameters masked.
    """
    if isinstance(value, dict):
        return {
            k: "[REDACTED]" if str(k).lower() in SECRET_KEYS and v else redact(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [redact(v) for v in value]
    if isinstance(value, str):
        return SENSITIVE_PARAMS_PATTERN.sub(r"\1\2=[REDACTED]", value)
    return value


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    Sanitizes URLs and header dicts to remove tokens before logging.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        "duration_ms",
        # HTTP
        "http_status",
        "http_method",
        "http_url",
        "api_endpoint",
        "api_method",
        # Errors
        "error_category",
        "error_message",
        "error_code",
        "error_type",
        # Resilience
        "operation",
        "attempt",
        "max_attempts",
        "total_attempts",
        "delay_seconds",
        # Domain
        "state",
        "account_index",
        "account_count",
        "facet",
        "query_date",
        "headers",
        "destination_path",
    ]

    NUMERIC_FIELDS = {
        "duration_ms": float,
        "delay_seconds": float,
        "attempt": int,
        "max_attempts": int,
        "total_attempts": int,
        "http_status": int,
        "account_index": int,
        "account_count": int,
    }

    URL_FIELDS = ["http_url"]

    def _sanitize_value(self, key: str, value: Any) -> Any:
        if key in self.URL_FIELDS and isinstance(value, str):
            return SENSITIVE_PARAMS_PATTERN.sub(r"\1\2=[REDACTED]", value)
        if isinstance(value, (dict, list)):
            return redact(value)
        return value

    def _ensure_type(self, field: str, value: Any) -> Any:
        if field not in self.NUMERIC_FIELDS or value is None:
            return value
        try:
            return self.NUMERIC_FIELDS[field](value)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _base_log_entry(record: logging.LogRecord) -> dict[str, Any]:
        return {
            "ts": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

    @staticmethod
    def _inject_context(log_entry: dict[str, Any], log_context: dict[str, Any]) -> None:
        for field in ("run_id", "stage", "scope_key"):
            if log_context.get(field):
                log_entry[field] = log_context[field]

    def _inject_extra_fields(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = self._sanitize_value(field, self._ensure_type(field, value))

    def _inject_exception(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        if not record.exc_info:
            return

        exc_type, exc_value, _ = record.exc_info
        log_entry["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": redact(str(exc_value)) if exc_value else None,
            "stacktrace": redact(self.formatException(record.exc_info)),
        }

    def format(self, record: logging.LogRecord) -> str:
        log_entry = self._base_log_entry(record)
        self._inject_context(log_entry, get_log_context())

        if record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        self._inject_extra_fields(log_entry, record)
        self._inject_exception(log_entry, record)

        return json.dumps(log_entry, default=json_serializer, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter with color-coded log levels.

    Colors are auto-disabled when output is not a TTY (pipes, files).
    """

    COLORS = {
        logging.DEBUG: "\033[36m",  # Cyan
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colors = sys.stdout.isatty()

    def _format_level_name(self, record: logging.LogRecord) -> str:
        level_name = record.levelname
        if not self._use_colors:
            return level_name

        color = self.COLORS.get(record.levelno, "")
        if not color:
            return level_name

        return f"{color}{level_name}{self.RESET}"

    @staticmethod
    def _build_prefix(level_name: str, log_context: dict[str, Any]) -> str:
        parts = [
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            level_name,
        ]

        if log_context.get("scope_key"):
            parts.append(f"[{log_context['scope_key']}]")
        if log_context.get("stage"):
            parts.append(f"[{log_context['stage']}]")

        return " - ".join(parts)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output with optional color coding."""
        log_context = get_log_context()

        level_name = self._format_level_name(record)
        prefix = self._build_prefix(level_name, log_context)
        message = redact(record.getMessage())

        run_id = log_context.get("run_id")
        if run_id:
            return f"{prefix} - [{run_id[:8]}] {message}"

        return f"{prefix} - {message}"
