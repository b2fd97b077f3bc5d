"""Logging setup and configuration."""

import io
import logging
import secrets
import sys
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from core.logging.filters import RunDebugFilter
from core.logging.formatters import ConsoleFormatter, JSONFormatter

# Default settings
DEFAULT_ROTATION_WHEN = "midnight"
DEFAULT_ROTATION_INTERVAL = 1
DEFAULT_BACKUP_COUNT = 7
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

# Noisy loggers to suppress
NOISY_LOGGERS = [
    "aiohttp",
    "aiohttp.access",
    "aiohttp.client",
    "urllib3",
    "asyncio",
]


def get_log_file_path(log_dir: Path, name: str) -> Path:
    """
    Build log file path with a date subfolder.

    Structure: {log_dir}/{YYYY-MM-DD}/{name}_{MMDD}_{HHMM}.log
    """
    now = datetime.now()
    date_folder = now.strftime("%Y-%m-%d")
    filename = f"{name}_{now.strftime('%m%d')}_{now.strftime('%H%M')}.log"
    return log_dir / date_folder / filename


def _console_stream():
    if sys.platform == "win32":
        return io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
    return sys.stdout


def setup_logging(
    name: str = "wsgw",
    debug: bool = False,
    log_dir: Path | None = None,
    json_format: bool = True,
    log_to_stdout: bool = True,
    rotation_when: str = DEFAULT_ROTATION_WHEN,
    rotation_interval: int = DEFAULT_ROTATION_INTERVAL,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
) -> logging.Logger:
    """
    Configure logging with a console handler and an optional rotating file handler.

    Args:
        name: Logger name and log file prefix
        debug: Lower the console level to DEBUG for every run; otherwise only
            runs started with debug logging emit DEBUG records to the console
        log_dir: Directory for log files; no file handler when None
        json_format: Use JSON format for file logs (default: True)
        log_to_stdout: Attach the console handler (default: True)
        rotation_when: When to rotate logs - 'midnight', 'H' (hourly), 'M' (minutes)
        rotation_interval: Interval for rotation (default: 1)
        backup_count: Number of backup files to keep (default: 7)
        suppress_noisy: Quiet down HTTP client loggers

    Returns:
        Configured logger instance
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.handlers.clear()

    if log_to_stdout:
        console_handler = logging.StreamHandler(_console_stream())
        console_handler.setLevel(logging.DEBUG)
        if not debug:
            console_handler.addFilter(RunDebugFilter(DEFAULT_CONSOLE_LEVEL))
        console_handler.setFormatter(ConsoleFormatter())
        root_logger.addHandler(console_handler)

    log_file = None
    if log_dir is not None:
        log_file = get_log_file_path(Path(log_dir), name)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        if json_format:
            file_formatter = JSONFormatter()
        else:
            file_formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
            )

        file_handler = TimedRotatingFileHandler(
            log_file,
            when=rotation_when,
            interval=rotation_interval,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(DEFAULT_FILE_LEVEL)
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    if suppress_noisy:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug(
        f"Logging initialized: file={log_file}, json={json_format}, debug={debug}",
    )
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Convenience wrapper around logging.getLogger for consistency.
    """
    return logging.getLogger(name)


def generate_run_id() -> str:
    """
    Generate a unique run ID.

    Format: run_YYYYMMDD_HHMMSS_xxxxxx
    """
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"run_{ts}_{secrets.token_hex(3)}"
