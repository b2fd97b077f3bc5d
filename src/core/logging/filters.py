"""Log filters for context-based routing."""

import logging

from .context import get_log_context


class RunDebugFilter(logging.Filter):
    """
    Pass records at or above a base level, plus everything below it while
    the current run has debug logging switched on.

    The handler itself stays at DEBUG; this filter applies the real
    threshold so one run can be traced without affecting concurrent runs.

    Usage:
        handler.setLevel(logging.DEBUG)
        handler.addFilter(RunDebugFilter(logging.INFO))
    """

    def __init__(self, level: int = logging.INFO):
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= self.level:
            return True
        return bool(get_log_context().get("debug"))
