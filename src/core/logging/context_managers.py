"""Context managers for structured logging."""

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional

from core.logging.context import get_log_context, set_log_context
from core.logging.utilities import log_with_context


class LogContext:
    """
    Context manager for temporary log context.

    Usage:
        with LogContext(run_id=run_id, scope_key=scope_key):
            # All logs in this block will have run_id and scope_key
            await do_work()
    """

    def __init__(
        self,
        run_id: Optional[str] = None,
        stage: Optional[str] = None,
        scope_key: Optional[str] = None,
        debug: Optional[bool] = None,
    ):
        self.new_context = {
            "run_id": run_id,
            "stage": stage,
            "scope_key": scope_key,
            "debug": debug,
        }
        self.old_context: Dict[str, Any] = {}

    def __enter__(self) -> "LogContext":
        self.old_context = get_log_context()
        for key, value in self.new_context.items():
            if value is not None:
                set_log_context(**{key: value})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        set_log_context(
            run_id=self.old_context.get("run_id", ""),
            stage=self.old_context.get("stage", ""),
            scope_key=self.old_context.get("scope_key", ""),
            debug=self.old_context.get("debug", False),
        )
        return False


@contextmanager
def log_phase(
    logger: logging.Logger,
    phase: str,
    level: int = logging.DEBUG,
    **context: Any,
):
    """
    Context manager for timing a phase of the run.

    The phase name is also set as the log context stage for the duration
    of the block.

    Example:
        with log_phase(logger, "binding"):
            bindings = await fetcher.fetch_bindings(...)
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    previous_stage = get_log_context()["stage"]
    set_log_context(stage=phase)
    start = time.perf_counter()
    try:
        yield
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        log_with_context(
            logger,
            level,
            f"Phase complete: {phase}",
            duration_ms=round(duration_ms, 2),
            **context,
        )
        set_log_context(stage=previous_stage)
