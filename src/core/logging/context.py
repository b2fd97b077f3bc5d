"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Any, Dict, Optional

_run_id: ContextVar[str] = ContextVar("run_id", default="")
_stage_name: ContextVar[str] = ContextVar("stage_name", default="")
_scope_key: ContextVar[str] = ContextVar("scope_key", default="")
_debug: ContextVar[bool] = ContextVar("debug", default=False)


def set_log_context(
    run_id: Optional[str] = None,
    stage: Optional[str] = None,
    scope_key: Optional[str] = None,
    debug: Optional[bool] = None,
) -> None:
    if run_id is not None:
        _run_id.set(run_id)
    if stage is not None:
        _stage_name.set(stage)
    if scope_key is not None:
        _scope_key.set(scope_key)
    if debug is not None:
        _debug.set(debug)


def get_log_context() -> Dict[str, Any]:
    return {
        "run_id": _run_id.get(),
        "stage": _stage_name.get(),
        "scope_key": _scope_key.get(),
        "debug": _debug.get(),
    }


def clear_log_context() -> None:
    _run_id.set("")
    _stage_name.set("")
    _scope_key.set("")
    _debug.set(False)
