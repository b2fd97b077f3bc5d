"""Tests for LogContext and log_phase."""

import logging

from core.logging import LogContext, get_log_context, log_phase, set_log_context


class TestLogContextManager:
    """Test temporary context."""

    def test_sets_and_restores(self):
        set_log_context(run_id="outer")
        with LogContext(run_id="inner", scope_key="home"):
            ctx = get_log_context()
            assert ctx["run_id"] == "inner"
            assert ctx["scope_key"] == "home"
        ctx = get_log_context()
        assert ctx["run_id"] == "outer"
        assert ctx["scope_key"] == ""

    def test_restores_on_exception(self):
        try:
            with LogContext(scope_key="home"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert get_log_context()["scope_key"] == ""

    def test_none_fields_untouched(self):
        set_log_context(stage="fetch")
        with LogContext(run_id="r"):
            assert get_log_context()["stage"] == "fetch"

    def test_debug_flag_scoped(self):
        with LogContext(debug=True):
            assert get_log_context()["debug"] is True
        assert get_log_context()["debug"] is False


class TestLogPhase:
    """Test phase timing."""

    def test_logs_duration_and_sets_stage(self, caplog):
        logger = logging.getLogger("test.phase")
        with caplog.at_level(logging.DEBUG, logger="test.phase"):
            with log_phase(logger, "binding", account_count=2):
                assert get_log_context()["stage"] == "binding"

        record = caplog.records[-1]
        assert record.getMessage() == "Phase complete: binding"
        assert record.duration_ms >= 0
        assert record.account_count == 2
        assert get_log_context()["stage"] == ""

    def test_logs_even_on_failure(self, caplog):
        logger = logging.getLogger("test.phase")
        with caplog.at_level(logging.INFO, logger="test.phase"):
            try:
                with log_phase(logger, "authenticate", level=logging.INFO):
                    raise ValueError("bad")
            except ValueError:
                pass
        assert caplog.records[-1].getMessage() == "Phase complete: authenticate"

    def test_string_level(self, caplog):
        logger = logging.getLogger("test.phase")
        with caplog.at_level(logging.INFO, logger="test.phase"):
            with log_phase(logger, "fetch", level="info"):
                pass
        assert caplog.records[-1].levelno == logging.INFO
