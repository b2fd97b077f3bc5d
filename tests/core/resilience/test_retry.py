"""
Tests for async retry logic with exponential backoff and jitter.
"""

from unittest.mock import AsyncMock, patch

import pytest

from core.errors import (
    AuthenticationError,
    DelegationError,
    ProtocolError,
    TransportError,
)
from core.resilience import RetryConfig, with_retry_async


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_default_values(self):
        """Test default configuration values."""
        config = RetryConfig()
        assert config.max_attempts == 2
        assert config.base_delay == 0.5
        assert config.max_delay == 5.0
        assert config.exponential_base == 2.0

    def test_type_conversion_from_strings(self):
        """Test that config handles string inputs (e.g., from YAML)."""
        config = RetryConfig(max_attempts="4", base_delay="1.5", max_delay="10")
        assert config.max_attempts == 4
        assert config.base_delay == 1.5
        assert config.max_delay == 10.0

    def test_max_attempts_floor(self):
        """At least one attempt is always made."""
        assert RetryConfig(max_attempts=0).max_attempts == 1

    def test_from_retries(self):
        """Retries count extra attempts after the first."""
        assert RetryConfig.from_retries(0).max_attempts == 1
        assert RetryConfig.from_retries(1).max_attempts == 2
        assert RetryConfig.from_retries(1, base_delay=0).base_delay == 0.0

    def test_exponential_backoff_calculation(self):
        """Equal jitter keeps each delay within [base/2, base]."""
        config = RetryConfig(base_delay=1.0, exponential_base=2.0, max_delay=30.0)
        assert 0.5 <= config.get_delay(0) <= 1.0
        assert 1.0 <= config.get_delay(1) <= 2.0
        assert 2.0 <= config.get_delay(2) <= 4.0

    def test_max_delay_cap(self):
        config = RetryConfig(base_delay=10.0, max_delay=3.0)
        assert config.get_delay(5) == 3.0


class TestShouldRetry:
    """Tests for retry decisions."""

    def test_transient_retried(self):
        config = RetryConfig(max_attempts=3)
        assert config.should_retry(DelegationError("proxy down"), 0)

    def test_last_attempt_not_retried(self):
        config = RetryConfig(max_attempts=2)
        assert not config.should_retry(DelegationError("proxy down"), 1)

    def test_permanent_not_retried(self):
        config = RetryConfig(max_attempts=3)
        assert not config.should_retry(ProtocolError("bad"), 0)
        assert not config.should_retry(TransportError("HTTP 404", status=404), 0)

    def test_auth_not_retried(self):
        config = RetryConfig(max_attempts=3)
        assert not config.should_retry(AuthenticationError("nope"), 0)

    def test_foreign_connection_error_retried(self):
        config = RetryConfig(max_attempts=3)
        assert config.should_retry(ConnectionError("reset"), 0)


class TestWithRetryAsync:
    """Tests for the with_retry_async decorator."""

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        """No retry when the call succeeds."""
        func = AsyncMock(return_value="ok")
        func.__name__ = "func"
        wrapped = with_retry_async(config=RetryConfig(max_attempts=3, base_delay=0))(func)

        assert await wrapped("a", key="b") == "ok"
        func.assert_awaited_once_with("a", key="b")

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self):
        """A transient failure is retried and the later result returned."""
        func = AsyncMock(side_effect=[DelegationError("flaky"), "ok"])
        func.__name__ = "func"
        wrapped = with_retry_async(config=RetryConfig(max_attempts=2, base_delay=0))(func)

        assert await wrapped() == "ok"
        assert func.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_raises_last_error(self):
        func = AsyncMock(side_effect=DelegationError("down"))
        func.__name__ = "func"
        wrapped = with_retry_async(config=RetryConfig(max_attempts=3, base_delay=0))(func)

        with pytest.raises(DelegationError, match="down"):
            await wrapped()
        assert func.await_count == 3

    @pytest.mark.asyncio
    async def test_permanent_fails_immediately(self):
        func = AsyncMock(side_effect=ProtocolError("bad code"))
        func.__name__ = "func"
        wrapped = with_retry_async(config=RetryConfig(max_attempts=3, base_delay=0))(func)

        with pytest.raises(ProtocolError):
            await wrapped()
        func.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sleeps_between_attempts(self):
        func = AsyncMock(side_effect=[DelegationError("flaky"), "ok"])
        func.__name__ = "func"
        wrapped = with_retry_async(config=RetryConfig(max_attempts=2, base_delay=1.0))(func)

        with patch("core.resilience.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await wrapped() == "ok"
        sleep.assert_awaited_once()
        assert 0.5 <= sleep.await_args[0][0] <= 1.0
