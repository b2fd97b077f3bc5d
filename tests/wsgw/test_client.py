"""Tests for WsgwClient: end-to-end runs, purge policy and run deadline."""

import asyncio
import json
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fakes import BINDING_A, BINDING_B, RECOGNIZE, SESSION, FakeDelegate, FakeTransport, default_responses

from config import WsgwConfig
from core.auth import InMemorySessionCache, JsonFileSessionCache
from core.errors import (
    NoBindingError,
    ProtocolError,
    ReauthRequiredError,
    RunDeadlineExceeded,
    TransportError,
)
from core.logging import get_log_context
from wsgw.authenticator import SessionAuthenticator
from wsgw.client import WsgwClient, fetch_wsgw_accounts
from wsgw.delegate import EncryptedRequest
from wsgw.endpoints import Endpoint
from wsgw.fetcher import BindingAndDataFetcher
from wsgw.transport import EncryptedTransport

HANDSHAKE = [
    Endpoint.KEY_EXCHANGE.value,
    Endpoint.CAPTCHA.value,
    RECOGNIZE,
    Endpoint.LOGIN.value,
    Endpoint.AUTHORIZE.value,
    Endpoint.WEB_TOKEN.value,
]
FACETS = [Endpoint.BILL.value] + [Endpoint.USAGE.value] * 4 + [Endpoint.TIERED_DEFAULT.value]


class ScriptedDelegate:
    """Delegate whose decrypt answers with a canned envelope per endpoint."""

    def __init__(self, envelopes):
        self.envelopes = envelopes
        self.calls = []

    async def encrypt(self, spec):
        return EncryptedRequest(url=f"https://upstream.local{spec.endpoint}", body="{}", encrypt_key="ek")

    async def decrypt(self, spec, body, encrypt_key=None):
        self.calls.append(str(spec.endpoint))
        return self.envelopes[spec.endpoint]

    async def recognize(self, image):
        self.calls.append(RECOGNIZE)
        return "1234"


def _http_session(status=200, text=None):
    response = MagicMock()
    response.status = status
    response.text = AsyncMock(return_value=text or json.dumps({"code": 1, "data": "cipher"}))
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    session = MagicMock()
    session.request = MagicMock(return_value=response)
    return session


def _ok(data):
    return {"code": "1", "message": "成功", "data": data}


def _bill_or_fail(spec):
    """Bill query fails for the second account only."""
    if spec.data["data"]["list"][0]["consNo"] == BINDING_B["consNo"]:
        return TransportError("HTTP 502", status=502)
    return {"list": [{"sumMoney": "10"}]}


def _client_with(transport, delegate, cache, **config):
    client = WsgwClient(config=WsgwConfig(**config), session_cache=cache, http_session=MagicMock())
    client.authenticator = SessionAuthenticator(transport, delegate, client.store, captcha_retry_delay=0)
    client.fetcher = BindingAndDataFetcher(transport)
    return client


@pytest.fixture
def client(fake_transport, fake_delegate, cache):
    return _client_with(fake_transport, fake_delegate, cache)


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("username,password", [("", "pw"), ("alice", ""), (None, "pw")])
    async def test_missing_credentials(self, client, calls, username, password):
        with pytest.raises(ValueError):
            await client.fetch_accounts(username, password)
        assert calls == []

    @pytest.mark.asyncio
    async def test_requires_context_manager(self, cache):
        client = WsgwClient(config=WsgwConfig(), session_cache=cache)
        with pytest.raises(RuntimeError):
            await client.fetch_accounts("alice", "pw")


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_fresh_login_run(self, client, calls, cache):
        """No cached session: handshake, binding, then six facets per account."""
        bundles = await client.fetch_accounts("alice", "hunter2", scope_key="home")

        assert calls[:6] == HANDSHAKE
        assert calls[6] == Endpoint.BINDING.value
        assert sorted(calls[7:]) == sorted(FACETS)
        assert len(bundles) == 1
        assert bundles[0].binding.cons_no == BINDING_A["consNo"]
        assert bundles[0].has_outstanding_balance is True
        assert cache.get("home") == SESSION

    @pytest.mark.asyncio
    async def test_second_run_reuses_session(self, client, calls):
        await client.fetch_accounts("alice", "hunter2", scope_key="home")
        calls.clear()

        await client.fetch_accounts("alice", "hunter2", scope_key="home")

        assert Endpoint.LOGIN.value not in calls
        assert calls[:3] == [
            Endpoint.KEY_EXCHANGE.value,
            Endpoint.AUTHORIZE.value,
            Endpoint.WEB_TOKEN.value,
        ]

    @pytest.mark.asyncio
    async def test_failing_account_still_emitted(self, cache, calls):
        responses = default_responses(bindings=[BINDING_A, BINDING_B])
        responses[Endpoint.BILL] = _bill_or_fail
        transport = FakeTransport(responses, calls)
        client = _client_with(transport, FakeDelegate(calls), cache)

        bundles = await client.fetch_accounts("alice", "hunter2")

        assert len(bundles) == 2
        assert bundles[0].facets.daily_usage is not None
        assert bundles[1].facets.bill is None
        assert bundles[1].facets.tiered_usage is not None
        assert cache.get("default") is not None


class TestPurgePolicy:
    @pytest.mark.asyncio
    async def test_force_reauth_purges_and_stops(self, cache):
        """Cached session, authorize answers 10015: purge and no business calls."""
        cache.set("home", SESSION)
        delegate = ScriptedDelegate(
            {
                Endpoint.KEY_EXCHANGE: _ok({"keyCode": "kc"}),
                Endpoint.AUTHORIZE: {"code": "10015", "message": "登录状态已过期"},
            }
        )
        transport = EncryptedTransport(_http_session(), delegate)
        client = _client_with(transport, delegate, cache)

        with pytest.raises(ReauthRequiredError):
            await client.fetch_accounts("alice", "hunter2", scope_key="home")

        assert cache.get("home") is None
        assert delegate.calls == [Endpoint.KEY_EXCHANGE.value, Endpoint.AUTHORIZE.value]

    @pytest.mark.asyncio
    async def test_invalidation_late_in_error_body_purges(self, cache):
        """The stale-session marker sits past the first 200 characters of a non-2xx body."""
        cache.set("home", SESSION)
        body = json.dumps({"detail": "x" * 250, "msg": "token 已失效"}, ensure_ascii=False)
        delegate = ScriptedDelegate({})
        transport = EncryptedTransport(_http_session(status=401, text=body), delegate)
        client = _client_with(transport, delegate, cache)

        with pytest.raises(TransportError) as exc_info:
            await client.fetch_accounts("alice", "hunter2", scope_key="home")

        assert "token 已失效" in exc_info.value.message
        assert cache.get("home") is None
        assert delegate.calls == []

    @pytest.mark.asyncio
    async def test_purged_session_forces_fresh_login(self, cache, calls):
        """After an invalidating failure the next run logs in again."""
        cache.set("home", SESSION)
        responses = default_responses()
        responses[Endpoint.AUTHORIZE] = ReauthRequiredError("重新获取: 10015")
        transport = FakeTransport(responses, calls)
        client = _client_with(transport, FakeDelegate(calls), cache)

        with pytest.raises(ReauthRequiredError):
            await client.fetch_accounts("alice", "hunter2", scope_key="home")
        assert cache.get("home") is None

        responses.update({Endpoint.AUTHORIZE: default_responses()[Endpoint.AUTHORIZE]})
        calls.clear()
        await client.fetch_accounts("alice", "hunter2", scope_key="home")

        assert calls[:6] == HANDSHAKE
        assert cache.get("home") == SESSION

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", ["会话无效", "token expired", "请求异常"])
    async def test_invalidating_messages_purge(self, cache, calls, message):
        cache.set("home", SESSION)
        responses = default_responses()
        responses[Endpoint.WEB_TOKEN] = ProtocolError(message)
        client = _client_with(FakeTransport(responses, calls), FakeDelegate(calls), cache)

        with pytest.raises(ProtocolError):
            await client.fetch_accounts("alice", "hunter2", scope_key="home")
        assert cache.get("home") is None

    @pytest.mark.asyncio
    async def test_other_failures_keep_session(self, cache, calls, responses):
        cache.set("home", SESSION)
        responses[Endpoint.BINDING] = {"bizrt": {"powerUserList": []}}
        client = _client_with(FakeTransport(responses, calls), FakeDelegate(calls), cache)

        with pytest.raises(NoBindingError):
            await client.fetch_accounts("alice", "hunter2", scope_key="home")
        assert cache.get("home") == SESSION

    @pytest.mark.asyncio
    async def test_purge_limited_to_scope(self, cache, calls, responses):
        cache.set("home", SESSION)
        cache.set("office", SESSION)
        responses[Endpoint.AUTHORIZE] = ReauthRequiredError("重新获取: 10015")
        client = _client_with(FakeTransport(responses, calls), FakeDelegate(calls), cache)

        with pytest.raises(ReauthRequiredError):
            await client.fetch_accounts("alice", "hunter2", scope_key="home")
        assert cache.get("office") == SESSION


class TestRunDeadline:
    @pytest.mark.asyncio
    async def test_deadline_exceeded(self, client):
        async def slow(*args, **kwargs):
            await asyncio.sleep(5)

        client.config = WsgwConfig(run_timeout_seconds=0.01)
        client.authenticator = MagicMock()
        client.authenticator.authenticate = AsyncMock(side_effect=slow)

        with pytest.raises(RunDeadlineExceeded):
            await client.fetch_accounts("alice", "hunter2")


class TestDebugLogging:
    @pytest.mark.asyncio
    async def test_flag_scoped_to_run(self, client):
        """Debug is a per-run context flag; the shared logger level is untouched."""
        package_logger = logging.getLogger("wsgw")
        level_before = package_logger.level
        seen = []

        async def authenticate(*args, **kwargs):
            seen.append((get_log_context()["debug"], package_logger.level))
            raise NoBindingError("stop")

        client.authenticator = MagicMock()
        client.authenticator.authenticate = AsyncMock(side_effect=authenticate)

        with pytest.raises(NoBindingError):
            await client.fetch_accounts("alice", "hunter2", debug_logging=True)
        with pytest.raises(NoBindingError):
            await client.fetch_accounts("alice", "hunter2")

        assert seen == [(True, level_before), (False, level_before)]
        assert get_log_context()["debug"] is False

    @pytest.mark.asyncio
    async def test_concurrent_runs_isolated(self, client):
        seen = {}

        async def authenticate(credentials, scope_key):
            await asyncio.sleep(0)
            seen[scope_key] = get_log_context()["debug"]
            raise NoBindingError("stop")

        client.authenticator = MagicMock()
        client.authenticator.authenticate = AsyncMock(side_effect=authenticate)

        results = await asyncio.gather(
            client.fetch_accounts("alice", "hunter2", scope_key="a", debug_logging=True),
            client.fetch_accounts("bob", "hunter2", scope_key="b"),
            return_exceptions=True,
        )

        assert all(isinstance(r, NoBindingError) for r in results)
        assert seen == {"a": True, "b": False}

class TestLifecycle:
    def test_fetcher_month_policy_from_config(self):
        client = WsgwClient(
            config=WsgwConfig(tiered_use_previous_month=True), http_session=MagicMock()
        )
        assert client.fetcher.tiered_use_previous_month is True

    def test_cache_backend_from_config(self, tmp_path):
        path = tmp_path / "sessions.json"
        client = WsgwClient(config=WsgwConfig(session_cache_path=str(path)))
        assert isinstance(client.cache, JsonFileSessionCache)
        assert client.cache.path == path
        assert isinstance(WsgwClient(config=WsgwConfig()).cache, InMemorySessionCache)

    @pytest.mark.asyncio
    async def test_owned_session_closed(self):
        http_session = MagicMock()
        http_session.close = AsyncMock()
        with patch("wsgw.client.aiohttp.ClientSession", return_value=http_session):
            async with WsgwClient(config=WsgwConfig()) as client:
                assert client.delegate is not None
                assert client.fetcher is not None
        http_session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_injected_session_left_open(self):
        http_session = MagicMock()
        http_session.close = AsyncMock()
        async with WsgwClient(config=WsgwConfig(), http_session=http_session):
            pass
        http_session.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_wsgw_accounts(self, cache):
        http_session = MagicMock()
        http_session.close = AsyncMock()
        bundle_list = []
        with (
            patch("wsgw.client.aiohttp.ClientSession", return_value=http_session),
            patch.object(WsgwClient, "fetch_accounts", AsyncMock(return_value=bundle_list)) as fetch,
        ):
            result = await fetch_wsgw_accounts(
                "alice", "hunter2", scope_key="home", config=WsgwConfig(), session_cache=cache
            )
        assert result is bundle_list
        fetch.assert_awaited_once_with("alice", "hunter2", scope_key="home", debug_logging=False)
        http_session.close.assert_awaited_once()

    def test_default_config_used(self):
        from config import set_config

        config = WsgwConfig(captcha_attempts=2)
        set_config(config)
        assert WsgwClient().config is config
