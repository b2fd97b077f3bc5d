"""
Top-level client: one authenticated run that returns every bound account's data.

Usage:
    async with WsgwClient(load_config()) as client:
        bundles = await client.fetch_accounts(username, password, scope_key="home")

Or as a one-shot call:
    bundles = await fetch_wsgw_accounts(username, password, scope_key="home")

Any failure is inspected once here: when its message indicates a stale
session, the cached session for the scope is purged so the next run logs
in afresh. The failure itself is always re-raised unchanged.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from config import WsgwConfig, get_config
from core.auth import InMemorySessionCache, JsonFileSessionCache
from core.errors import RunDeadlineExceeded
from core.logging import LogContext, generate_run_id, log_exception, log_phase, log_with_context
from core.types import SessionCache
from wsgw.authenticator import SessionAuthenticator
from wsgw.classifier import ErrorClassifier
from wsgw.delegate import DelegateClient
from wsgw.fetcher import BindingAndDataFetcher
from wsgw.models import AccountDataBundle, Credentials
from wsgw.session import SessionStore
from wsgw.transport import EncryptedTransport

logger = logging.getLogger(__name__)


def _cache_for(config: WsgwConfig) -> SessionCache:
    if config.session_cache_path:
        return JsonFileSessionCache(config.session_cache_path)
    return InMemorySessionCache()


class WsgwClient:
    """
    Wires delegate, transport, authenticator and fetcher around one HTTP session.

    The aiohttp session is created on enter and closed on exit unless one was
    injected, in which case its lifetime belongs to the caller.
    """

    def __init__(
        self,
        config: Optional[WsgwConfig] = None,
        session_cache: Optional[SessionCache] = None,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        self.config = config or get_config()
        self.cache = session_cache if session_cache is not None else _cache_for(self.config)
        self.store = SessionStore(self.cache)
        self.classifier = ErrorClassifier()
        self._http_session = http_session
        self._owns_session = http_session is None

        self.delegate: Optional[DelegateClient] = None
        self.authenticator: Optional[SessionAuthenticator] = None
        self.fetcher: Optional[BindingAndDataFetcher] = None
        if http_session is not None:
            self._build(http_session)

    def _build(self, session: aiohttp.ClientSession) -> None:
        self.delegate = DelegateClient.from_config(session, self.config)
        transport = EncryptedTransport(
            session,
            self.delegate,
            classifier=self.classifier,
            request_timeout_seconds=self.config.request_timeout_seconds,
        )
        self.authenticator = SessionAuthenticator(
            transport,
            self.delegate,
            self.store,
            captcha_attempts=self.config.captcha_attempts,
        )
        self.fetcher = BindingAndDataFetcher(
            transport, tiered_use_previous_month=self.config.tiered_use_previous_month
        )

    async def __aenter__(self) -> "WsgwClient":
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
            self._build(self._http_session)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def close(self) -> None:
        if self._owns_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    async def fetch_accounts(
        self,
        username: str,
        password: str,
        scope_key: str = "default",
        debug_logging: bool = False,
    ) -> list[AccountDataBundle]:
        """
        Authenticate and fetch every bound account's data.

        Args:
            username: Account name on the upstream service
            password: Account password
            scope_key: Session cache key; one cached session per scope
            debug_logging: Emit DEBUG records for this run only; they reach the
                console through the filter installed by setup_logging

        Raises:
            ValueError: Missing username or password
            RunDeadlineExceeded: Run did not finish within run_timeout_seconds
            WsgwError: Any typed failure from authentication or fetching
        """
        if not username or not password:
            raise ValueError("username and password are required")
        if self.authenticator is None or self.fetcher is None:
            raise RuntimeError("WsgwClient must be used as an async context manager")

        credentials = Credentials(username=username, password=password)
        debug = debug_logging or self.config.debug_logging

        with LogContext(run_id=generate_run_id(), scope_key=scope_key, debug=debug):
            try:
                return await self._run(credentials, scope_key)
            except Exception as e:
                self._handle_failure(e, scope_key)
                raise

    async def _run(self, credentials: Credentials, scope_key: str) -> list[AccountDataBundle]:
        deadline = self.config.run_timeout_seconds
        try:
            async with asyncio.timeout(deadline):
                with log_phase(logger, "authenticate", level=logging.INFO):
                    auth = await self.authenticator.authenticate(credentials, scope_key)
                with log_phase(logger, "fetch", level=logging.INFO):
                    bundles = await self.fetcher.fetch_accounts(auth)
        except TimeoutError as e:
            raise RunDeadlineExceeded(f"Run exceeded its {deadline}s deadline", cause=e) from e

        log_with_context(
            logger,
            logging.INFO,
            "Run complete",
            account_count=len(bundles),
        )
        return bundles

    def _handle_failure(self, exc: Exception, scope_key: str) -> None:
        message = getattr(exc, "message", None) or str(exc)
        log_exception(logger, exc, "Run failed", include_traceback=False)
        if self.classifier.should_purge_session(message):
            self.store.purge(scope_key)


async def fetch_wsgw_accounts(
    username: str,
    password: str,
    scope_key: str = "default",
    debug_logging: bool = False,
    config: Optional[WsgwConfig] = None,
    session_cache: Optional[SessionCache] = None,
) -> list[AccountDataBundle]:
    """Run one fetch with a short-lived client."""
    async with WsgwClient(config=config, session_cache=session_cache) as client:
        return await client.fetch_accounts(
            username, password, scope_key=scope_key, debug_logging=debug_logging
        )


__all__ = ["WsgwClient", "fetch_wsgw_accounts"]
