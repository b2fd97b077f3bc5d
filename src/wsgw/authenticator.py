"""
Login handshake as an explicit state machine.

    Start -> KeyObtained -> SessionReady -> Authorized -> AccessTokenIssued

Each state is an immutable value; every transition takes its predecessor
and returns the next state. A cached session that passes the shape check
skips the CAPTCHA + login sub-sequence. There is no retry loop: failures
propagate and the caller decides whether to purge the cached session.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Union

from pydantic import ValidationError

from core.errors import AuthenticationError, ProtocolError
from core.logging import log_with_context
from wsgw.delegate import DelegateClient
from wsgw.endpoints import CHANNEL, Endpoint, usc_info
from wsgw.models import Credentials, KeyMaterial, RequestSpec, SessionTokenBundle
from wsgw.session import SessionStore
from wsgw.transport import EncryptedTransport

logger = logging.getLogger(__name__)

LOGIN_FAILED_MESSAGE = "登录失败: 请检查账户信息"
CAPTCHA_CANVAS = {"canvasHeight": 200, "canvasWidth": 310}
CAPTCHA_VERIFY_MARKERS = ("验证错误", "code=-100")

# Device metadata the login endpoint expects from the web channel
LOGIN_DEVICE_INFO = {
    "optSys": "android",
    "pushId": "000000",
    "addressProvince": "110100",
    "addressRegion": "110101",
    "addressCity": "330100",
}


@dataclass(frozen=True)
class Start:
    pass


@dataclass(frozen=True)
class KeyObtained:
    key: KeyMaterial


@dataclass(frozen=True)
class SessionReady:
    key: KeyMaterial
    session: SessionTokenBundle
    from_cache: bool = False


@dataclass(frozen=True)
class Authorized:
    key: KeyMaterial
    session: SessionTokenBundle
    authorization_code: str


@dataclass(frozen=True)
class AccessTokenIssued:
    key: KeyMaterial
    session: SessionTokenBundle
    access_token: str


AuthState = Union[Start, KeyObtained, SessionReady, Authorized, AccessTokenIssued]


def is_captcha_verify_error(exc: Exception) -> bool:
    """Login rejected because the recognised CAPTCHA code was wrong."""
    if not isinstance(exc, ProtocolError):
        return False
    text = str(exc)
    return any(marker in text for marker in CAPTCHA_VERIFY_MARKERS)


def extract_authorization_code(redirect_url: Any) -> str:
    """Return the part of the redirect URL after ``?code=`` (empty if absent)."""
    if not isinstance(redirect_url, str) or "?code=" not in redirect_url:
        return ""
    return redirect_url.split("?code=", 1)[1]


class SessionAuthenticator:
    """Drives the handshake from key exchange to an issued access token."""

    def __init__(
        self,
        transport: EncryptedTransport,
        delegate: DelegateClient,
        store: SessionStore,
        captcha_attempts: int = 1,
        captcha_retry_delay: float = 0.65,
    ):
        self.transport = transport
        self.delegate = delegate
        self.store = store
        self.captcha_attempts = max(1, captcha_attempts)
        self.captcha_retry_delay = captcha_retry_delay

    async def authenticate(self, credentials: Credentials, scope_key: str) -> AccessTokenIssued:
        """Run every transition from Start and return the final state."""
        state: AuthState = Start()
        while not isinstance(state, AccessTokenIssued):
            state = await self.advance(state, credentials, scope_key)
        return state

    async def advance(self, state: AuthState, credentials: Credentials, scope_key: str) -> AuthState:
        """Perform the single transition leaving `state`."""
        if isinstance(state, Start):
            return await self.obtain_key(state, scope_key)
        if isinstance(state, KeyObtained):
            return await self.ensure_session(state, credentials, scope_key)
        if isinstance(state, SessionReady):
            return await self.authorize(state)
        if isinstance(state, Authorized):
            return await self.issue_access_token(state)
        raise TypeError(f"No transition leaves state {type(state).__name__}")

    async def obtain_key(self, state: Start, scope_key: str) -> KeyObtained:
        logger.info("Requesting key material")
        session_valid = self.store.load(scope_key) is not None
        data = await self.transport.send(
            RequestSpec(Endpoint.KEY_EXCHANGE, headers={}), session_valid=session_valid
        )
        if not isinstance(data, dict) or not data:
            raise ProtocolError("Key exchange returned no key material", context={"state": "Start"})
        return KeyObtained(key=KeyMaterial(headers=dict(data)))

    async def ensure_session(
        self, state: KeyObtained, credentials: Credentials, scope_key: str
    ) -> SessionReady:
        cached = self.store.load(scope_key)
        if cached is not None:
            logger.info("Using cached session")
            return SessionReady(key=state.key, session=cached, from_cache=True)

        bundle = await self.login(state.key, credentials)
        self.store.save(scope_key, bundle)
        return SessionReady(key=state.key, session=bundle, from_cache=False)

    async def request_captcha(self, key: KeyMaterial, credentials: Credentials) -> tuple[str, str]:
        """Fetch a CAPTCHA challenge and solve it; returns (ticket, code)."""
        logger.info("Requesting CAPTCHA challenge")
        challenge = await self.transport.send(
            RequestSpec(
                Endpoint.CAPTCHA,
                headers=key.merged(),
                data={
                    "password": credentials.password,
                    "account": credentials.username,
                    **CAPTCHA_CANVAS,
                },
            )
        )
        if not isinstance(challenge, dict) or not challenge.get("canvasSrc"):
            raise ProtocolError("CAPTCHA challenge returned no image")

        code = await self.delegate.recognize(challenge["canvasSrc"])
        logger.debug("CAPTCHA solved")
        return str(challenge.get("ticket") or ""), code

    async def submit_login(
        self, key: KeyMaterial, credentials: Credentials, ticket: str, code: str
    ) -> SessionTokenBundle:
        logger.info("Logging in")
        resp = await self.transport.send(
            RequestSpec(
                Endpoint.LOGIN,
                headers=key.merged(),
                data={
                    "loginKey": ticket,
                    "code": str(code).strip(),
                    "params": {
                        "uscInfo": usc_info(),
                        "quInfo": {
                            **LOGIN_DEVICE_INFO,
                            "password": credentials.password,
                            "account": credentials.username,
                        },
                    },
                    "Channels": CHANNEL,
                },
            )
        )
        bizrt = resp.get("bizrt") if isinstance(resp, dict) and resp.get("bizrt") is not None else resp
        if not isinstance(bizrt, dict):
            raise AuthenticationError(LOGIN_FAILED_MESSAGE)
        try:
            bundle = SessionTokenBundle.model_validate(bizrt)
        except ValidationError as e:
            raise AuthenticationError(LOGIN_FAILED_MESSAGE, cause=e) from e
        if not bundle.is_valid:
            raise AuthenticationError(LOGIN_FAILED_MESSAGE)
        logger.info("Login succeeded")
        return bundle

    async def login(self, key: KeyMaterial, credentials: Credentials) -> SessionTokenBundle:
        """CAPTCHA challenge, recognition and credential submission.

        A wrong CAPTCHA answer fetches a new challenge while attempts remain.
        """
        for attempt in range(self.captcha_attempts):
            ticket, code = await self.request_captcha(key, credentials)
            try:
                return await self.submit_login(key, credentials, ticket, code)
            except ProtocolError as e:
                if not is_captcha_verify_error(e) or attempt >= self.captcha_attempts - 1:
                    raise
                log_with_context(
                    logger,
                    logging.WARNING,
                    "CAPTCHA rejected, requesting a new challenge",
                    attempt=attempt + 1,
                    max_attempts=self.captcha_attempts,
                )
                await asyncio.sleep(self.captcha_retry_delay)
        raise AuthenticationError(LOGIN_FAILED_MESSAGE)

    async def authorize(self, state: SessionReady) -> Authorized:
        logger.info("Requesting authorization code")
        resp = await self.transport.send(
            RequestSpec(Endpoint.AUTHORIZE, headers=state.key.merged(token=state.session.token)),
            session_valid=True,
        )
        redirect_url = resp.get("redirect_url") if isinstance(resp, dict) else None
        code = extract_authorization_code(redirect_url)
        if not code:
            raise ProtocolError("Authorize response carried no authorization code")
        return Authorized(key=state.key, session=state.session, authorization_code=code)

    async def issue_access_token(self, state: Authorized) -> AccessTokenIssued:
        logger.info("Exchanging authorization code for access token")
        resp = await self.transport.send(
            RequestSpec(
                Endpoint.WEB_TOKEN,
                headers=state.key.merged(
                    token=state.session.token,
                    authorizecode=state.authorization_code,
                ),
            ),
            session_valid=True,
        )
        access_token = resp.get("access_token") if isinstance(resp, dict) else None
        if not access_token:
            raise ProtocolError("Web token exchange returned no access_token")
        return AccessTokenIssued(key=state.key, session=state.session, access_token=str(access_token))


__all__ = [
    "AccessTokenIssued",
    "AuthState",
    "Authorized",
    "KeyObtained",
    "SessionAuthenticator",
    "SessionReady",
    "Start",
    "extract_authorization_code",
    "is_captcha_verify_error",
]
