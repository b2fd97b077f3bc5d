"""
Encrypted request transport.

Each upstream call is an encrypt -> HTTP send -> decrypt triple:

1. The delegate encrypts the request spec into a ready-to-send request.
2. The request goes to the upstream service; the body is read as text
   whatever the status.
3. Non-2xx statuses raise TransportError.
4. An outer envelope whose code already marks the call as unusable raises
   ProtocolError before any decrypt round trip.
5. The delegate decrypts the body into {code, message, data}; success
   returns data, anything else is classified into ReauthRequiredError or
   ProtocolError.

No retries happen here: retry and re-authentication decisions belong to
callers.
"""

import json
import logging
import re
import time
from typing import Any

import aiohttp

from core.errors import ProtocolError, ReauthRequiredError, TransportError
from core.logging import log_with_context
from wsgw.classifier import ErrorClassifier
from wsgw.delegate import DelegateClient, EncryptedRequest
from wsgw.endpoints import Endpoint
from wsgw.models import RequestSpec

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_MESSAGE = "接口异常"
DEFAULT_DECRYPT_FAILURE_MESSAGE = "解密失败"

# Camel-cased headers emitted by some delegates, mapped to the names upstream expects
_HEADER_RENAMES = {
    "wsgwType": "wsgwtype",
    "appKey": "appkey",
    "Content-Type": "content-type",
    "Accept": "accept",
}
_QUOTED_BODY = re.compile(r'^"|"$')


def normalize_headers(raw: Any) -> dict[str, str]:
    """Lower-case header names, stringify values, drop None and Content-Length."""
    if not isinstance(raw, dict):
        return {}
    headers = dict(raw)
    headers.pop("Content-Length", None)
    headers.pop("content-length", None)

    for source, target in _HEADER_RENAMES.items():
        if source in headers:
            value = headers.pop(source)
            if headers.get(target) is None:
                headers[target] = value

    return {str(k).lower(): str(v) for k, v in headers.items() if v is not None}


def _envelope_message(envelope: dict[str, Any]) -> str | None:
    return envelope.get("message") or envelope.get("msg")


class EncryptedTransport:
    """Sends request specs through the delegation proxy and the upstream service."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        delegate: DelegateClient,
        classifier: ErrorClassifier | None = None,
        request_timeout_seconds: float = 12.0,
    ):
        self._session = session
        self.delegate = delegate
        self.classifier = classifier or ErrorClassifier()
        self.request_timeout_seconds = request_timeout_seconds

    async def _send_upstream(self, spec: RequestSpec, request: EncryptedRequest) -> tuple[int, str]:
        body = request.body
        if spec.endpoint == Endpoint.AUTHORIZE and isinstance(body, str):
            body = _QUOTED_BODY.sub("", body)

        try:
            async with self._session.request(
                request.method,
                request.url,
                data=body.encode("utf-8") if body is not None else None,
                headers=normalize_headers(request.headers),
                timeout=aiohttp.ClientTimeout(total=self.request_timeout_seconds),
            ) as response:
                return response.status, await response.text()
        except TimeoutError as e:
            raise TransportError(
                f"Upstream request timed out after {self.request_timeout_seconds}s: {spec.endpoint}",
                cause=e,
                context={"api_endpoint": str(spec.endpoint)},
            ) from e
        except aiohttp.ClientError as e:
            raise TransportError(
                f"Upstream connection error: {spec.endpoint}",
                cause=e,
                context={"api_endpoint": str(spec.endpoint)},
            ) from e

    async def send(self, spec: RequestSpec, session_valid: bool = False) -> Any:
        """
        Execute one upstream call and return the decrypted ``data`` member.

        Args:
            spec: Request to send
            session_valid: Whether a valid-looking session was attached to the
                call; a "token missing" answer then means the session is stale.

        Raises:
            DelegationError: Encrypt or decrypt delegate unusable
            TransportError: Connection error, timeout or non-2xx status
            ProtocolError: Envelope reports a failure code
            ReauthRequiredError: Authorize endpoint reports a dead session
        """
        endpoint = str(spec.endpoint)
        request = await self.delegate.encrypt(spec)

        start = time.perf_counter()
        status, text = await self._send_upstream(spec, request)
        duration_ms = round((time.perf_counter() - start) * 1000, 2)

        if not 200 <= status < 300:
            log_with_context(
                logger,
                logging.WARNING,
                "Upstream request failed",
                api_endpoint=endpoint,
                http_status=status,
                duration_ms=duration_ms,
            )
            raise TransportError(
                f"HTTP {status}: {text}",
                status=status,
                raw_body=text,
                context={"api_endpoint": endpoint},
            )

        log_with_context(
            logger,
            logging.DEBUG,
            "Upstream request completed",
            api_endpoint=endpoint,
            http_status=status,
            duration_ms=duration_ms,
        )

        try:
            parsed: Any = json.loads(text)
        except ValueError:
            parsed = text

        if isinstance(parsed, dict) and "code" in parsed:
            code = parsed.get("code")
            message = _envelope_message(parsed)
            if self.classifier.is_critical_before_decrypt(code, message, session_valid):
                raise ProtocolError(
                    message or DEFAULT_FAILURE_MESSAGE,
                    code=str(code),
                    context={"api_endpoint": endpoint},
                )

        envelope = await self.delegate.decrypt(spec, parsed, request.encrypt_key)
        code = envelope.get("code")
        message = _envelope_message(envelope)

        if self.classifier.is_success(code):
            return envelope.get("data")

        log_with_context(
            logger,
            logging.DEBUG,
            "Upstream envelope reports failure",
            api_endpoint=endpoint,
            error_code=str(code),
            error_message=message,
        )

        if self.classifier.is_force_reauth(endpoint, code, message, session_valid):
            raise ReauthRequiredError(
                f"重新获取: {message or code}",
                context={"api_endpoint": endpoint, "error_code": str(code)},
            )

        raise ProtocolError(
            f"{message or DEFAULT_DECRYPT_FAILURE_MESSAGE} (stage={endpoint} code={'' if code is None else code})",
            code=None if code is None else str(code),
            context={"api_endpoint": endpoint},
        )


__all__ = ["EncryptedTransport", "normalize_headers"]
