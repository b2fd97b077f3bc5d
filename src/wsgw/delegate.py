"""
Client for the delegation proxy that encrypts requests, decrypts responses
and solves login CAPTCHAs on the client's behalf.

Endpoints (JSON POST, payload wrapped under the configured envelope key):
    {host}/wsgw/encrypt   request spec -> {data: {url, headers, body|data, encryptKey?}}
    {host}/wsgw/decrypt   {config, data, encryptKey} -> {data: {code, message, data}}
    {host}/wsgw/get_x     CAPTCHA image -> solved code

Every delegate HTTP call is retried per-operation with backoff; nothing
else in the client retries.
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from core.errors import DelegationError
from core.logging import log_with_context
from core.resilience import RetryConfig, with_retry_async
from wsgw.endpoints import Endpoint
from wsgw.models import RequestSpec

logger = logging.getLogger(__name__)

JSON_HEADERS = {"content-type": "application/json"}

_ENCRYPT_KEY_FIELDS = ("encryptKey", "encrypt_key", "encryptKeyHex")
_GATEWAY_ENVELOPE_FIELDS = ("encryptData", "sign", "timestamp", "data")
_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)


@dataclass(frozen=True)
class EncryptedRequest:
    """Ready-to-send upstream request returned by the encrypt delegate."""

    url: str
    method: str = "POST"
    headers: dict[str, Any] = field(default_factory=dict)
    body: str | None = None
    encrypt_key: str | None = None


def normalize_captcha_code(raw: Any) -> str:
    """Extract the solved code from the recognizer answer.

    Accepts a bare string/number or an object carrying it under
    ``data``/``code``/``result``. Digits are kept when present.
    """
    value = raw
    if isinstance(raw, dict):
        for key in ("data", "code", "result"):
            if raw.get(key) is not None:
                value = raw[key]
                break
        else:
            value = None
    text = str(value if value is not None else "").strip()
    digits = re.sub(r"\D+", "", text)
    return digits or text


def _select_decrypt_payload(body: Any) -> Any:
    # Decrypt expects the gateway's inner data block, not the outer envelope
    if isinstance(body, dict) and "data" in body:
        inner = body["data"]
        if isinstance(inner, dict) and any(k in inner for k in _GATEWAY_ENVELOPE_FIELDS):
            return inner
    return body


class DelegateClient:
    """Async client for the encryption/decryption/CAPTCHA delegation proxy."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        host: str,
        upstream_base_url: str,
        envelope_key: str = "yuheng",
        timeout_seconds: float = 9.0,
        encrypt_retries: int = 1,
        decrypt_retries: int = 0,
        recognize_retries: int = 1,
        retry_base_delay: float = 0.5,
    ):
        self.host = host.rstrip("/")
        if not self.host.startswith(("http://", "https://")):
            raise ValueError(
                f"DelegateClient host must start with http:// or https://, got: {host!r}"
            )
        self.upstream_base_url = upstream_base_url.rstrip("/")
        self.envelope_key = envelope_key
        self.timeout_seconds = timeout_seconds
        self._session = session

        self._encrypt_post = self._retrying(encrypt_retries, retry_base_delay)
        self._decrypt_post = self._retrying(decrypt_retries, retry_base_delay)
        self._recognize_post = self._retrying(recognize_retries, retry_base_delay)

    @classmethod
    def from_config(cls, session: aiohttp.ClientSession, config) -> "DelegateClient":
        return cls(
            session,
            host=config.delegate_host,
            upstream_base_url=config.upstream_base_url,
            envelope_key=config.delegate_envelope_key,
            timeout_seconds=config.delegate_timeout_seconds,
            encrypt_retries=config.encrypt_retries,
            decrypt_retries=config.decrypt_retries,
            recognize_retries=config.recognize_retries,
        )

    def _retrying(self, retries: int, base_delay: float):
        return with_retry_async(config=RetryConfig.from_retries(retries, base_delay=base_delay))(
            self._post_json
        )

    async def _post_json(self, url: str, body: dict[str, Any]) -> Any:
        start = time.perf_counter()
        try:
            async with self._session.post(
                url,
                data=json.dumps(body, ensure_ascii=False),
                headers=JSON_HEADERS,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                text = await response.text()
                status = response.status
        except TimeoutError as e:
            raise DelegationError(
                f"Delegate request timed out after {self.timeout_seconds}s: {url}", cause=e
            ) from e
        except aiohttp.ClientError as e:
            raise DelegationError(f"Delegate connection error: {url}", cause=e) from e

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        if not 200 <= status < 300:
            log_with_context(
                logger,
                logging.WARNING,
                "Delegate request failed",
                http_url=url,
                http_status=status,
                duration_ms=duration_ms,
            )
            raise DelegationError(
                f"Delegate request {url} failed: HTTP {status} {text[:200]}",
                context={"http_status": status},
            )

        try:
            parsed = json.loads(text)
        except ValueError as e:
            raise DelegationError(f"Delegate response is not JSON: {url}", cause=e) from e

        log_with_context(
            logger,
            logging.DEBUG,
            "Delegate request succeeded",
            http_url=url,
            http_status=status,
            duration_ms=duration_ms,
        )
        return parsed

    def _resolve_url(self, raw_url: Any) -> str:
        url = str(raw_url or "")
        if _ABSOLUTE_URL.match(url):
            return url
        # /wsgw/ paths are proxied by the delegate itself (it keeps the cookie jar)
        if url.startswith("/wsgw/"):
            return f"{self.host}{url}"
        return f"{self.upstream_base_url}{url}"

    async def encrypt(self, spec: RequestSpec) -> EncryptedRequest:
        resp = await self._encrypt_post(
            f"{self.host}/wsgw/encrypt", {self.envelope_key: spec.to_wire()}
        )
        data = resp.get("data") if isinstance(resp, dict) else None
        if not isinstance(data, dict) or not data:
            raise DelegationError(f"Delegate encrypt returned no data for {spec.endpoint}")

        encrypt_key = None
        for key in _ENCRYPT_KEY_FIELDS:
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                encrypt_key = value.strip()
                break

        if spec.endpoint == Endpoint.KEY_EXCHANGE and not encrypt_key:
            raise DelegationError(
                f"Delegate did not return an encryptKey for key exchange (host={self.host}); "
                "the proxy is unavailable or speaks an incompatible protocol"
            )

        if "data" in data and data["data"] is not None:
            body = json.dumps(data["data"], ensure_ascii=False, separators=(",", ":"))
        elif isinstance(data.get("body"), str):
            body = data["body"]
        elif data.get("body") is not None:
            body = json.dumps(data["body"], ensure_ascii=False, separators=(",", ":"))
        else:
            body = None

        headers = data.get("headers")
        return EncryptedRequest(
            url=self._resolve_url(data.get("url")),
            method=str(data.get("method") or spec.method).upper(),
            headers=dict(headers) if isinstance(headers, dict) else {},
            body=body,
            encrypt_key=encrypt_key,
        )

    async def decrypt(
        self,
        spec: RequestSpec,
        response_body: Any,
        encrypt_key: str | None = None,
    ) -> dict[str, Any]:
        """Decrypt an upstream body; returns the inner ``{code, message, data}`` envelope."""
        config = spec.to_wire()
        if spec.endpoint == Endpoint.KEY_EXCHANGE and encrypt_key:
            config["headers"]["encryptKey"] = encrypt_key

        payload: dict[str, Any] = {"config": config, "data": _select_decrypt_payload(response_body)}
        if encrypt_key:
            payload["encryptKey"] = encrypt_key

        resp = await self._decrypt_post(
            f"{self.host}/wsgw/decrypt", {self.envelope_key: payload, **payload}
        )
        inner = resp.get("data") if isinstance(resp, dict) else None
        if not isinstance(inner, dict):
            raise DelegationError(f"Delegate decrypt returned no envelope for {spec.endpoint}")
        return inner

    async def recognize(self, image: Any) -> str:
        resp = await self._recognize_post(f"{self.host}/wsgw/get_x", {self.envelope_key: image})
        code = normalize_captcha_code(resp)
        if not code:
            raise DelegationError("CAPTCHA recognition returned an empty answer")
        return code


__all__ = ["DelegateClient", "EncryptedRequest", "normalize_captcha_code"]
