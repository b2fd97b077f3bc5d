"""
Decides what an upstream failure means for the cached session.

The service signals a dead session inconsistently: sometimes as a numeric
code from a specific endpoint, sometimes only in free-text messages. All of
those signals are interpreted here and nowhere else.

Checks:
    is_critical_before_decrypt: outer envelope already proves the call is
        unusable, so decryption is skipped
    is_force_reauth: the authorize endpoint reports the session as dead
    should_purge_session: final error text of a run names an invalid,
        expired or reacquirable credential
"""

import re
from enum import StrEnum
from typing import Any

from wsgw.endpoints import Endpoint

SUCCESS_CODE = "1"

# Codes that end a session when returned by the authorize endpoint
FORCE_REAUTH_CODES = frozenset(
    {"10015", "10108", "10009", "10207", "10005", "10010", "30010"}
)

# Codes on the outer envelope that make decryption pointless
PREVENTABLE_CODES = frozenset({"10010", "30010", "20103"})

STALE_KEY_CODE = "10002"
KEY_EXPIRED_MESSAGE = "WEB渠道KeyCode已失效"
TOKEN_MISSING_MESSAGE = "Token 为空！"

SESSION_INVALIDATION_PATTERN = re.compile(
    r"无效|失效|过期|重新获取|请求异常|token", re.IGNORECASE
)


class ErrorClassification(StrEnum):
    OK = "ok"
    ORDINARY_FAILURE = "ordinary_failure"
    FORCE_REAUTH = "force_reauth"
    INVALIDATE_SESSION = "invalidate_session"


def _code_str(code: Any) -> str:
    return "" if code is None else str(code)


class ErrorClassifier:
    """Pure checks over (endpoint, code, message, session_valid)."""

    @staticmethod
    def is_success(code: Any) -> bool:
        return _code_str(code) == SUCCESS_CODE

    @staticmethod
    def _is_stale_key(code: str, message: str | None, session_valid: bool) -> bool:
        if code != STALE_KEY_CODE:
            return False
        if message == KEY_EXPIRED_MESSAGE:
            return True
        # Token reported missing although a valid-looking session was sent
        return session_valid and message == TOKEN_MISSING_MESSAGE

    def is_critical_before_decrypt(
        self, code: Any, message: str | None, session_valid: bool
    ) -> bool:
        code = _code_str(code)
        if code in PREVENTABLE_CODES:
            return True
        return self._is_stale_key(code, message, session_valid)

    def is_force_reauth(
        self,
        endpoint: str,
        code: Any,
        message: str | None,
        session_valid: bool,
    ) -> bool:
        if endpoint != Endpoint.AUTHORIZE.value:
            return False
        code = _code_str(code)
        if code in FORCE_REAUTH_CODES:
            return True
        return self._is_stale_key(code, message, session_valid)

    @staticmethod
    def should_purge_session(message: str | None) -> bool:
        return bool(message) and SESSION_INVALIDATION_PATTERN.search(message) is not None

    def classify(
        self,
        endpoint: str,
        code: Any,
        message: str | None,
        session_valid: bool,
    ) -> ErrorClassification:
        if self.is_success(code):
            return ErrorClassification.OK
        if self.is_force_reauth(endpoint, code, message, session_valid):
            return ErrorClassification.FORCE_REAUTH
        if self.is_critical_before_decrypt(code, message, session_valid):
            return ErrorClassification.INVALIDATE_SESSION
        if self.should_purge_session(message):
            return ErrorClassification.INVALIDATE_SESSION
        return ErrorClassification.ORDINARY_FAILURE


__all__ = [
    "ErrorClassification",
    "ErrorClassifier",
    "FORCE_REAUTH_CODES",
    "PREVENTABLE_CODES",
    "SESSION_INVALIDATION_PATTERN",
]
