"""
Upstream endpoint paths and per-operation channel/service codes.

Every upstream path is served under the ``/api`` prefix. Operation codes
are fixed values the service expects in request bodies; they are grouped
per logical operation so payload builders never assemble them ad hoc.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

API_PREFIX = "/api"


class Endpoint(StrEnum):
    """Upstream request paths (as sent to the encryption delegate)."""

    KEY_EXCHANGE = f"{API_PREFIX}/oauth2/outer/c02/f02"
    AUTHORIZE = f"{API_PREFIX}/oauth2/oauth/authorize"
    WEB_TOKEN = f"{API_PREFIX}/oauth2/outer/getWebToken"
    CAPTCHA = f"{API_PREFIX}/osg-web0004/open/c44/f05"
    LOGIN = f"{API_PREFIX}/osg-web0004/open/c44/f06"
    BINDING = f"{API_PREFIX}/osg-open-uc0001/member/c9/f02"
    BILL = f"{API_PREFIX}/osg-open-bc0001/member/c05/f01"
    USAGE = f"{API_PREFIX}/osg-web0004/member/c24/f01"
    SEGMENT = f"{API_PREFIX}/osg-open-bc0001/member/arg/020070013"
    TIERED_LOW = f"{API_PREFIX}/osg-open-bc0001/member/c04/f01"
    TIERED_HIDDEN = f"{API_PREFIX}/osg-open-bc0001/member/c04/f02"
    TIERED_DEFAULT = f"{API_PREFIX}/osg-open-bc0001/member/c04/f03"


@dataclass(frozen=True)
class OperationCodes:
    """Fixed channel/service codes for one logical operation."""

    channel_code: str = ""
    func_code: str = ""
    service_code: str = ""
    source: str = ""
    clear_cache: str = ""
    promot_code: str = ""
    promot_type: str = ""


class Operation(StrEnum):
    USER_INFORM = "user_inform"
    BILL = "bill"
    DAILY_USAGE = "daily_usage"
    MONTHLY_USAGE = "monthly_usage"
    TIERED_USAGE = "tiered_usage"
    SEGMENT = "segment"


# Client identity sent with login/binding requests
SOURCE = "SGAPP"
TARGET = "32101"
TENANT = "state_grid"
MEMBER = "0902"
CHANNEL = "web"

OPERATION_CODES: dict[Operation, OperationCodes] = {
    Operation.USER_INFORM: OperationCodes(service_code="0101183", source=SOURCE),
    Operation.BILL: OperationCodes(
        channel_code="0902",
        func_code="WEBA1007200",
        service_code="0101143",
        source=SOURCE,
        promot_code="1",
        promot_type="1",
    ),
    Operation.DAILY_USAGE: OperationCodes(
        channel_code="0902",
        func_code="WEBALIPAY_01",
        service_code="BCP_000026",
        source="app",
        clear_cache="11",
        promot_code="1",
        promot_type="1",
    ),
    Operation.MONTHLY_USAGE: OperationCodes(
        channel_code="0902",
        func_code="WEBALIPAY_01",
        service_code="BCP_000026",
        source="app",
        clear_cache="11",
        promot_code="1",
        promot_type="1",
    ),
    Operation.TIERED_USAGE: OperationCodes(
        channel_code="0902",
        func_code="WEBALIPAY_01",
        service_code="BCP_000026",
        source="app",
        clear_cache="09",
        promot_type="1",
    ),
    Operation.SEGMENT: OperationCodes(
        channel_code="SGAPP",
        func_code="A10079078",
        service_code="0101798",
        source="app",
        promot_code="1",
        promot_type="1",
    ),
}

# params4 selector of the shared usage endpoint
DAILY_USAGE_QUERY = "010103"
MONTHLY_USAGE_QUERY = "010102"

# Usage windows, in days before today
SHORT_WINDOW_DAYS = 6
LONG_WINDOW_DAYS = 32

# Province whose tiered query needs a calcId from the segment lookup
SEGMENT_LOOKUP_PROVINCE = "32101"

# (orgNo, accountType) -> endpoint; (orgNo, None) is the org-level default
_TIERED_ENDPOINTS: dict[tuple[str, str | None], Endpoint] = {
    ("33101", "01"): Endpoint.TIERED_HIDDEN,
    ("33101", None): Endpoint.TIERED_LOW,
}


def tiered_usage_endpoint(org_no: str | None, account_type: str | None) -> Endpoint:
    """Select the tiered-usage endpoint serving (org_no, account_type)."""
    org = org_no or ""
    return _TIERED_ENDPOINTS.get(
        (org, account_type),
        _TIERED_ENDPOINTS.get((org, None), Endpoint.TIERED_DEFAULT),
    )


def requires_segment_lookup(province_code: str | None) -> bool:
    return province_code == SEGMENT_LOOKUP_PROVINCE


def usc_info() -> dict[str, Any]:
    """Device/tenant block attached to login and binding requests."""
    return {
        "member": MEMBER,
        "devciceIp": "",
        "devciceId": "",
        "tenant": TENANT,
    }


__all__ = [
    "API_PREFIX",
    "CHANNEL",
    "DAILY_USAGE_QUERY",
    "Endpoint",
    "LONG_WINDOW_DAYS",
    "MONTHLY_USAGE_QUERY",
    "OPERATION_CODES",
    "Operation",
    "OperationCodes",
    "SEGMENT_LOOKUP_PROVINCE",
    "SHORT_WINDOW_DAYS",
    "SOURCE",
    "TARGET",
    "requires_segment_lookup",
    "tiered_usage_endpoint",
    "usc_info",
]
