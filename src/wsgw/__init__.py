"""
WSGW client: session-authenticated access to the State Grid 95598 service
through an encryption delegation proxy.

Modules:
    endpoints      - Upstream paths and per-operation service codes
    models         - Pydantic models for sessions, bindings and fetched data
    delegate       - Encrypt / decrypt / CAPTCHA delegation proxy client
    transport      - Encrypt -> send -> decrypt for one upstream call
    classifier     - Response-code and message checks for session death
    session        - Session bundle persistence per scope key
    authenticator  - Login handshake state machine
    fetcher        - Binding lookup and per-account facet fetch
    summary        - Display summaries over fetched data
    client         - Top-level client and one-shot helper
"""

from wsgw.client import WsgwClient, fetch_wsgw_accounts
from wsgw.models import (
    AccountBinding,
    AccountDataBundle,
    AccountFacets,
    Credentials,
    SessionTokenBundle,
    UserProfile,
)
from wsgw.summary import DisplaySummary, UsageBar, build_usage_bars, extract_display_summary

__all__ = [
    "WsgwClient",
    "fetch_wsgw_accounts",
    # Models
    "AccountBinding",
    "AccountDataBundle",
    "AccountFacets",
    "Credentials",
    "SessionTokenBundle",
    "UserProfile",
    # Summary
    "DisplaySummary",
    "UsageBar",
    "build_usage_bars",
    "extract_display_summary",
]
