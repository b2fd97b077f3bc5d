"""
Data models for the WSGW client.

Upstream records keep their original camelCase keys as aliases so they can
be validated straight from decrypted payloads and dumped back unchanged.
Unknown upstream fields are preserved (extra="allow").
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field


def _to_number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class Credentials(BaseModel):
    """Login credentials. Never persisted by the client."""

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1, repr=False)


class UserProfile(BaseModel):
    """One entry of the login response's ``userInfo`` list."""

    user_id: str | None = Field(default=None, alias="userId")
    login_account: str | None = Field(default=None, alias="loginAccount")
    nickname: str | None = Field(default=None)

    model_config = {
        "populate_by_name": True,
        "extra": "allow",
        "coerce_numbers_to_str": True,
    }


class SessionTokenBundle(BaseModel):
    """Login result cached across runs: session token plus user profiles.

    Valid iff the token is non-empty and at least one profile is present.
    """

    token: str = ""
    user_profiles: list[UserProfile] = Field(default_factory=list, alias="userInfo")

    @property
    def is_valid(self) -> bool:
        return bool(self.token) and len(self.user_profiles) > 0

    @property
    def primary_profile(self) -> UserProfile:
        return self.user_profiles[0]

    def to_cache(self) -> dict[str, Any]:
        """Dump in the upstream shape (``token``/``userInfo``) for the session cache."""
        return self.model_dump(by_alias=True, mode="json")

    model_config = {
        "populate_by_name": True,
        "extra": "allow",
        "coerce_numbers_to_str": True,
    }


class AccountBinding(BaseModel):
    """One service account bound to the authenticated user (``powerUserList`` entry)."""

    cons_no: str | None = Field(default=None, alias="consNo")
    cons_no_dst: str | None = Field(default=None, alias="consNo_dst")
    org_no: str | None = Field(default=None, alias="orgNo")
    pro_no: str | None = Field(default=None, alias="proNo")
    province_id: str | None = Field(default=None, alias="provinceId")
    const_type: str | None = Field(default=None, alias="constType")
    cons_sort_code: str | None = Field(default=None, alias="consSortCode")

    @property
    def province_code(self) -> str | None:
        return self.pro_no or self.province_id

    @property
    def account_type(self) -> str | None:
        return self.const_type

    @property
    def cons_type_code(self) -> str:
        """Usage-query consType: "02" for type-02 accounts, otherwise "01"."""
        return "02" if self.const_type == "02" else "01"

    @property
    def tiered_cons_type(self) -> str | None:
        return self.const_type or self.cons_sort_code

    def raw(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    model_config = {
        "populate_by_name": True,
        "extra": "allow",
        "coerce_numbers_to_str": True,
        "frozen": True,
    }


class AccountFacets(BaseModel):
    """Business-data facets of one account. Missing facets are None."""

    bill: dict[str, Any] | None = None
    daily_usage: Any = None
    daily_usage_long: Any = None
    monthly_usage: Any = None
    last_year_monthly_usage: Any = None
    tiered_usage: Any = None


def has_outstanding_balance(bill: dict[str, Any] | None) -> bool:
    """Owed history or a negative balance (the provider reports debt as negative)."""
    if not bill:
        return False
    return _to_number(bill.get("historyOwe") or 0) > 0 or _to_number(bill.get("sumMoney") or 0) < 0


class AccountDataBundle(BaseModel):
    """Aggregate of all facets fetched for one binding."""

    binding: AccountBinding
    facets: AccountFacets = Field(default_factory=AccountFacets)
    has_outstanding_balance: bool = False

    @classmethod
    def build(cls, binding: AccountBinding, facets: AccountFacets) -> "AccountDataBundle":
        return cls(
            binding=binding,
            facets=facets,
            has_outstanding_balance=has_outstanding_balance(facets.bill),
        )

    def to_payload(self) -> dict[str, Any]:
        """Dump with the upstream client's payload keys."""
        return {
            "eleBill": self.facets.bill or {},
            "userInfo": self.binding.raw(),
            "dayElecQuantity": self.facets.daily_usage or {},
            "dayElecQuantity31": self.facets.daily_usage_long or {},
            "monthElecQuantity": self.facets.monthly_usage or {},
            "lastYearElecQuantity": self.facets.last_year_monthly_usage or {},
            "stepElecQuantity": self.facets.tiered_usage or {},
            "arrearsOfFees": self.has_outstanding_balance,
        }


@dataclass(frozen=True)
class RequestSpec:
    """One upstream call before encryption."""

    endpoint: str
    method: str = "post"
    headers: dict[str, Any] = field(default_factory=dict)
    data: Any = None

    def to_wire(self) -> dict[str, Any]:
        """Shape understood by the encryption delegate."""
        wire: dict[str, Any] = {
            "url": str(self.endpoint),
            "method": self.method,
            "headers": dict(self.headers),
        }
        if self.data is not None:
            wire["data"] = self.data
        return wire


@dataclass(frozen=True)
class KeyMaterial:
    """Per-run key-exchange result, sent as headers on every later request."""

    headers: dict[str, Any] = field(default_factory=dict)

    def merged(self, **extra: Any) -> dict[str, Any]:
        """Key headers plus extra headers (extra wins)."""
        return {**self.headers, **extra}


__all__ = [
    "AccountBinding",
    "AccountDataBundle",
    "AccountFacets",
    "Credentials",
    "KeyMaterial",
    "RequestSpec",
    "SessionTokenBundle",
    "UserProfile",
    "has_outstanding_balance",
]
