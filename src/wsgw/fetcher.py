"""
Account binding lookup and per-account business-data fetch.

Accounts are processed one after another so the shared access token is
used serially. Within one account six facet queries run concurrently and
the group fails as a whole if any member fails; the account then falls
back to a single tiered-usage query for the previous calendar month.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, timedelta
from functools import partial
from typing import Any

from core.errors import NoBindingError, ProtocolError, WsgwError
from core.logging import log_exception, log_with_context
from wsgw.authenticator import AccessTokenIssued
from wsgw.endpoints import (
    CHANNEL,
    DAILY_USAGE_QUERY,
    LONG_WINDOW_DAYS,
    MONTHLY_USAGE_QUERY,
    OPERATION_CODES,
    SHORT_WINDOW_DAYS,
    SOURCE,
    TARGET,
    Endpoint,
    Operation,
    requires_segment_lookup,
    tiered_usage_endpoint,
    usc_info,
)
from wsgw.models import AccountBinding, AccountDataBundle, AccountFacets, RequestSpec
from wsgw.transport import EncryptedTransport

logger = logging.getLogger(__name__)

TIERED_QUERY_FAILED_MESSAGE = "阶梯用电查询失败"


@dataclass(frozen=True)
class QueryMonth:
    """Calendar month (1-12) used by the tiered-usage query."""

    year: int
    month: int

    @classmethod
    def of(cls, day: date) -> "QueryMonth":
        return cls(year=day.year, month=day.month)

    def previous(self) -> "QueryMonth":
        if self.month == 1:
            return QueryMonth(year=self.year - 1, month=12)
        return QueryMonth(year=self.year, month=self.month - 1)

    def query_date(self, zero_pad: bool = True) -> str:
        if zero_pad:
            return f"{self.year}-{self.month:02d}"
        return f"{self.year}-{self.month}"


FacetFetch = Callable[[AccountBinding], Awaitable[AccountFacets]]


@dataclass(frozen=True)
class FacetFetchStrategy:
    """Primary fetch with one degraded fallback.

    A failing primary is replaced wholesale by the fallback's result. A
    failing fallback is logged and yields empty facets; it is not retried.
    """

    primary: FacetFetch
    fallback: FacetFetch

    async def run(self, binding: AccountBinding) -> AccountFacets:
        try:
            return await self.primary(binding)
        except WsgwError as e:
            log_exception(
                logger,
                e,
                "Facet group failed, falling back to previous-month tiered usage",
                level=logging.WARNING,
                include_traceback=False,
            )

        try:
            return await self.fallback(binding)
        except WsgwError as e:
            log_exception(
                logger,
                e,
                "Fallback tiered-usage query failed",
                level=logging.WARNING,
                include_traceback=False,
            )
            return AccountFacets()


class BindingAndDataFetcher:
    """Resolves bound accounts and gathers their business-data facets."""

    def __init__(
        self,
        transport: EncryptedTransport,
        today: Callable[[], date] = date.today,
        tiered_use_previous_month: bool = False,
    ):
        self.transport = transport
        self._today = today
        self.tiered_use_previous_month = tiered_use_previous_month

    def _tiered_month(self) -> QueryMonth:
        """Month for the primary tiered query; the fallback steps one month back from it."""
        month = QueryMonth.of(self._today())
        return month.previous() if self.tiered_use_previous_month else month

    async def _send(self, auth: AccessTokenIssued, endpoint: str, data: dict[str, Any]) -> Any:
        spec = RequestSpec(
            endpoint,
            headers=auth.key.merged(token=auth.session.token, acctoken=auth.access_token),
            data=data,
        )
        return await self.transport.send(spec, session_valid=True)

    def _user_inform(self, auth: AccessTokenIssued) -> dict[str, Any]:
        codes = OPERATION_CODES[Operation.USER_INFORM]
        return {
            "serviceCode": codes.service_code,
            "source": SOURCE,
            "target": TARGET,
            "uscInfo": usc_info(),
            "quInfo": {"userId": auth.session.primary_profile.user_id},
            "token": auth.session.token,
        }

    async def fetch_bindings(self, auth: AccessTokenIssued) -> list[AccountBinding]:
        """Look up the accounts bound to the first cached user profile."""
        resp = await self._send(
            auth,
            Endpoint.BINDING,
            {**self._user_inform(auth), "Channels": CHANNEL},
        )
        bizrt = resp.get("bizrt") if isinstance(resp, dict) else None
        items = bizrt.get("powerUserList") if isinstance(bizrt, dict) else None
        if not isinstance(items, list):
            return []
        return [AccountBinding.model_validate(item) for item in items if isinstance(item, dict)]

    # =========================================================================
    # Facets
    # =========================================================================

    async def fetch_bill(self, auth: AccessTokenIssued, binding: AccountBinding) -> dict[str, Any]:
        codes = OPERATION_CODES[Operation.BILL]
        profile = auth.session.primary_profile
        resp = await self._send(
            auth,
            Endpoint.BILL,
            {
                "data": {
                    "srvCode": "",
                    "serialNo": "",
                    "channelCode": codes.channel_code,
                    "funcCode": codes.func_code,
                    "acctId": profile.user_id,
                    "userName": profile.login_account or profile.nickname,
                    "promotType": codes.promot_type,
                    "promotCode": codes.promot_code,
                    "userAccountId": profile.user_id,
                    "list": [
                        {
                            "consNoSrc": binding.cons_no_dst,
                            "proCode": binding.pro_no,
                            "sceneType": binding.const_type,
                            "consNo": binding.cons_no,
                            "orgNo": binding.org_no,
                        }
                    ],
                },
                "serviceCode": codes.service_code,
                "source": codes.source,
                "target": binding.province_code,
            },
        )
        bills = resp.get("list") if isinstance(resp, dict) else None
        if isinstance(bills, list) and bills and isinstance(bills[0], dict):
            return bills[0]
        return {}

    def _usage_query(
        self,
        auth: AccessTokenIssued,
        binding: AccountBinding,
        operation: Operation,
        query: dict[str, Any],
        selector: str,
    ) -> dict[str, Any]:
        codes = OPERATION_CODES[operation]
        profile = auth.session.primary_profile
        return {
            "params1": self._user_inform(auth),
            "params3": {
                "data": {
                    "acctId": profile.user_id,
                    "consNo": binding.cons_no_dst,
                    "consType": binding.cons_type_code,
                    "orgNo": binding.org_no,
                    "proCode": binding.province_code,
                    "serialNo": "",
                    "srvCode": "",
                    "userName": profile.nickname or profile.login_account,
                    "funcCode": codes.func_code,
                    "channelCode": codes.channel_code,
                    "clearCache": codes.clear_cache,
                    "promotCode": codes.promot_code,
                    "promotType": codes.promot_type,
                    **query,
                },
                "serviceCode": codes.service_code,
                "source": codes.source,
                "target": binding.province_code,
            },
            "params4": selector,
        }

    async def fetch_daily_usage(
        self, auth: AccessTokenIssued, binding: AccountBinding, days: int
    ) -> Any:
        """Daily usage from `days` days ago up to yesterday."""
        today = self._today()
        query = {
            "startTime": (today - timedelta(days=days)).isoformat(),
            "endTime": (today - timedelta(days=1)).isoformat(),
            "queryYear": str(today.year),
        }
        return await self._send(
            auth,
            Endpoint.USAGE,
            self._usage_query(auth, binding, Operation.DAILY_USAGE, query, DAILY_USAGE_QUERY),
        )

    async def fetch_monthly_usage(
        self, auth: AccessTokenIssued, binding: AccountBinding, year: int
    ) -> Any:
        query = {"provinceCode": binding.province_code, "queryYear": str(year)}
        return await self._send(
            auth,
            Endpoint.USAGE,
            self._usage_query(auth, binding, Operation.MONTHLY_USAGE, query, MONTHLY_USAGE_QUERY),
        )

    async def fetch_segment(
        self, auth: AccessTokenIssued, binding: AccountBinding, month: QueryMonth
    ) -> dict[str, Any] | None:
        """Latest billing segment; its calcId feeds the tiered query."""
        codes = OPERATION_CODES[Operation.SEGMENT]
        resp = await self._send(
            auth,
            Endpoint.SEGMENT,
            {
                "data": {
                    "acctId": "acctid01",
                    "channelCode": codes.channel_code,
                    "consNo": binding.cons_no_dst,
                    "funcCode": codes.func_code,
                    "promotCode": codes.promot_code,
                    "promotType": codes.promot_type,
                    "provinceCode": TARGET,
                    "serialNo": "",
                    "srvCode": "123",
                    "userName": "acctid01",
                    "year": month.year,
                },
                "serviceCode": codes.service_code,
                "source": codes.source,
                "target": binding.pro_no,
            },
        )
        segments = resp.get("billList") if isinstance(resp, dict) else None
        if isinstance(segments, list) and segments and isinstance(segments[-1], dict):
            return segments[-1]
        return None

    async def fetch_tiered_usage(
        self, auth: AccessTokenIssued, binding: AccountBinding, month: QueryMonth
    ) -> Any:
        codes = OPERATION_CODES[Operation.TIERED_USAGE]
        profile = auth.session.primary_profile

        calc_id = None
        needs_segment = requires_segment_lookup(binding.pro_no)
        if needs_segment:
            segment = await self.fetch_segment(auth, binding, month)
            calc_id = segment.get("calcId") if segment else None

        query_date = month.query_date(zero_pad=not needs_segment)
        endpoint = tiered_usage_endpoint(binding.org_no, binding.account_type)
        log_with_context(
            logger,
            logging.DEBUG,
            "Querying tiered usage",
            api_endpoint=str(endpoint),
            query_date=query_date,
        )

        data: dict[str, Any] = {
            "channelCode": codes.channel_code,
            "funcCode": codes.func_code,
            "promotType": codes.promot_type,
            "clearCache": codes.clear_cache,
            "consNo": binding.cons_no_dst,
            "promotCode": binding.province_code,
            "orgNo": binding.org_no,
            "queryDate": query_date,
            "provinceCode": binding.province_code,
            "consType": binding.tiered_cons_type,
            "userAccountId": profile.user_id,
            "serialNo": "",
            "srvCode": "",
            "userName": profile.nickname or profile.login_account,
            "acctId": profile.user_id,
        }
        if calc_id is not None:
            data["calcId"] = calc_id

        resp = await self._send(
            auth,
            endpoint,
            {
                "data": data,
                "serviceCode": codes.service_code,
                "source": codes.source,
                "target": binding.province_code,
            },
        )
        if not isinstance(resp, dict) or str(resp.get("rtnCode")) != "1":
            rtn_code = resp.get("rtnCode") if isinstance(resp, dict) else None
            rtn_msg = resp.get("rtnMsg") if isinstance(resp, dict) else None
            raise ProtocolError(
                rtn_msg or TIERED_QUERY_FAILED_MESSAGE,
                code=None if rtn_code is None else str(rtn_code),
                context={"api_endpoint": str(endpoint)},
            )
        return resp.get("list") or {}

    # =========================================================================
    # Orchestration
    # =========================================================================

    async def fetch_all_facets(self, auth: AccessTokenIssued, binding: AccountBinding) -> AccountFacets:
        """Fetch all six facets concurrently; any failure fails the group."""
        today = self._today()
        results = await asyncio.gather(
            self.fetch_bill(auth, binding),
            self.fetch_daily_usage(auth, binding, SHORT_WINDOW_DAYS),
            self.fetch_daily_usage(auth, binding, LONG_WINDOW_DAYS),
            self.fetch_monthly_usage(auth, binding, today.year),
            self.fetch_monthly_usage(auth, binding, today.year - 1),
            self.fetch_tiered_usage(auth, binding, self._tiered_month()),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

        bill, daily, daily_long, monthly, last_year, tiered = results
        return AccountFacets(
            bill=bill,
            daily_usage=daily,
            daily_usage_long=daily_long,
            monthly_usage=monthly,
            last_year_monthly_usage=last_year,
            tiered_usage=tiered,
        )

    async def fetch_tiered_usage_only(
        self, auth: AccessTokenIssued, binding: AccountBinding
    ) -> AccountFacets:
        """Degraded fetch: tiered usage for the month before the primary query's."""
        month = self._tiered_month().previous()
        return AccountFacets(tiered_usage=await self.fetch_tiered_usage(auth, binding, month))

    def strategy(self, auth: AccessTokenIssued) -> FacetFetchStrategy:
        return FacetFetchStrategy(
            primary=partial(self.fetch_all_facets, auth),
            fallback=partial(self.fetch_tiered_usage_only, auth),
        )

    async def fetch_accounts(self, auth: AccessTokenIssued) -> list[AccountDataBundle]:
        """Bindings lookup followed by a sequential per-account facet fetch.

        Raises:
            NoBindingError: The user has no bound accounts
        """
        bindings = await self.fetch_bindings(auth)
        if not bindings:
            raise NoBindingError("No bound service accounts found")

        log_with_context(
            logger,
            logging.INFO,
            "Binding lookup complete",
            api_endpoint=Endpoint.BINDING.value,
            account_count=len(bindings),
        )

        strategy = self.strategy(auth)
        bundles: list[AccountDataBundle] = []
        for index, binding in enumerate(bindings):
            log_with_context(
                logger,
                logging.DEBUG,
                "Fetching account data",
                account_index=index,
                account_count=len(bindings),
            )
            facets = await strategy.run(binding)
            bundles.append(AccountDataBundle.build(binding, facets))
        return bundles


__all__ = [
    "BindingAndDataFetcher",
    "FacetFetchStrategy",
    "QueryMonth",
]
