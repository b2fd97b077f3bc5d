"""
Display-oriented summaries derived from an AccountDataBundle.

Pure functions: no I/O, no caching. Amounts are kept as the strings the
service returns so callers can render them unchanged.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Literal

from wsgw.models import AccountDataBundle

_DAY_PATTERN = re.compile(r"^(\d{4})\D?(\d{2})")


@dataclass(frozen=True)
class DisplaySummary:
    balance: str
    has_outstanding_balance: bool
    last_bill: str
    last_usage: str
    year_bill: str
    year_usage: str
    total_year_usage: float


@dataclass(frozen=True)
class UsageBar:
    """One chart bar; level is the price tier (1-3) reached at that point."""

    value: float
    level: int
    label: str | None = None


def _as_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _month_list(bundle: AccountDataBundle) -> list[dict[str, Any]]:
    monthly = bundle.facets.monthly_usage
    items = monthly.get("mothEleList") if isinstance(monthly, dict) else None
    return [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []


def _tiered_particulars(bundle: AccountDataBundle) -> dict[str, Any] | None:
    tiered = bundle.facets.tiered_usage
    if isinstance(tiered, list) and tiered and isinstance(tiered[0], dict):
        particulars = tiered[0].get("electricParticulars")
        if isinstance(particulars, dict) and particulars:
            return particulars
    return None


def extract_display_summary(bundle: AccountDataBundle) -> DisplaySummary:
    """Headline figures: balance, last month's bill and usage, year totals."""
    bill = bundle.facets.bill or {}
    balance = str(bill.get("sumMoney") or "0.00")

    last_bill, last_usage = "0.00", "0"
    months = _month_list(bundle)
    particulars = _tiered_particulars(bundle)
    if months:
        last = months[-1]
        last_bill = str(last.get("monthEleCost") or last.get("cost") or last.get("eleCost") or "0.00")
        last_usage = str(last.get("monthEleNum") or last.get("eleNum") or last.get("usage") or "0")
    elif particulars:
        last_bill = str(particulars.get("totalAmount") or "0.00")
        last_usage = str(particulars.get("totalPq") or "0")

    monthly = bundle.facets.monthly_usage
    data_info = monthly.get("dataInfo") if isinstance(monthly, dict) else None
    data_info = data_info if isinstance(data_info, dict) else {}

    return DisplaySummary(
        balance=balance,
        has_outstanding_balance=bundle.has_outstanding_balance,
        last_bill=last_bill,
        last_usage=last_usage,
        year_bill=str(data_info.get("totalEleCost") or "0"),
        year_usage=str(data_info.get("totalEleNum") or "0"),
        total_year_usage=_as_float(particulars.get("totalYearPq")) if particulars else 0.0,
    )


def build_usage_bars(
    bundle: AccountDataBundle,
    first_level: float,
    second_level: float,
    dimension: Literal["daily", "monthly"] = "daily",
    bar_count: int = 7,
    today: date | None = None,
) -> list[UsageBar]:
    """
    Chart bars coloured by the price tier reached.

    Tiers come from cumulative monthly usage against the two thresholds:
    above second_level is tier 3, above first_level tier 2, otherwise 1.
    Daily bars take the tier of their month when it falls in the current
    year, are ordered oldest first, and only the last bar_count are kept.
    """
    today = today or date.today()

    month_levels: list[tuple[float, int]] = []
    year_total = 0.0
    for item in _month_list(bundle):
        usage = _as_float(item.get("monthEleNum"))
        year_total += usage
        level = 3 if year_total > second_level else 2 if year_total > first_level else 1
        month_levels.append((usage, level))

    bars: list[UsageBar] = []
    if dimension == "monthly":
        bars = [UsageBar(value=usage, level=level) for usage, level in month_levels]
    else:
        daily = bundle.facets.daily_usage_long
        days = daily.get("sevenEleList") if isinstance(daily, dict) else None
        for item in days if isinstance(days, list) else []:
            if not isinstance(item, dict):
                continue
            try:
                value = float(item.get("dayElePq"))
            except (TypeError, ValueError):
                continue
            label = str(item.get("day"))
            match = _DAY_PATTERN.match(label)
            if not match:
                continue
            year, month = int(match.group(1)), int(match.group(2))
            level = 1
            if year == today.year and month_levels:
                index = max(0, min(len(month_levels) - 1, month - 1))
                level = month_levels[index][1]
            # Upstream lists newest first
            bars.insert(0, UsageBar(value=value, level=level, label=label))

    count = int(bar_count) if bar_count else 7
    return bars[-count:]


__all__ = ["DisplaySummary", "UsageBar", "build_usage_bars", "extract_display_summary"]
