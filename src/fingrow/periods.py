"""
Period-over-period changes of the tracked portfolios.

Every change here is a snapshot difference of P&L between two instants, not a
cash-flow weighted (IRR style) return. Percentages are in percentage points.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum

from .aggregate import holdings_value
from .currency import CurrencyLike, RatesLike, convert
from .dates import resolve_now
from .portfolio import PortfoliosLike, holding_pnl, tracked_portfolios
from .pricingdata import Quote


class TimeRange(Enum):
    """Comparison and chart windows."""

    ONE_DAY = "1D"
    FIVE_DAYS = "5D"
    ONE_MONTH = "1M"
    SIX_MONTHS = "6M"
    YEAR_TO_DATE = "YTD"
    ONE_YEAR = "1Y"
    ALL = "ALL"


_FIXED_LOOKBACK_DAYS = {
    TimeRange.ONE_DAY: 1,
    TimeRange.FIVE_DAYS: 5,
    TimeRange.ONE_MONTH: 30,
    TimeRange.SIX_MONTHS: 180,
    TimeRange.ONE_YEAR: 365,
}


@dataclass
class PeriodChange:
    delta: Decimal
    percent: Decimal


def _percent(delta: Decimal, base: Decimal) -> Decimal:
    if base <= 0:
        return Decimal("0")
    return delta / base * 100


def range_lookback_days(time_range: TimeRange, now: datetime | None = None) -> int:
    """
    Number of days a bounded range looks back from ``now``.

    YTD counts the days since midnight UTC on Jan 1 of ``now``'s year, rounded
    up. ALL has no lookback and raises ValueError.
    """
    if time_range == TimeRange.ALL:
        raise ValueError("ALL has no lookback window")
    if time_range == TimeRange.YEAR_TO_DATE:
        now = resolve_now(now).astimezone(timezone.utc)
        jan_first = datetime(now.year, 1, 1, tzinfo=timezone.utc)
        return math.ceil((now - jan_first).total_seconds() / 86400)
    return _FIXED_LOOKBACK_DAYS[time_range]


def range_start(time_range: TimeRange, now: datetime | None = None) -> datetime:
    """Start instant of a bounded range ending at ``now``."""
    now = resolve_now(now)
    return now - timedelta(days=range_lookback_days(time_range, now))


def day_change(
    portfolios: PortfoliosLike,
    quotes: Mapping[str, Quote],
    rates: RatesLike,
    display_currency: CurrencyLike,
) -> Decimal:
    """
    Sum of ``qty * quote.change`` over every held position, in the display currency.

    Holdings without a quote contribute nothing.
    """
    total = Decimal("0")
    for portfolio in tracked_portfolios(portfolios):
        for holding in portfolio.holdings.values():
            qty = holding.position_quantity()
            quote = quotes.get(holding.symbol)
            if qty <= 0 or quote is None:
                continue
            total += qty * convert(rates, quote.change, holding.native_currency, display_currency)
    return total


def day_change_summary(
    portfolios: PortfoliosLike,
    quotes: Mapping[str, Quote],
    rates: RatesLike,
    display_currency: CurrencyLike,
) -> PeriodChange:
    """
    Day change with its percentage of yesterday's holdings value.

    ``value_yesterday = current_value - delta``; the percent is
    ``delta / |value_yesterday| * 100``, or 0 when yesterday's value is 0.
    """
    delta = day_change(portfolios, quotes, rates, display_currency)
    value_yesterday = holdings_value(portfolios, quotes, rates, display_currency) - delta
    if value_yesterday == 0:
        return PeriodChange(delta=delta, percent=Decimal("0"))
    return PeriodChange(delta=delta, percent=delta / abs(value_yesterday) * 100)


def all_time_change(
    portfolios: PortfoliosLike,
    quotes: Mapping[str, Quote],
    rates: RatesLike,
    display_currency: CurrencyLike,
) -> PeriodChange:
    """
    Realized plus unrealized P&L of every holding that has lots.

    The percent is taken against the cost basis of the positions still held.
    A missing quote marks the holding at 0.
    """
    delta = Decimal("0")
    cost_basis = Decimal("0")
    for portfolio in tracked_portfolios(portfolios):
        for holding in portfolio.holdings.values():
            if not holding.lots:
                continue
            pnl = holding_pnl(holding, quotes.get(holding.symbol), rates, display_currency)
            delta += pnl.total
            if pnl.qty > 0:
                cost_basis += pnl.cost_basis
    return PeriodChange(delta=delta, percent=_percent(delta, cost_basis))


def range_change(
    time_range: TimeRange,
    portfolios: PortfoliosLike,
    quotes: Mapping[str, Quote],
    rates: RatesLike,
    display_currency: CurrencyLike,
    now: datetime | None = None,
) -> PeriodChange:
    """
    Change in P&L over a time range.

    For bounded ranges each holding contributes its current P&L minus its P&L
    at the range start, where the start P&L only uses lots dated at or before
    the start and marks them at the latest bar at or before it (the live
    price when no such bar exists).

    Args:
        time_range: Window to compare over. ALL delegates to :func:`all_time_change`.
        portfolios: Portfolios (mapping by id or iterable). Untracked ones are ignored.
        quotes: Quotes keyed by symbol. Holdings without one are skipped.
        rates: FX snapshot.
        display_currency: Currency of the delta.
        now: End of the window. Defaults to the current UTC time.

    Returns:
        A PeriodChange whose percent is relative to the current cost basis
        (0 when that is not positive).
    """
    if time_range == TimeRange.ALL:
        return all_time_change(portfolios, quotes, rates, display_currency)

    now = resolve_now(now)
    start = range_start(time_range, now)

    delta = Decimal("0")
    cost_basis = Decimal("0")
    for portfolio in tracked_portfolios(portfolios):
        for holding in portfolio.holdings.values():
            quote = quotes.get(holding.symbol)
            if quote is None or not holding.lots:
                continue
            current = holding_pnl(holding, quote, rates, display_currency)
            at_start = holding_pnl(holding, quote, rates, display_currency, as_of=start, price=quote.price_at(start))
            delta += current.total - at_start.total
            if current.qty > 0:
                cost_basis += current.cost_basis
    return PeriodChange(delta=delta, percent=_percent(delta, cost_basis))


def all_range_changes(
    portfolios: PortfoliosLike,
    quotes: Mapping[str, Quote],
    rates: RatesLike,
    display_currency: CurrencyLike,
    now: datetime | None = None,
) -> dict[TimeRange, PeriodChange]:
    """Compute :func:`range_change` for every TimeRange."""
    return {
        time_range: range_change(time_range, portfolios, quotes, rates, display_currency, now=now)
        for time_range in TimeRange
    }
