"""
Historical holdings-value series.

Turns per-symbol bar/line history into a clean, forward-filled daily price
map and combines it with each symbol's lots into one chronological series of
holdings value in the display currency, ending with a live point priced from
the latest quotes. Cash is not part of the series.

All historical points are converted with the single FX snapshot passed in,
so long look-back windows drift with today's exchange rates.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

import pandas as pd

from .currency import CurrencyLike, RatesLike, convert
from .dates import day_key, day_start, resolve_now
from .portfolio import Holding, PortfoliosLike, merge_tracked_holdings, tracked_portfolios
from .pricingdata import Quote

if TYPE_CHECKING:
    from .periods import TimeRange

# A price more than this factor above (or below 1/factor of) the last accepted
# price is a bad tick.
BAD_TICK_FACTOR = Decimal("5")

MAX_SERIES_POINTS = 520

PLACEHOLDER_DAYS = 14


@dataclass(frozen=True)
class SeriesPoint:
    t: datetime
    v: Decimal


def _raw_observations(quote: Quote | None) -> list[tuple[datetime, Decimal]]:
    """Valid (finite, positive) observations, bars preferred over the price line."""
    if quote is None:
        return []
    if quote.bars:
        raw = [(bar.t, bar.c) for bar in quote.bars]
    else:
        raw = [(point.t, point.v) for point in quote.line]
    return [(t, price) for t, price in raw if price.is_finite() and price > 0]


def is_bad_tick(price: Decimal, last_accepted: Decimal | None) -> bool:
    """Whether ``price`` jumps more than 5x up or down from the last accepted price."""
    if last_accepted is None:
        return False
    return price > last_accepted * BAD_TICK_FACTOR or price < last_accepted / BAD_TICK_FACTOR


def build_price_map(quote: Quote | None) -> dict[str, Decimal]:
    """
    Build an ISO day -> close map for one symbol, dropping bad ticks.

    Observations are scanned chronologically; each candidate is compared to
    the last *accepted* price, so a single spike does not poison the rest of
    the history.

    Args:
        quote: The symbol's quote. None yields an empty map.

    Returns:
        Mapping of ISO day to accepted native price.
    """
    price_map: dict[str, Decimal] = {}
    last_accepted: Decimal | None = None
    for t, price in _raw_observations(quote):
        if is_bad_tick(price, last_accepted):
            continue
        price_map[day_key(t)] = price
        last_accepted = price
    return price_map


def observation_days(quote: Quote | None) -> set[str]:
    """ISO days with a valid raw observation, bad ticks included."""
    return {day_key(t) for t, _ in _raw_observations(quote)}


def forward_fill(price_map: Mapping[str, Decimal], days: Iterable[str]) -> dict[str, Decimal]:
    """
    Carry the last known price into days without a fresh observation.

    Days before the first observation stay unset.

    Args:
        price_map: Accepted prices by ISO day.
        days: Sorted ISO days to fill.

    Returns:
        A new mapping covering every day from the first observation on.
    """
    filled: dict[str, Decimal] = {}
    last_known: Decimal | None = None
    for day in days:
        if day in price_map:
            last_known = price_map[day]
        if last_known is not None:
            filled[day] = last_known
    return filled


def _trim_leading_zeros(points: list[SeriesPoint]) -> list[SeriesPoint]:
    for i, point in enumerate(points):
        if point.v > 0:
            return points[i:]
    return points


def build_holdings_value_series(
    holdings: Mapping[str, Holding],
    quotes: Mapping[str, Quote],
    rates: RatesLike,
    display_currency: CurrencyLike,
    extra_days: Iterable[str] = (),
    now: datetime | None = None,
) -> list[SeriesPoint]:
    """
    Build the chronological holdings-value series for a set of holdings.

    A lot counts from the start of its UTC calendar day, so an intraday buy
    is already part of that day's point.

    Args:
        holdings: Holdings keyed by symbol (lots already merged across portfolios).
        quotes: Quotes keyed by symbol, prices in each symbol's native currency.
        rates: FX snapshot used for every point.
        display_currency: Currency of the series values.
        extra_days: Additional ISO days to include (e.g. cash event days).
        now: Timestamp of the live point. Defaults to the current UTC time. Naive
            datetimes are taken as UTC.

    Returns:
        At most 520 points, oldest first, starting at the first positive
        value. Empty when nothing was ever held.
    """
    now = resolve_now(now)

    if not holdings:
        return []

    price_maps: dict[str, dict[str, Decimal]] = {}
    all_days: set[str] = set(extra_days)
    for symbol in holdings:
        quote = quotes.get(symbol)
        price_maps[symbol] = build_price_map(quote)
        all_days |= observation_days(quote)

    days = sorted(all_days)
    filled = {symbol: forward_fill(price_maps[symbol], days) for symbol in holdings}

    # Lots reduced to (day, signed qty), so each day is a running sum.
    signed_lots = {
        symbol: sorted((day_key(lot.date), lot.signed_qty) for lot in holding.lots)
        for symbol, holding in holdings.items()
    }

    points: list[SeriesPoint] = []
    for day in days:
        total = Decimal("0")
        for symbol, holding in holdings.items():
            price = filled[symbol].get(day)
            if price is None:
                continue
            qty = sum((q for lot_day, q in signed_lots[symbol] if lot_day <= day), Decimal("0"))
            if qty <= 0:
                continue
            total += qty * convert(rates, price, holding.native_currency, display_currency)
        points.append(SeriesPoint(t=day_start(day), v=total))

    live_total = Decimal("0")
    for symbol, holding in holdings.items():
        quote = quotes.get(symbol)
        if quote is None or not quote.last.is_finite() or quote.last <= 0:
            continue
        qty = holding.position_quantity()
        if qty > 0:
            live_total += qty * convert(rates, quote.last, holding.native_currency, display_currency)

    live_point = SeriesPoint(t=now, v=live_total)
    if points and days[-1] == day_key(now):
        points[-1] = live_point
    else:
        points.append(live_point)

    if not any(point.v > 0 for point in points):
        return []

    return _trim_leading_zeros(points)[-MAX_SERIES_POINTS:]


def build_value_series(
    portfolios: PortfoliosLike,
    quotes: Mapping[str, Quote],
    rates: RatesLike,
    display_currency: CurrencyLike,
    now: datetime | None = None,
) -> list[SeriesPoint]:
    """
    Build the holdings-value series across all tracked portfolios.

    Same-symbol holdings are merged, and the days of every tracked portfolio's
    cash events are added to the timeline.

    Args:
        portfolios: Portfolios (mapping by id or iterable). Untracked ones are ignored.
        quotes: Quotes keyed by symbol.
        rates: FX snapshot.
        display_currency: Currency of the series values.
        now: Timestamp of the live point. Defaults to the current UTC time.

    Returns:
        The series as described in :func:`build_holdings_value_series`.
    """
    tracked = tracked_portfolios(portfolios)
    cash_days = {day_key(event.date) for p in tracked for event in p.cash_events}
    return build_holdings_value_series(
        merge_tracked_holdings(tracked),
        quotes,
        rates,
        display_currency,
        extra_days=cash_days,
        now=now,
    )


def window_start(time_range: "TimeRange", end: datetime) -> datetime | None:
    """
    Start of a chart window ending at ``end``; None for the full history.

    1D and 5D step back whole days, 1M/6M/1Y step back calendar months and
    years, and YTD starts at midnight on Jan 1 of ``end``'s year.
    """
    from .periods import TimeRange

    if time_range == TimeRange.ONE_DAY:
        return end - timedelta(days=1)
    if time_range == TimeRange.FIVE_DAYS:
        return end - timedelta(days=5)
    if time_range == TimeRange.ONE_MONTH:
        return (pd.Timestamp(end) - pd.DateOffset(months=1)).to_pydatetime()
    if time_range == TimeRange.SIX_MONTHS:
        return (pd.Timestamp(end) - pd.DateOffset(months=6)).to_pydatetime()
    if time_range == TimeRange.ONE_YEAR:
        return (pd.Timestamp(end) - pd.DateOffset(years=1)).to_pydatetime()
    if time_range == TimeRange.YEAR_TO_DATE:
        return end.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return None


def slice_series(series: list[SeriesPoint], time_range: "TimeRange") -> list[SeriesPoint]:
    """
    Restrict a value series to a chart window ending at its last point.

    Leading zero points inside the window are dropped.

    Args:
        series: Output of :func:`build_value_series`.
        time_range: Window to show.

    Returns:
        The visible points, oldest first.
    """
    if not series:
        return []
    since = window_start(time_range, series[-1].t)
    visible = series if since is None else [p for p in series if p.t >= since]
    return _trim_leading_zeros(visible)


def placeholder_series(now: datetime | None = None, days: int = PLACEHOLDER_DAYS) -> list[SeriesPoint]:
    """A flat zero series of ``days`` daily points ending at ``now``, for empty charts."""
    now = resolve_now(now)
    return [SeriesPoint(t=now - timedelta(days=days - 1 - i), v=Decimal("0")) for i in range(days)]
