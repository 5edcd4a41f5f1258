"""Tests for day change and range-over-range P&L comparisons."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from fingrow.periods import (
    TimeRange,
    all_range_changes,
    all_time_change,
    day_change,
    day_change_summary,
    range_change,
    range_lookback_days,
    range_start,
)
from fingrow.portfolio import Holding, Lot, Portfolio, TradeSide
from fingrow.pricingdata import Bar, Quote

NOW = datetime(2025, 6, 30, 20, tzinfo=timezone.utc)


def lot(side, qty, price, days_ago):
    return Lot(side, qty, price, NOW - timedelta(days=days_ago))


def portfolio(pid, holdings, tracking_enabled=True):
    return Portfolio(pid, holdings={h.symbol: h for h in holdings}, tracking_enabled=tracking_enabled)


def daily_bars(prices_by_days_ago):
    return [Bar(NOW - timedelta(days=d), p) for d, p in prices_by_days_ago.items()]


@pytest.mark.parametrize(
    "time_range, days",
    [(TimeRange.ONE_DAY, 1), (TimeRange.FIVE_DAYS, 5), (TimeRange.ONE_MONTH, 30), (TimeRange.SIX_MONTHS, 180), (TimeRange.ONE_YEAR, 365)],
)
def test_fixed_lookbacks(time_range, days):
    """Verify the bounded ranges look back a fixed number of days."""
    assert range_lookback_days(time_range, NOW) == days
    assert range_start(time_range, NOW) == NOW - timedelta(days=days)


def test_ytd_lookback():
    """Verify YTD counts the days since Jan 1, rounded up."""
    assert range_lookback_days(TimeRange.YEAR_TO_DATE, datetime(2025, 1, 1, tzinfo=timezone.utc)) == 0
    assert range_lookback_days(TimeRange.YEAR_TO_DATE, datetime(2025, 1, 1, 6, tzinfo=timezone.utc)) == 1
    assert range_lookback_days(TimeRange.YEAR_TO_DATE, datetime(2025, 3, 1, tzinfo=timezone.utc)) == 59


def test_all_has_no_lookback():
    """Verify asking for the ALL lookback is an error."""
    with pytest.raises(ValueError):
        range_lookback_days(TimeRange.ALL, NOW)


def test_day_change():
    """Verify day change is quantity times the quote's change."""
    p = portfolio("main", [Holding("AAPL", [lot(TradeSide.BUY, 2, 100, 10)])])
    quotes = {"AAPL": Quote("AAPL", last=110, change=3)}
    assert day_change([p], quotes, None, "USD") == Decimal("6")


def test_day_change_skips_closed_positions_and_converts():
    """Verify closed positions are ignored and changes are converted to the display currency."""
    closed = Holding("MSFT", [lot(TradeSide.BUY, 1, 100, 10), lot(TradeSide.SELL, 1, 100, 5)])
    london = Holding("VOD.L", [lot(TradeSide.BUY, 10, 1, 10)])
    quotes = {"MSFT": Quote("MSFT", last=100, change=50), "VOD.L": Quote("VOD.L", last=1, change=Decimal("0.1"))}
    rates = {"USD": 1, "GBP": Decimal("0.5")}
    assert day_change([portfolio("main", [closed, london])], quotes, rates, "USD") == Decimal("2")


def test_day_change_summary_percent():
    """Verify the percent is relative to yesterday's holdings value."""
    p = portfolio("main", [Holding("AAPL", [lot(TradeSide.BUY, 2, 100, 10)])])
    quotes = {"AAPL": Quote("AAPL", last=105, change=5)}
    summary = day_change_summary([p], quotes, None, "USD")
    assert summary.delta == Decimal("10")
    assert summary.percent == Decimal("5")


def test_day_change_summary_zero_base():
    """Verify no holdings means a zero percent."""
    summary = day_change_summary([], {}, None, "USD")
    assert summary.delta == 0
    assert summary.percent == 0


def test_range_change_flat_price_is_zero():
    """Verify a position bought before the window with flat prices has no change."""
    p = portfolio("main", [Holding("AAPL", [lot(TradeSide.BUY, 10, 90, 60)])])
    quote = Quote("AAPL", last=100, bars=daily_bars({d: 100 for d in range(40, 0, -1)}))
    change = range_change(TimeRange.ONE_MONTH, [p], {"AAPL": quote}, None, "USD", now=NOW)
    assert change.delta == 0
    assert change.percent == 0


def test_range_change_price_move():
    """Verify the delta is the P&L gained since the window start."""
    p = portfolio("main", [Holding("AAPL", [lot(TradeSide.BUY, 10, 100, 60)])])
    quote = Quote("AAPL", last=120, bars=daily_bars({31: 100, 30: 110, 29: 115, 1: 118}))
    change = range_change(TimeRange.ONE_MONTH, [p], {"AAPL": quote}, None, "USD", now=NOW)
    assert change.delta == Decimal("100")
    assert change.percent == Decimal("10")


def test_range_change_buy_inside_window():
    """Verify lots bought after the start only count in the current P&L."""
    p = portfolio("main", [Holding("AAPL", [lot(TradeSide.BUY, 10, 100, 3)])])
    quote = Quote("AAPL", last=110, bars=daily_bars({10: 90, 6: 95}))
    change = range_change(TimeRange.FIVE_DAYS, [p], {"AAPL": quote}, None, "USD", now=NOW)
    assert change.delta == Decimal("100")


def test_range_change_without_bars_uses_live_price():
    """Verify a missing start bar falls back to the live price."""
    p = portfolio("main", [Holding("AAPL", [lot(TradeSide.BUY, 10, 100, 60)])])
    change = range_change(TimeRange.ONE_MONTH, [p], {"AAPL": Quote("AAPL", last=150)}, None, "USD", now=NOW)
    assert change.delta == 0


def test_range_change_skips_missing_quotes():
    """Verify holdings without a quote do not contribute to bounded ranges."""
    p = portfolio("main", [Holding("AAPL", [lot(TradeSide.BUY, 10, 100, 60)])])
    assert range_change(TimeRange.ONE_DAY, [p], {}, None, "USD", now=NOW).delta == 0


def test_all_time_change():
    """Verify ALL sums realized and unrealized P&L, closed holdings included."""
    closed = Holding("MSFT", [lot(TradeSide.BUY, 1, 100, 10), lot(TradeSide.SELL, 1, 150, 5)])
    open_ = Holding("AAPL", [lot(TradeSide.BUY, 10, 100, 10)])
    quotes = {"AAPL": Quote("AAPL", last=110), "MSFT": Quote("MSFT", last=0)}
    change = all_time_change([portfolio("main", [closed, open_])], quotes, None, "USD")
    assert change.delta == Decimal("150")
    assert change.percent == Decimal("15")
    assert range_change(TimeRange.ALL, [portfolio("main", [closed, open_])], quotes, None, "USD") == change


def test_untracked_portfolios_do_not_change_results():
    """Verify turning tracking off for an extra portfolio leaves every change intact."""
    main = portfolio("main", [Holding("AAPL", [lot(TradeSide.BUY, 2, 100, 60)])])
    extra = portfolio("extra", [Holding("TSLA", [lot(TradeSide.BUY, 5, 200, 60)])], tracking_enabled=False)
    quotes = {
        "AAPL": Quote("AAPL", last=110, change=2, bars=daily_bars({40: 100, 2: 108})),
        "TSLA": Quote("TSLA", last=300, change=10, bars=daily_bars({40: 200, 2: 250})),
    }

    with_extra = all_range_changes([main, extra], quotes, None, "USD", now=NOW)
    without = all_range_changes([main], quotes, None, "USD", now=NOW)
    assert with_extra == without
    assert day_change([main, extra], quotes, None, "USD") == day_change([main], quotes, None, "USD")
    assert set(with_extra) == set(TimeRange)


def test_naive_now_is_taken_as_utc():
    """Verify a naive end instant gives the same ranges as its UTC equivalent."""
    naive_now = NOW.replace(tzinfo=None)
    p = portfolio("main", [Holding("AAPL", [lot(TradeSide.BUY, 10, 100, 60)])])
    quote = Quote("AAPL", last=120, bars=daily_bars({31: 100, 30: 110, 29: 115, 1: 118}))

    change = range_change(TimeRange.ONE_MONTH, [p], {"AAPL": quote}, None, "USD", now=naive_now)
    assert change == range_change(TimeRange.ONE_MONTH, [p], {"AAPL": quote}, None, "USD", now=NOW)
    assert change.delta == Decimal("100")
    assert range_start(TimeRange.FIVE_DAYS, naive_now) == NOW - timedelta(days=5)
    assert range_lookback_days(TimeRange.YEAR_TO_DATE, naive_now) == range_lookback_days(TimeRange.YEAR_TO_DATE, NOW)
