from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from decimal import Decimal
from datetime import datetime
from typing import Any
import sys

import yfinance as yf  # type: ignore[import-untyped]
import pandas as pd

from .currency import Number, to_decimal
from .dates import TimestampLike, normalize_datetime, parse_timestamp

# When True, print status messages during data fetching (e.g. "Fetching AAPL …").
verbose: bool = False


class Bar:
    """A daily bar reduced to its close."""

    def __init__(self, t: TimestampLike, c: Number):
        self.t: datetime = parse_timestamp(t)
        self.c: Decimal = to_decimal(c)

    def __repr__(self):
        return f"Bar(t={self.t.isoformat()}, c={self.c})"


class LinePoint:
    """A point of a simplified price line (sparkline)."""

    def __init__(self, t: TimestampLike, v: Number):
        self.t: datetime = parse_timestamp(t)
        self.v: Decimal = to_decimal(v)

    def __repr__(self):
        return f"LinePoint(t={self.t.isoformat()}, v={self.v})"


class Quote:
    """Latest price, day change and price history of one symbol, in its native currency."""

    def __init__(self, symbol: str, last: Number, change: Number = 0, bars: Iterable[Bar] | None = None, line: Iterable[LinePoint] | None = None):
        """Initialize a Quote.

        Args:
            symbol: Ticker symbol.
            last: Last traded price.
            change: Absolute change versus the previous close.
            bars: Daily bars, oldest first. Preferred source for history.
            line: Simplified price line, used when no bars are available.
        """
        self.symbol: str = symbol
        self.last: Decimal = to_decimal(last)
        self.change: Decimal = to_decimal(change)
        self.bars: list[Bar] = sorted(bars or [], key=lambda b: b.t)
        self.line: list[LinePoint] = sorted(line or [], key=lambda p: p.t)

    def price_at(self, when: datetime) -> Decimal:
        """Return the close of the latest bar at or before ``when``, or ``last`` if none."""
        when = normalize_datetime(when)
        for bar in reversed(self.bars):
            if bar.t <= when:
                return bar.c
        return self.last

    def __repr__(self):
        return f"Quote(symbol={self.symbol}, last={self.last}, change={self.change}, bars={len(self.bars)}, line={len(self.line)})"


def require_fields(item: Any, fields: tuple[str, ...], kind: str) -> None:
    """Raise ValueError unless ``item`` is a mapping holding every field in ``fields``."""
    if not isinstance(item, Mapping):
        raise ValueError(f"{kind} must be an object: {item!r}")
    for field in fields:
        if field not in item:
            raise ValueError(f"{kind} is missing '{field}': {dict(item)}")


def _bar_from_dict(item: Any) -> Bar:
    require_fields(item, ("t", "c"), "Bar")
    return Bar(item["t"], item["c"])


def _line_point_from_dict(item: Any) -> LinePoint:
    require_fields(item, ("t", "v"), "Line point")
    return LinePoint(item["t"], item["v"])


def quote_from_dict(data: Mapping[str, Any]) -> Quote:
    """
    Build a Quote from its JSON representation.

    Expected structure:
        {
            "symbol": "AAPL",
            "last": 190.5,
            "change": -1.2,
            "bars": [{"t": "2025-01-02", "c": 185.6}, ...],
            "line": [{"t": 1735776000000, "v": 185.6}, ...]
        }
    """
    require_fields(data, ("symbol",), "Quote")

    return Quote(
        symbol=str(data["symbol"]),
        last=data.get("last", 0),
        change=data.get("change", 0),
        bars=[_bar_from_dict(b) for b in data.get("bars") or []],
        line=[_line_point_from_dict(p) for p in data.get("line") or []],
    )


def quote_from_history(symbol: str, history: pd.DataFrame) -> Quote:
    """
    Build a Quote from a yfinance ``Ticker.history`` DataFrame.

    The last close becomes ``last`` and its difference to the previous close
    becomes ``change``.

    Args:
        symbol: Ticker symbol.
        history: DataFrame indexed (or columned) by Date with a Close column.

    Returns:
        A Quote with one bar per row. An empty frame yields a zero quote.
    """
    if history.empty or "Close" not in history.columns:
        return Quote(symbol=symbol, last=0, change=0)

    df = history.reset_index() if "Date" not in history.columns else history
    df = df.dropna(subset=["Close"]).sort_values("Date")

    bars = [
        Bar(pd.Timestamp(row["Date"]).to_pydatetime(), Decimal(str(row["Close"])))
        for _, row in df.iterrows()
    ]
    if not bars:
        return Quote(symbol=symbol, last=0, change=0)

    last = bars[-1].c
    change = last - bars[-2].c if len(bars) > 1 else Decimal("0")
    return Quote(symbol=symbol, last=last, change=change, bars=bars)


class QuoteProvider(ABC):
    """Abstract base class for all quote providers."""

    @abstractmethod
    def get_quote(self, symbol: str) -> Quote:
        raise NotImplementedError("This method should be overridden by subclasses.")

    def get_quotes(self, symbols: Iterable[str]) -> dict[str, Quote]:
        """Fetch quotes for several symbols, keyed by symbol."""
        return {symbol: self.get_quote(symbol) for symbol in symbols}


class YFinanceQuoteProvider(QuoteProvider):
    """Quote provider backed by Yahoo Finance daily history."""

    def __init__(self, period: str = "2y"):
        """Initialize the YFinance quote provider.

        Args:
            period: History window passed to ``Ticker.history`` (e.g. "1y", "2y", "max").
        """
        self.period = period

    def get_quote(self, symbol: str) -> Quote:
        """Fetch daily history for a symbol and turn it into a Quote.

        Failures are reported on stderr and yield an empty quote; retrying is
        left to the caller.
        """
        if verbose:
            print(f"  Fetching {symbol} ({self.period}) …", flush=True)
        try:
            ticker = yf.Ticker(symbol)
            history: pd.DataFrame = ticker.history(period=self.period, auto_adjust=False)  # type: ignore[call-arg]
        except Exception as e:
            # yfinance raises a variety of errors on rate limiting and network issues
            print(f"Warning: yfinance request failed for {symbol}: {e}", file=sys.stderr)
            return Quote(symbol=symbol, last=0, change=0)

        if history.empty:
            print(f"Warning: yfinance returned no data for {symbol} (possible rate limiting)", file=sys.stderr)
            return Quote(symbol=symbol, last=0, change=0)

        return quote_from_history(symbol, history)
