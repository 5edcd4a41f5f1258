"""Cross-portfolio totals, mover ranking and allocation weights."""

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal

from .currency import CurrencyLike, RatesLike, convert
from .portfolio import PortfoliosLike, holding_pnl, merge_tracked_holdings, tracked_portfolios
from .pricingdata import Quote

CASH_SYMBOL = "CASH"

# Unrealized amounts below this are noise when there is no cost basis to rank against.
MIN_UNREALIZED = Decimal("0.01")


@dataclass
class Mover:
    symbol: str
    unrealized: Decimal
    percent: Decimal


@dataclass
class Allocation:
    symbol: str
    value: Decimal
    weight: Decimal


@dataclass
class PortfolioTotals:
    holdings_value: Decimal
    cash: Decimal
    total: Decimal
    portfolio_count: int
    holdings_count: int
    watchlist_count: int


def holdings_value(
    portfolios: PortfoliosLike,
    quotes: Mapping[str, Quote],
    rates: RatesLike,
    display_currency: CurrencyLike,
) -> Decimal:
    """Live value of every position in tracked portfolios, in the display currency."""
    total = Decimal("0")
    for portfolio in tracked_portfolios(portfolios):
        for holding in portfolio.holdings.values():
            qty = holding.position_quantity()
            quote = quotes.get(holding.symbol)
            if qty <= 0 or quote is None:
                continue
            total += qty * convert(rates, quote.last, holding.native_currency, display_currency)
    return total


def total_cash(portfolios: PortfoliosLike, rates: RatesLike, display_currency: CurrencyLike) -> Decimal:
    """Cash of every tracked portfolio, each converted from its own base currency."""
    return sum(
        (convert(rates, p.cash, p.base_currency, display_currency) for p in tracked_portfolios(portfolios)),
        Decimal("0"),
    )


def aggregate_totals(
    portfolios: PortfoliosLike,
    quotes: Mapping[str, Quote],
    rates: RatesLike,
    display_currency: CurrencyLike,
) -> PortfolioTotals:
    """
    Combine holdings value and cash across tracked portfolios.

    Args:
        portfolios: Portfolios (mapping by id or iterable).
        quotes: Quotes keyed by symbol.
        rates: FX snapshot.
        display_currency: Currency of every amount.

    Returns:
        PortfolioTotals. Counts only cover tracked portfolios; holdings are
        counted once per symbol.
    """
    tracked = tracked_portfolios(portfolios)
    value = holdings_value(tracked, quotes, rates, display_currency)
    cash = total_cash(tracked, rates, display_currency)
    return PortfolioTotals(
        holdings_value=value,
        cash=cash,
        total=value + cash,
        portfolio_count=len(tracked),
        holdings_count=len(merge_tracked_holdings(tracked)),
        watchlist_count=sum(len(p.watchlist) for p in tracked),
    )


def rank_movers(
    portfolios: PortfoliosLike,
    quotes: Mapping[str, Quote],
    rates: RatesLike,
    display_currency: CurrencyLike,
) -> list[Mover]:
    """
    Rank merged holdings by unrealized P&L percent, best first.

    A holding is ranked when it has a positive live price and a non-zero
    quantity, and either a positive cost basis or an unrealized amount of at
    least 0.01.
    """
    movers: list[Mover] = []
    for symbol, holding in merge_tracked_holdings(portfolios).items():
        quote = quotes.get(symbol)
        if not holding.lots or quote is None:
            continue
        if not quote.last.is_finite() or quote.last <= 0:
            continue
        pnl = holding_pnl(holding, quote, rates, display_currency)
        if pnl.qty == 0:
            continue
        cost = pnl.cost_basis
        if cost <= 0 and abs(pnl.unrealized) < MIN_UNREALIZED:
            continue
        percent = pnl.unrealized / cost * 100 if cost > 0 else Decimal("0")
        movers.append(Mover(symbol=symbol, unrealized=pnl.unrealized, percent=percent))

    movers.sort(key=lambda m: m.percent, reverse=True)
    return movers


def top_allocations(
    portfolios: PortfoliosLike,
    quotes: Mapping[str, Quote],
    rates: RatesLike,
    display_currency: CurrencyLike,
    limit: int = 3,
) -> list[Allocation]:
    """
    Largest positions as a share of holdings plus cash.

    Cash is listed as its own ``CASH`` entry when non-zero. Weights are
    fractions (0..1), largest first.
    """
    tracked = tracked_portfolios(portfolios)
    entries: list[tuple[str, Decimal]] = []
    for symbol, holding in merge_tracked_holdings(tracked).items():
        qty = holding.position_quantity()
        quote = quotes.get(symbol)
        if qty <= 0 or quote is None:
            continue
        value = qty * convert(rates, quote.last, holding.native_currency, display_currency)
        if value > 0:
            entries.append((symbol, value))

    cash = total_cash(tracked, rates, display_currency)
    if cash != 0:
        entries.append((CASH_SYMBOL, cash))

    total = sum((value for _, value in entries), Decimal("0"))
    if total <= 0:
        return []

    entries.sort(key=lambda e: e[1], reverse=True)
    return [Allocation(symbol=s, value=v, weight=v / total) for s, v in entries[:limit]]
