from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Union

import uuid
import warnings

from .currency import CurrencyLike, Number, RatesLike, convert, currency_code, to_decimal
from .dates import TimestampLike, normalize_datetime, parse_timestamp
from .pricingdata import Quote, require_fields
from .tickers import resolve_currency


class TradeSide(Enum):
    """Direction of a lot."""

    BUY = "buy"
    SELL = "sell"


class Lot():
    """A single buy or sell execution."""

    def __init__(self, side: Union[TradeSide, str], qty: Number, price: Number, date: TimestampLike, fee: Number = 0, lot_id: str | None = None):
        """Initialize a Lot.

        Args:
            side: BUY or SELL (enum member or "buy"/"sell").
            qty: Number of units executed.
            price: Unit price in the holding's native currency.
            date: Execution time. Naive datetimes are taken as UTC.
            fee: Total fee paid on the execution.
            lot_id: Optional identifier from the holdings store.
        """
        self.side: TradeSide = side if isinstance(side, TradeSide) else TradeSide(str(side).lower())
        self.qty: Decimal = to_decimal(qty)
        self.price: Decimal = to_decimal(price)
        self.fee: Decimal = to_decimal(fee)
        self.date: datetime = parse_timestamp(date)
        self.lot_id: str | None = lot_id

    @property
    def signed_qty(self) -> Decimal:
        return self.qty if self.side == TradeSide.BUY else -self.qty

    def with_prices(self, price: Decimal, fee: Decimal) -> "Lot":
        """Return a copy of this lot with a different unit price and fee."""
        return Lot(self.side, self.qty, price, self.date, fee=fee, lot_id=self.lot_id)

    def __repr__(self):
        return f"Lot(side={self.side.value}, qty={self.qty}, price={self.price}, fee={self.fee}, date={self.date.isoformat()})"


def sort_lots(lots: Iterable[Lot]) -> list[Lot]:
    """Sort lots chronologically; lots with equal dates keep their insertion order."""
    return sorted(lots, key=lambda lot: lot.date)


def quantity_held(lots: Iterable[Lot], as_of: datetime | None = None) -> Decimal:
    """Return Σ buy qty − Σ sell qty over lots dated at or before ``as_of``.

    The result is not clamped; callers valuing a position must clamp it.
    """
    if as_of is not None:
        as_of = normalize_datetime(as_of)
    total = Decimal("0")
    for lot in lots:
        if as_of is None or lot.date <= as_of:
            total += lot.signed_qty
    return total


class Holding():
    """All lots of one symbol inside a portfolio."""

    def __init__(self, symbol: str, lots: list[Lot] | None = None, currency: CurrencyLike | None = None, name: str | None = None):
        """Initialize a Holding.

        Args:
            symbol: Ticker symbol.
            lots: Buy/sell lots in any order.
            currency: Native trading currency. Inferred from the symbol when None.
            name: Display name of the instrument.
        """
        self.symbol: str = symbol
        self.lots: list[Lot] = list(lots or [])
        self.currency: str | None = currency_code(currency, default="") or None
        self.name: str | None = name

    @property
    def native_currency(self) -> str:
        """The recorded currency, or the one inferred from the symbol."""
        return resolve_currency(self.symbol, self.currency)

    def quantity(self, as_of: datetime | None = None) -> Decimal:
        """Raw derived quantity as of a point in time (may be negative)."""
        return quantity_held(self.lots, as_of)

    def position_quantity(self, as_of: datetime | None = None) -> Decimal:
        """Derived quantity clamped to zero, for valuation."""
        return max(self.quantity(as_of), Decimal("0"))

    def __repr__(self):
        return f"Holding(symbol={self.symbol}, currency={self.native_currency}, lots={len(self.lots)})"


class CashEvent():
    """A deposit (positive) or withdrawal (negative) in the portfolio's base currency."""

    def __init__(self, date: TimestampLike, amount: Number):
        self.date: datetime = parse_timestamp(date)
        self.amount: Decimal = to_decimal(amount)

    def __repr__(self):
        return f"CashEvent(date={self.date.isoformat()}, amount={self.amount})"


class Portfolio():
    """A named set of holdings plus a cash balance in a base currency."""

    def __init__(
        self,
        id: str,
        base_currency: CurrencyLike = "USD",
        holdings: Mapping[str, Holding] | None = None,
        cash: Number = 0,
        cash_events: list[CashEvent] | None = None,
        watchlist: list[str] | None = None,
        tracking_enabled: bool = True,
        name: str | None = None,
    ):
        """Initialize a Portfolio.

        Args:
            id: Identifier of the portfolio in the holdings store.
            base_currency: Currency of the cash balance.
            holdings: Holdings keyed by symbol.
            cash: Current cash balance in ``base_currency``.
            cash_events: History of deposits and withdrawals.
            watchlist: Symbols watched but not necessarily held.
            tracking_enabled: When False the portfolio is left out of every
                aggregate total and series, but its data is kept.
            name: Display name.
        """
        self.id = id
        self.base_currency: str = currency_code(base_currency)
        self.holdings: dict[str, Holding] = dict(holdings or {})
        self.cash: Decimal = to_decimal(cash)
        self.cash_events: list[CashEvent] = list(cash_events or [])
        self.watchlist: list[str] = list(watchlist or [])
        self.tracking_enabled: bool = tracking_enabled
        self.name = name or id

    def add_cash(self, amount: Number, date: datetime | None = None) -> CashEvent:
        """
        Deposit (positive) or withdraw (negative) cash.

        If date is None, the current timezone-aware UTC time is used.

        Args:
            amount: Amount in the portfolio's base currency.
            date: When the movement happened.

        Returns:
            The recorded CashEvent.
        """
        event = CashEvent(date or datetime.now(timezone.utc), amount)
        self.cash_events.append(event)
        self.cash += event.amount
        return event

    def add_lot(self, symbol: str, lot: Lot, currency: CurrencyLike | None = None, name: str | None = None) -> Lot:
        """
        Record a lot, creating the holding when the symbol is new.

        A lot without ``lot_id`` gets a fresh one.

        Args:
            symbol: Ticker symbol.
            lot: The lot to add.
            currency: Native currency for a newly created holding.
            name: Display name for a newly created holding.

        Returns:
            The recorded Lot.
        """
        holding = self.holdings.get(symbol)
        if holding is None:
            holding = Holding(symbol, currency=currency, name=name)
            self.holdings[symbol] = holding
        if lot.lot_id is None:
            lot.lot_id = uuid.uuid4().hex[:10]
        holding.lots.append(lot)
        return lot

    def _find_lot(self, symbol: str, lot_id: str) -> tuple[Holding, int]:
        holding = self.holdings.get(symbol)
        if holding is None:
            raise ValueError(f"No holding {symbol} in portfolio {self.id}")
        for i, lot in enumerate(holding.lots):
            if lot.lot_id == lot_id:
                return holding, i
        raise ValueError(f"No lot {lot_id} for {symbol} in portfolio {self.id}")

    def update_lot(self, symbol: str, lot_id: str, **changes: Any) -> Lot:
        """
        Replace fields of an existing lot.

        Args:
            symbol: Ticker symbol of the holding.
            lot_id: Identifier of the lot.
            **changes: Any of ``side``, ``qty``, ``price``, ``date``, ``fee``.

        Returns:
            The updated Lot.

        Raises:
            ValueError: If the holding, the lot or a field is unknown.
        """
        unknown = set(changes) - {"side", "qty", "price", "date", "fee"}
        if unknown:
            raise ValueError(f"Unknown lot fields: {', '.join(sorted(unknown))}")
        holding, i = self._find_lot(symbol, lot_id)
        old = holding.lots[i]
        fields = {"side": old.side, "qty": old.qty, "price": old.price, "date": old.date, "fee": old.fee}
        fields.update(changes)
        holding.lots[i] = Lot(lot_id=lot_id, **fields)
        return holding.lots[i]

    def remove_lot(self, symbol: str, lot_id: str) -> None:
        """Delete a lot. The holding goes too once it has no lots left."""
        holding, i = self._find_lot(symbol, lot_id)
        del holding.lots[i]
        if not holding.lots:
            del self.holdings[symbol]

    def move_holding(self, symbol: str, to_portfolio: "Portfolio", aggregate: bool = False, date: datetime | None = None) -> Holding | None:
        """
        Move a holding into another portfolio.

        By default every lot is appended to the destination holding. With
        ``aggregate`` the lots are folded into one buy lot of the net quantity
        at the weighted-average cost, dated ``date`` (now when None); nothing is
        added when the net quantity is not positive. Either way the symbol
        leaves this portfolio.

        Args:
            symbol: Ticker symbol to move.
            to_portfolio: Destination portfolio.
            aggregate: Fold the lots into a single buy lot.
            date: Date of the aggregated lot.

        Returns:
            The destination holding, or None when nothing was added to it.

        Raises:
            ValueError: If the symbol is not held here or the destination is this portfolio.
        """
        if to_portfolio is self or to_portfolio.id == self.id:
            raise ValueError(f"Cannot move {symbol} within portfolio {self.id}")
        source = self.holdings.get(symbol)
        if source is None:
            raise ValueError(f"No holding {symbol} in portfolio {self.id}")

        if aggregate:
            pnl = compute_pnl(source.lots, 0)
            lots = [Lot(TradeSide.BUY, pnl.qty, pnl.avg_cost, date or datetime.now(timezone.utc))] if pnl.qty > 0 else []
        else:
            lots = list(source.lots)
        del self.holdings[symbol]

        if not lots:
            return None
        for lot in lots:
            to_portfolio.add_lot(symbol, lot, currency=source.currency, name=source.name)
        return to_portfolio.holdings[symbol]

    def __repr__(self):
        return f"Portfolio(id={self.id}, base_currency={self.base_currency}, holdings={len(self.holdings)}, tracking_enabled={self.tracking_enabled})"

PortfoliosLike = Union[Mapping[str, Portfolio], Iterable[Portfolio]]


def tracked_portfolios(portfolios: PortfoliosLike) -> list[Portfolio]:
    """Return the portfolios that take part in totals (``tracking_enabled``)."""
    items = portfolios.values() if isinstance(portfolios, Mapping) else portfolios
    return [p for p in items if p is not None and p.tracking_enabled]


def merge_tracked_holdings(portfolios: PortfoliosLike) -> dict[str, Holding]:
    """
    Merge same-symbol holdings across all tracked portfolios.

    The first recorded currency for a symbol wins; lots are concatenated in
    portfolio order.

    Returns:
        A new mapping of symbol to Holding. The input holdings are not modified.
    """
    merged: dict[str, Holding] = {}
    for portfolio in tracked_portfolios(portfolios):
        for holding in portfolio.holdings.values():
            existing = merged.get(holding.symbol)
            if existing is None:
                merged[holding.symbol] = Holding(holding.symbol, list(holding.lots), holding.currency, holding.name)
                continue
            existing.lots.extend(holding.lots)
            if existing.currency is None:
                existing.currency = holding.currency
    return merged


@dataclass
class PnLResult:
    """Weighted-average cost basis result for one holding, in one currency."""

    qty: Decimal
    avg_cost: Decimal
    realized: Decimal
    unrealized: Decimal

    @property
    def cost_basis(self) -> Decimal:
        """Cost of the quantity still held."""
        return self.qty * self.avg_cost

    @property
    def total(self) -> Decimal:
        return self.realized + self.unrealized


def compute_pnl(lots: Iterable[Lot], current_price: Number) -> PnLResult:
    """
    Compute weighted-average cost basis P&L by walking lots chronologically.

    Buys fold their fee into the average cost. Sells realize
    ``qty * (price - avg_cost) - fee`` and leave the average cost unchanged.
    A sell larger than the held quantity is booked in full but the quantity
    is clamped at zero.

    Args:
        lots: Lots with price and fee already in the destination currency.
        current_price: Live unit price in the destination currency.

    Returns:
        A PnLResult. ``avg_cost`` is 0 when nothing is held.
    """
    price = to_decimal(current_price)
    qty = Decimal("0")
    avg_cost = Decimal("0")
    realized = Decimal("0")

    for lot in sort_lots(lots):
        if lot.side == TradeSide.BUY:
            new_qty = qty + lot.qty
            if new_qty > 0:
                avg_cost = (qty * avg_cost + lot.qty * lot.price + lot.fee) / new_qty
            qty = new_qty
        else:
            realized += lot.qty * (lot.price - avg_cost) - lot.fee
            qty -= lot.qty
            if qty < 0:
                qty = Decimal("0")

    if qty <= 0:
        return PnLResult(qty=Decimal("0"), avg_cost=Decimal("0"), realized=realized, unrealized=Decimal("0"))

    unrealized = qty * (price - avg_cost)
    return PnLResult(qty=qty, avg_cost=avg_cost, realized=realized, unrealized=unrealized)


def convert_lots(lots: Iterable[Lot], rates: RatesLike, from_currency: CurrencyLike, to_currency: CurrencyLike) -> list[Lot]:
    """Convert each lot's price and fee into another currency."""
    return [
        lot.with_prices(
            convert(rates, lot.price, from_currency, to_currency),
            convert(rates, lot.fee, from_currency, to_currency),
        )
        for lot in lots
    ]


def holding_pnl(
    holding: Holding,
    quote: Quote | None,
    rates: RatesLike,
    display_currency: CurrencyLike,
    as_of: datetime | None = None,
    price: Number | None = None,
) -> PnLResult:
    """
    P&L of one holding in the display currency.

    Args:
        holding: The holding to evaluate.
        quote: Its quote; a missing quote prices the holding at 0.
        rates: FX snapshot.
        display_currency: Currency of the result.
        as_of: Only lots dated at or before this instant are used. None uses all.
        price: Native unit price to mark at. Defaults to ``quote.last``.

    Returns:
        The PnLResult in ``display_currency``.
    """
    native = holding.native_currency
    if as_of is not None:
        as_of = normalize_datetime(as_of)
    lots = [lot for lot in holding.lots if as_of is None or lot.date <= as_of]
    mark = to_decimal(price) if price is not None else (quote.last if quote is not None else Decimal("0"))
    return compute_pnl(
        convert_lots(lots, rates, native, display_currency),
        convert(rates, mark, native, display_currency),
    )


def _lot_from_dict(item: Mapping[str, Any]) -> Lot:
    require_fields(item, ("side", "qty", "price", "date"), "Lot")
    try:
        side = TradeSide(str(item["side"]).lower())
    except ValueError:
        raise ValueError(f"Unknown lot side: {item['side']!r}") from None
    return Lot(
        side=side,
        qty=item["qty"],
        price=item["price"],
        date=item["date"],
        fee=item.get("fee", item.get("fees", 0)) or 0,
        lot_id=item.get("id"),
    )


def _cash_event_from_dict(item: Mapping[str, Any]) -> CashEvent:
    require_fields(item, ("date",), "Cash event")
    return CashEvent(item["date"], item.get("amount", 0))


def portfolio_from_dict(data: Mapping[str, Any]) -> Portfolio:
    """
    Build a Portfolio from its JSON representation.

    Expected structure:
        {
            "id": "main",
            "name": "Main",
            "base_currency": "SGD",
            "cash": 1500,
            "cash_events": [{"date": "2025-01-02", "amount": 1500}],
            "watchlist": ["MSFT"],
            "tracking_enabled": true,
            "holdings": [
                {
                    "symbol": "AAPL",
                    "currency": "USD",
                    "lots": [{"side": "buy", "qty": 10, "price": 150.5, "fee": 1, "date": "2025-01-15T10:30:00Z"}]
                }
            ]
        }

    ``holdings`` may also be a mapping of symbol to holding. camelCase keys
    (``baseCurrency``, ``cashEvents``, ``trackingEnabled``) are accepted too.
    """
    require_fields(data, ("id",), "Portfolio")

    raw_holdings = data.get("holdings") or []
    if isinstance(raw_holdings, Mapping):
        for symbol, h in raw_holdings.items():
            require_fields(h, (), f"Holding {symbol}")
        raw_holdings = [{"symbol": symbol, **h} for symbol, h in raw_holdings.items()]
    if not isinstance(raw_holdings, list):
        raise ValueError(f"'holdings' of portfolio {data['id']} must be a list or an object keyed by symbol")

    holdings: dict[str, Holding] = {}
    for item in raw_holdings:
        require_fields(item, ("symbol",), f"Holding in portfolio {data['id']}")
        symbol = str(item["symbol"])
        holdings[symbol] = Holding(
            symbol=symbol,
            lots=[_lot_from_dict(lot) for lot in item.get("lots") or []],
            currency=item.get("currency"),
            name=item.get("name"),
        )

    tracking = data.get("tracking_enabled", data.get("trackingEnabled", True))
    return Portfolio(
        id=str(data["id"]),
        base_currency=data.get("base_currency", data.get("baseCurrency", "USD")),
        holdings=holdings,
        cash=data.get("cash", 0) or 0,
        cash_events=[_cash_event_from_dict(ev) for ev in data.get("cash_events", data.get("cashEvents")) or []],
        watchlist=[str(s) for s in data.get("watchlist") or []],
        tracking_enabled=tracking is not False,
        name=data.get("name"),
    )


def warn_on_oversold_holdings(portfolios: Iterable[Portfolio], source: str) -> None:
    """Emit one warning listing holdings whose sells ever exceed the quantity held."""
    oversold: list[str] = []
    for portfolio in portfolios:
        for holding in portfolio.holdings.values():
            running = Decimal("0")
            for lot in sort_lots(holding.lots):
                running += lot.signed_qty
                if running < 0:
                    oversold.append(f"{portfolio.id}/{holding.symbol}")
                    break

    if oversold:
        warnings.warn(
            f"Some holdings in '{source}' sell more than they hold: {', '.join(oversold)}. "
            f"Quantities are clamped at zero for valuation.",
            UserWarning
        )
