import json
import warnings
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .currency import FxRates, currency_code
from .portfolio import Portfolio, portfolio_from_dict, warn_on_oversold_holdings
from .pricingdata import Quote, quote_from_dict, require_fields
from .tickers import fix_holdings_currency


class Snapshot():
    """Everything the engine needs for one valuation: holdings, quotes, FX and display currency."""

    def __init__(self, portfolios: dict[str, Portfolio], quotes: dict[str, Quote] | None = None, fx_rates: FxRates | None = None, display_currency: str = "USD"):
        self.portfolios = portfolios
        self.quotes: dict[str, Quote] = dict(quotes or {})
        self.fx_rates: FxRates = fx_rates or FxRates({"USD": 1})
        self.display_currency: str = currency_code(display_currency)

    def symbols(self) -> list[str]:
        """Every held or watched symbol across all portfolios, sorted."""
        found: set[str] = set()
        for portfolio in self.portfolios.values():
            found.update(portfolio.holdings)
            found.update(portfolio.watchlist)
        return sorted(found)

    def __repr__(self):
        return f"Snapshot(portfolios={len(self.portfolios)}, quotes={len(self.quotes)}, display_currency={self.display_currency})"


def snapshot_from_dict(data: Mapping[str, Any], source: str = "<memory>", fix_currencies: bool = False) -> Snapshot:
    """
    Build a Snapshot from its JSON representation.

    Expected structure:
        {
            "display_currency": "SGD",
            "fx": {"base": "USD", "timestamp": "2025-06-01T00:00:00Z", "rates": {"USD": 1, "SGD": 1.35}},
            "portfolios": [ {... see portfolio_from_dict ...} ],
            "quotes": [ {... see quote_from_dict ...} ]
        }

    ``portfolios`` and ``quotes`` may also be mappings keyed by id / symbol.

    Args:
        data: Decoded JSON document.
        source: Name used in warnings.
        fix_currencies: Rewrite holding currencies that disagree with the
            symbol's inferred trading currency.

    Returns:
        The Snapshot.
    """
    if not isinstance(data, Mapping):
        raise ValueError("Snapshot must be a JSON object")

    raw_portfolios = data.get("portfolios") or []
    if isinstance(raw_portfolios, Mapping):
        for pid, p in raw_portfolios.items():
            require_fields(p, (), f"Portfolio {pid}")
        raw_portfolios = [{"id": pid, **p} for pid, p in raw_portfolios.items()]
    if not isinstance(raw_portfolios, list):
        raise ValueError("'portfolios' must be a list or an object keyed by id")

    portfolios: dict[str, Portfolio] = {}
    for item in raw_portfolios:
        portfolio = portfolio_from_dict(item)
        portfolios[portfolio.id] = portfolio

    raw_quotes = data.get("quotes") or []
    if isinstance(raw_quotes, Mapping):
        for symbol, q in raw_quotes.items():
            require_fields(q, (), f"Quote {symbol}")
        raw_quotes = [{"symbol": symbol, **q} for symbol, q in raw_quotes.items()]
    if not isinstance(raw_quotes, list):
        raise ValueError("'quotes' must be a list or an object keyed by symbol")
    quotes = {quote.symbol: quote for quote in (quote_from_dict(q) for q in raw_quotes)}

    fx = data.get("fx", data.get("fxRates"))
    fx_rates = FxRates.from_dict(fx) if fx else None
    if fx_rates is None:
        warnings.warn(
            f"No FX rates in '{source}'. Amounts in other currencies will not be converted.",
            UserWarning
        )

    if fix_currencies:
        fix_holdings_currency(portfolios)
    warn_on_oversold_holdings(portfolios.values(), source)

    return Snapshot(
        portfolios=portfolios,
        quotes=quotes,
        fx_rates=fx_rates,
        display_currency=data.get("display_currency", data.get("displayCurrency", "USD")),
    )


def load_snapshot(file_path: str | Path, fix_currencies: bool = False) -> Snapshot:
    """
    Load a snapshot from a JSON file.

    Args:
        file_path: Path to the JSON file.
        fix_currencies: See :func:`snapshot_from_dict`.

    Returns:
        The Snapshot.
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Snapshot file not found: {file_path}")

    with open(path, "r") as f:
        data = json.load(f)

    return snapshot_from_dict(data, source=str(file_path), fix_currencies=fix_currencies)
