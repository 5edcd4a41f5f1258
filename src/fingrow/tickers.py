"""Native trading currency of a ticker symbol.

Symbols without an explicitly recorded currency are mapped through an ordered
rule table; the first matching rule wins and anything unmatched trades in USD.
"""

import warnings
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .currency import Currency, CurrencyLike, currency_code

if TYPE_CHECKING:
    from .portfolio import Portfolio


class MatchKind(Enum):
    """How a rule pattern is compared against the upper-cased symbol."""

    CONTAINS = "contains"
    SUFFIX = "suffix"


@dataclass(frozen=True)
class CurrencyRule:
    kind: MatchKind
    pattern: str
    currency: Currency

    def matches(self, symbol: str) -> bool:
        if self.kind == MatchKind.CONTAINS:
            return self.pattern in symbol
        return symbol.endswith(self.pattern)


# Order matters: "-USD" crypto pairs and anything quoting USD win before the
# exchange suffixes, and ".T" is checked before ".TO".
CURRENCY_RULES: tuple[CurrencyRule, ...] = (
    CurrencyRule(MatchKind.CONTAINS, "-USD", Currency.USD),
    CurrencyRule(MatchKind.CONTAINS, "USD", Currency.USD),
    CurrencyRule(MatchKind.SUFFIX, ".L", Currency.GBP),
    CurrencyRule(MatchKind.SUFFIX, ".T", Currency.JPY),
    CurrencyRule(MatchKind.SUFFIX, ".TO", Currency.CAD),
    CurrencyRule(MatchKind.SUFFIX, ".AX", Currency.AUD),
    CurrencyRule(MatchKind.SUFFIX, ".HK", Currency.HKD),
    CurrencyRule(MatchKind.SUFFIX, ".PA", Currency.EUR),
    CurrencyRule(MatchKind.SUFFIX, ".DE", Currency.EUR),
    CurrencyRule(MatchKind.SUFFIX, ".SW", Currency.CHF),
)

DEFAULT_CURRENCY = Currency.USD


def infer_currency(symbol: str) -> Currency:
    """
    Infer the native trading currency of a ticker symbol.

    Args:
        symbol: Ticker symbol, e.g. "VOD.L" or "BTC-USD". Case-insensitive.

    Returns:
        The Currency of the first matching rule, USD when nothing matches.
    """
    normalized = (symbol or "").strip().upper()
    for rule in CURRENCY_RULES:
        if rule.matches(normalized):
            return rule.currency
    return DEFAULT_CURRENCY


def resolve_currency(symbol: str, explicit: CurrencyLike | None = None) -> str:
    """Return the explicit currency code if recorded, otherwise the inferred one."""
    code = currency_code(explicit, default="")
    if code:
        return code
    return infer_currency(symbol).value


def fix_holdings_currency(portfolios: "Mapping[str, Portfolio] | Iterable[Portfolio]") -> int:
    """
    Rewrite stored holding currencies that disagree with the symbol's native currency.

    Older snapshots recorded the portfolio's base currency on every holding;
    this realigns each holding with the currency its ticker actually trades in.

    Args:
        portfolios: Portfolios to repair in place (a mapping by id or an iterable).

    Returns:
        The number of holdings whose currency was changed.
    """
    items = portfolios.values() if isinstance(portfolios, Mapping) else portfolios

    fixed: list[str] = []
    for portfolio in items:
        for holding in portfolio.holdings.values():
            detected = infer_currency(holding.symbol).value
            if holding.currency != detected:
                fixed.append(f"{holding.symbol}: {holding.currency} -> {detected}")
                holding.currency = detected

    if fixed:
        warnings.warn(
            f"Corrected the currency of {len(fixed)} holding(s): {', '.join(fixed)}",
            UserWarning
        )
    return len(fixed)
