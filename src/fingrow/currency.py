from enum import Enum
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from datetime import datetime, timezone
from typing import Any, Union

import requests

from .dates import parse_timestamp

DEFAULT_FX_URL = "https://api.exchangerate.host/latest?base=USD"

class Currency(Enum):
    """Currencies the ticker rules and portfolios commonly use."""

    USD = "USD"
    CAD = "CAD"
    EUR = "EUR"
    TWD = "TWD"
    SGD = "SGD"
    AUD = "AUD"
    JPY = "JPY"
    KRW = "KRW"
    GBP = "GBP"
    BRL = "BRL"
    CNY = "CNY"
    HKD = "HKD"
    MXN = "MXN"
    ZAR = "ZAR"
    CHF = "CHF"
    THB = "THB"

CurrencyLike = Union[Currency, str]
Number = Union[Decimal, int, float, str]


def currency_code(currency: CurrencyLike | None, default: str = "USD") -> str:
    """Return the upper-cased ISO code for a Currency member or code string."""
    if currency is None:
        return default
    if isinstance(currency, Currency):
        return currency.value
    code = str(currency).strip().upper()
    return code or default


def to_decimal(value: Number | None) -> Decimal:
    """Convert a numeric input to Decimal, mapping None and garbage to 0.

    Floats go through ``str`` so that 1.35 becomes Decimal("1.35") rather than
    its binary expansion.
    """
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")


class FxRates:
    """A point-in-time USD-pivot rate table.

    ``rates[CCY]`` is the number of units of CCY bought by 1 USD.
    """

    def __init__(self, rates: Mapping[str, Number], timestamp: datetime | None = None, base: str = "USD"):
        """Initialize an FX snapshot.

        Args:
            rates: Mapping of currency code to units-per-USD.
            timestamp: When the snapshot was taken. Defaults to now (UTC).
            base: Pivot currency; only "USD" tables are produced by providers.
        """
        self.base = currency_code(base)
        self.timestamp = timestamp or datetime.now(timezone.utc)
        self.rates: dict[str, Decimal] = {currency_code(k): to_decimal(v) for k, v in rates.items()}

    def rate_for(self, currency: CurrencyLike) -> Decimal | None:
        """Return the usable rate for a currency, or None if missing, zero or non-finite."""
        rate = self.rates.get(currency_code(currency))
        if rate is None or not rate.is_finite() or rate == 0:
            return None
        return rate

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FxRates":
        """Build a snapshot from ``{"base": "USD", "timestamp": ..., "rates": {...}}``."""
        if "rates" not in data or not isinstance(data["rates"], Mapping):
            raise ValueError("FX data must contain a 'rates' mapping")
        timestamp = data.get("timestamp") or data.get("ts")
        return cls(
            rates=data["rates"],
            timestamp=parse_timestamp(timestamp) if timestamp is not None else None,
            base=data.get("base", "USD"),
        )

    def __repr__(self):
        return f"FxRates(base={self.base}, timestamp={self.timestamp.isoformat()}, currencies={len(self.rates)})"

RatesLike = Union[FxRates, Mapping[str, Number], None]


def _as_fx_rates(rates: RatesLike) -> FxRates:
    if isinstance(rates, FxRates):
        return rates
    return FxRates(rates or {})


def convert(rates: RatesLike, amount: Number | None, from_currency: CurrencyLike | None, to_currency: CurrencyLike | None) -> Decimal:
    """
    Convert an amount between two currencies by pivoting through USD.

    Missing or zero rates never raise: the leg that lacks a rate is skipped,
    so the result degrades towards the unconverted amount instead of blocking
    valuation. Non-finite amounts convert to 0.

    Args:
        rates: The USD-pivot rate table (FxRates, a plain mapping, or None).
        amount: The amount in ``from_currency``.
        from_currency: Source currency.
        to_currency: Destination currency.

    Returns:
        The converted amount as a Decimal.
    """
    value = to_decimal(amount)
    if not value.is_finite():
        return Decimal("0")

    source = currency_code(from_currency)
    target = currency_code(to_currency)
    if source == target:
        return value

    table = _as_fx_rates(rates)

    amount_usd = value
    if source != "USD":
        from_rate = table.rate_for(source)
        if from_rate is not None:
            amount_usd = value / from_rate

    if target == "USD":
        return amount_usd

    to_rate = table.rate_for(target)
    if to_rate is None:
        return amount_usd
    return amount_usd * to_rate


def fetch_fx_usd(url: str | None = None, timeout: float = 10) -> FxRates:
    """Fetch the latest USD-based rate table.

    The endpoint must answer with a JSON document holding a ``rates`` mapping
    (exchangerate.host format). No retries are attempted; HTTP and decoding
    errors propagate to the caller.

    Args:
        url: Endpoint to query. Defaults to exchangerate.host.
        timeout: Request timeout in seconds.

    Returns:
        The fetched FxRates snapshot, timestamped now.
    """
    response = requests.get(url or DEFAULT_FX_URL, timeout=timeout)
    response.raise_for_status()
    payload = response.json()
    rates = payload.get("rates") if isinstance(payload, dict) else None
    if not isinstance(rates, dict):
        raise ValueError("FX response did not contain a 'rates' mapping")
    return FxRates(rates=rates, timestamp=datetime.now(timezone.utc), base="USD")
