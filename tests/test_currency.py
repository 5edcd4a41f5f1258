"""Tests for USD-pivot currency conversion, rate snapshots and the FX fetcher."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from fingrow import currency
from fingrow.currency import Currency, FxRates, convert, fetch_fx_usd, to_decimal

RATES = {"USD": 1, "SGD": 1.35, "EUR": 0.9, "JPY": 150}


def test_identity_conversion():
    """Verify converting a currency to itself returns the amount unchanged."""
    for code in ["USD", "SGD", "EUR", "XYZ"]:
        assert convert(RATES, Decimal("123.456"), code, code) == Decimal("123.456")
    assert convert(None, 42, Currency.GBP, "gbp") == Decimal("42")


def test_usd_to_sgd_and_back():
    """Verify USD→SGD uses the SGD rate and converting back restores the amount."""
    sgd = convert(RATES, 100, "USD", "SGD")
    assert sgd == Decimal("135")
    assert convert(RATES, sgd, "SGD", "USD") == Decimal("100")


def test_cross_rate_pivots_through_usd():
    """Verify EUR→JPY divides by the EUR rate then multiplies by the JPY rate."""
    result = convert(RATES, 90, "EUR", "JPY")
    assert result == Decimal("15000")


def test_round_trip_between_non_usd_currencies():
    """Verify SGD→EUR→SGD stays within a tight tolerance."""
    there = convert(RATES, 250, "SGD", "EUR")
    back = convert(RATES, there, "EUR", "SGD")
    assert abs(back - Decimal("250")) < Decimal("1e-20")


def test_missing_target_rate_returns_usd_amount():
    """Verify a missing destination rate leaves the amount in USD instead of failing."""
    assert convert(RATES, 270, "SGD", "CHF") == Decimal("200")


def test_missing_source_rate_is_treated_as_usd():
    """Verify a missing source rate skips the first leg."""
    assert convert(RATES, 10, "CHF", "SGD") == Decimal("13.5")


def test_zero_rate_is_treated_as_missing():
    """Verify a zero rate never causes a division error."""
    rates = {"USD": 1, "SGD": 0}
    assert convert(rates, 50, "SGD", "USD") == Decimal("50")
    assert convert(rates, 50, "USD", "SGD") == Decimal("50")


def test_non_finite_amount_converts_to_zero():
    """Verify NaN and infinite amounts come out as 0."""
    assert convert(RATES, float("nan"), "USD", "SGD") == Decimal("0")
    assert convert(RATES, Decimal("Infinity"), "USD", "SGD") == Decimal("0")


def test_to_decimal_handles_garbage():
    """Verify to_decimal maps None and unparsable strings to 0 and keeps float text."""
    assert to_decimal(None) == Decimal("0")
    assert to_decimal("abc") == Decimal("0")
    assert to_decimal(1.35) == Decimal("1.35")


def test_fx_rates_from_dict():
    """Verify FxRates parses the rate table and its timestamp."""
    fx = FxRates.from_dict({"base": "USD", "timestamp": "2025-06-01T00:00:00Z", "rates": {"sgd": 1.35}})
    assert fx.rate_for("SGD") == Decimal("1.35")
    assert fx.rate_for("EUR") is None
    assert fx.timestamp == datetime(2025, 6, 1, tzinfo=timezone.utc)


def test_fx_rates_from_dict_requires_rates():
    """Verify a document without a rates mapping is rejected."""
    with pytest.raises(ValueError):
        FxRates.from_dict({"base": "USD"})


class _FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        pass

    def json(self):
        return self.payload


def test_fetch_fx_usd(monkeypatch):
    """Verify the FX fetcher turns an exchangerate.host payload into FxRates."""
    calls = []

    def fake_get(url, timeout):
        calls.append(url)
        return _FakeResponse({"base": "USD", "rates": {"USD": 1, "SGD": 1.34}})

    monkeypatch.setattr(currency.requests, "get", fake_get)
    fx = fetch_fx_usd("https://fx.example/latest")
    assert calls == ["https://fx.example/latest"]
    assert fx.rate_for("SGD") == Decimal("1.34")


def test_fetch_fx_usd_rejects_payload_without_rates(monkeypatch):
    """Verify an unexpected payload raises ValueError."""
    monkeypatch.setattr(currency.requests, "get", lambda url, timeout: _FakeResponse({"error": "quota"}))
    with pytest.raises(ValueError):
        fetch_fx_usd()
