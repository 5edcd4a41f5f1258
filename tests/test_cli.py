"""Tests for the fingrow command line."""

import json

import pytest

from fingrow.cli import common
from fingrow.cli.main import main
from fingrow.currency import FxRates
from fingrow.pricingdata import Quote

SNAPSHOT = {
    "display_currency": "USD",
    "fx": {"rates": {"USD": 1, "SGD": 1.25}},
    "portfolios": [
        {
            "id": "main",
            "cash": 500,
            "watchlist": ["MSFT"],
            "holdings": [{"symbol": "AAPL", "lots": [{"side": "buy", "qty": 10, "price": 100, "date": "2025-01-02"}]}],
        }
    ],
    "quotes": [
        {
            "symbol": "AAPL",
            "last": 120,
            "change": 1,
            "bars": [{"t": "2025-01-02", "c": 100}, {"t": "2025-01-03", "c": 110}, {"t": "2025-01-06", "c": 115}],
        }
    ],
}


@pytest.fixture
def snapshot_file(tmp_path, monkeypatch):
    monkeypatch.setenv("COLUMNS", "200")
    monkeypatch.delenv("FINGROW_DISPLAY_CURRENCY", raising=False)
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(SNAPSHOT))
    return str(path)


def test_report(snapshot_file, capsys):
    """Verify the report prints holdings, period changes and totals."""
    assert main(["report", snapshot_file]) == 0
    out = capsys.readouterr().out
    assert "AAPL" in out
    assert "Period Changes" in out
    assert "Total Value: 1,700.00 USD" in out
    assert "1 portfolios • 1 holdings • 1 watched" in out


def test_report_in_other_currency(snapshot_file, capsys):
    """Verify the currency flag converts every amount."""
    assert main(["report", snapshot_file, "-c", "sgd"]) == 0
    assert "Total Value: 2,125.00 SGD" in capsys.readouterr().out


def test_report_currency_from_environment(snapshot_file, capsys, monkeypatch):
    """Verify FINGROW_DISPLAY_CURRENCY is used when no flag is given."""
    monkeypatch.setenv("FINGROW_DISPLAY_CURRENCY", "SGD")
    assert main(["report", snapshot_file]) == 0
    assert "2,125.00 SGD" in capsys.readouterr().out


def test_report_unknown_currency(snapshot_file, capsys):
    """Verify an unknown currency is an error."""
    assert main(["report", snapshot_file, "-c", "XXX"]) == 1
    assert "Error: Unknown currency 'XXX'" in capsys.readouterr().out


def test_report_missing_file(tmp_path, capsys):
    """Verify a missing snapshot is reported with a non-zero exit code."""
    assert main(["report", str(tmp_path / "missing.json")]) == 1
    assert "Error:" in capsys.readouterr().out


def test_report_malformed_snapshot(tmp_path, capsys):
    """Verify a bar without a close is reported as an error with a non-zero exit code."""
    broken = dict(SNAPSHOT, quotes=[{"symbol": "AAPL", "last": 120, "bars": [{"t": "2025-01-01"}]}])
    path = tmp_path / "broken.json"
    path.write_text(json.dumps(broken))
    assert main(["report", str(path)]) == 1
    out = capsys.readouterr().out
    assert "Error:" in out
    assert "missing 'c'" in out


def test_history(snapshot_file, capsys):
    """Verify the history command prints the value series for the window."""
    assert main(["history", snapshot_file, "-r", "all"]) == 0
    out = capsys.readouterr().out
    assert "Holdings Value (ALL, USD)" in out
    assert "2025-01-03" in out
    assert "1,100.00" in out


def test_history_placeholder_when_empty(tmp_path, capsys, monkeypatch):
    """Verify an empty history falls back to the placeholder series."""
    monkeypatch.setenv("COLUMNS", "200")
    path = tmp_path / "empty.json"
    path.write_text(json.dumps({"fx": {"rates": {"USD": 1}}, "portfolios": [{"id": "main", "cash": 10}]}))
    assert main(["history", str(path)]) == 0
    assert "No holdings history" in capsys.readouterr().out


class _FakeProvider:
    def __init__(self, period):
        self.period = period

    def get_quotes(self, symbols):
        return {symbol: Quote(symbol, last=200) for symbol in symbols}


def test_report_live_refresh(snapshot_file, capsys, monkeypatch):
    """Verify --live replaces quotes and FX from the providers."""
    monkeypatch.setattr(common, "fetch_fx_usd", lambda url=None: FxRates({"USD": 1, "SGD": 2}))
    monkeypatch.setattr(common, "YFinanceQuoteProvider", _FakeProvider)
    assert main(["report", snapshot_file, "--live", "-c", "SGD"]) == 0
    assert "Total Value: 5,000.00 SGD" in capsys.readouterr().out


def test_version(capsys):
    """Verify the version command succeeds."""
    assert main(["version"]) == 0
    assert "Version:" in capsys.readouterr().out
