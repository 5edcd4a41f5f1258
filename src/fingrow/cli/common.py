"""Helpers shared by the snapshot-based subcommands."""

import os

import requests
from dotenv import load_dotenv

load_dotenv()

from ..currency import Currency, fetch_fx_usd
from ..pricingdata import YFinanceQuoteProvider
from ..snapshot import Snapshot, load_snapshot


def add_snapshot_arguments(parser):
    """Add the snapshot path, currency and live-refresh options to a subcommand parser."""
    parser.add_argument("filename", help="Path to the JSON snapshot file")
    parser.add_argument(
        "--currency",
        "-c",
        default=None,
        help="Display currency (default: FINGROW_DISPLAY_CURRENCY, then the snapshot's, then USD)",
    )
    parser.add_argument(
        "--live",
        action="store_true",
        help="Refresh quotes from Yahoo Finance and FX rates from the FX endpoint",
    )
    parser.add_argument(
        "--fix-currencies",
        action="store_true",
        help="Correct holding currencies that disagree with the ticker's exchange",
    )


def resolve_display_currency(args, snapshot: Snapshot) -> str:
    """Pick the display currency from the flag, the environment or the snapshot."""
    code = args.currency or os.getenv("FINGROW_DISPLAY_CURRENCY") or snapshot.display_currency or "USD"
    return code.strip().upper()


def is_known_currency(code: str, snapshot: Snapshot) -> bool:
    """A code is usable when it is a Currency member or has a rate in the snapshot."""
    return code in Currency.__members__ or code in snapshot.fx_rates.rates


def prepare_snapshot(args) -> Snapshot | None:
    """Load the snapshot named on the command line and refresh it if ``--live``.

    Errors are printed and reported as None.
    """
    try:
        snapshot = load_snapshot(args.filename, fix_currencies=args.fix_currencies)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return None

    if args.live:
        try:
            snapshot.fx_rates = fetch_fx_usd(os.getenv("FINGROW_FX_URL"))
        except (requests.RequestException, ValueError) as e:
            print(f"Error: could not fetch FX rates: {e}")
            return None
        provider = YFinanceQuoteProvider(period=os.getenv("FINGROW_HISTORY_PERIOD", "2y"))
        snapshot.quotes.update(provider.get_quotes(snapshot.symbols()))

    display_currency = resolve_display_currency(args, snapshot)
    if not is_known_currency(display_currency, snapshot):
        print(f"Error: Unknown currency '{display_currency}'")
        return None
    snapshot.display_currency = display_currency
    return snapshot


def signed(value, suffix: str = "") -> str:
    """Format a number with an explicit sign, green when non-negative, red otherwise."""
    if value >= 0:
        return f"[green]+{value:,.2f}{suffix}[/green]"
    return f"[red]{value:,.2f}{suffix}[/red]"
