#!/usr/bin/env python3
"""History subcommand - Display holdings value over time."""

from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from .common import add_snapshot_arguments, prepare_snapshot, signed
from ..periods import TimeRange
from ..series import build_value_series, placeholder_series, slice_series


def register_subcommand(subparsers):
    """Register the history subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "history",
        help="Display holdings value over time",
        description="Display the daily holdings value series (cash excluded) for a time window.",
    )
    add_snapshot_arguments(parser)
    parser.add_argument(
        "--range",
        "-r",
        default=TimeRange.ALL.value,
        choices=[r.value for r in TimeRange],
        type=str.upper,
        help="Time window to display (default: ALL)",
    )
    parser.set_defaults(func=run)


def run(args):
    """Display the holdings value series for the chosen window.

    Args:
        args: Parsed argparse namespace with filename, currency, live,
            fix_currencies and range attributes.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    snapshot = prepare_snapshot(args)
    if snapshot is None:
        return 1

    console = Console()
    cur = snapshot.display_currency
    time_range = TimeRange(args.range)

    series = build_value_series(snapshot.portfolios, snapshot.quotes, snapshot.fx_rates, cur)
    visible = slice_series(series, time_range)
    if not visible:
        console.print("[yellow]No holdings history for this window.[/yellow]")
        visible = placeholder_series()

    table = Table(title=f"Holdings Value ({time_range.value}, {cur})")
    table.add_column("Date", style="cyan", justify="left")
    table.add_column("Value", style="green", justify="right")
    for point in visible:
        table.add_row(point.t.strftime("%Y-%m-%d"), f"{point.v:,.2f}")
    console.print(table)

    first, last = visible[0].v, visible[-1].v
    change_pct = (last - first) / first * 100 if first > 0 else 0
    console.print(
        Panel(
            f"Start: {first:,.2f} {cur}    End: {last:,.2f} {cur}\n"
            f"Change: {signed(last - first)} ({signed(change_pct, '%')})",
            title="Window",
        )
    )

    return 0
