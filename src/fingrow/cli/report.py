#!/usr/bin/env python3
"""Report subcommand - Display valuation, P&L and period changes."""

from datetime import datetime, timezone

from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from .common import add_snapshot_arguments, prepare_snapshot, signed
from ..aggregate import aggregate_totals, rank_movers, top_allocations
from ..currency import convert
from ..periods import day_change_summary, all_range_changes
from ..portfolio import holding_pnl, merge_tracked_holdings


def register_subcommand(subparsers):
    """Register the report subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "report",
        help="Display holdings, P&L and period changes",
        description="Display totals, per-holding P&L, period changes, movers and allocations from a JSON snapshot.",
    )
    add_snapshot_arguments(parser)
    parser.set_defaults(func=run)


def run(args):
    """Display the valuation report for a snapshot.

    Args:
        args: Parsed argparse namespace with filename, currency, live and
            fix_currencies attributes.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    snapshot = prepare_snapshot(args)
    if snapshot is None:
        return 1

    console = Console()
    now = datetime.now(timezone.utc)
    cur = snapshot.display_currency
    portfolios = snapshot.portfolios
    quotes = snapshot.quotes
    rates = snapshot.fx_rates

    totals = aggregate_totals(portfolios, quotes, rates, cur)

    holdings_table = Table(title=f"Holdings on {now.strftime('%Y-%m-%d %H:%M %Z')} ({cur})")
    holdings_table.add_column("Symbol", style="cyan", justify="left")
    holdings_table.add_column("Quantity", style="magenta", justify="right")
    holdings_table.add_column("Avg Cost", style="yellow", justify="right")
    holdings_table.add_column("Last", justify="right")
    holdings_table.add_column("Value", style="green", justify="right")
    holdings_table.add_column("Realized", justify="right")
    holdings_table.add_column("Unrealized", justify="right")

    for symbol, holding in sorted(merge_tracked_holdings(portfolios).items()):
        quote = quotes.get(symbol)
        pnl = holding_pnl(holding, quote, rates, cur)
        last = convert(rates, quote.last, holding.native_currency, cur) if quote is not None else None
        holdings_table.add_row(
            symbol,
            f"{pnl.qty.normalize():,f}",
            f"{pnl.avg_cost:,.2f}",
            f"{last:,.2f}" if last is not None else "N/A",
            f"{pnl.qty * (last or 0):,.2f}",
            signed(pnl.realized),
            signed(pnl.unrealized),
        )

    console.print(holdings_table)

    changes_table = Table(title="Period Changes")
    changes_table.add_column("Period", style="cyan", justify="left")
    changes_table.add_column(f"Change ({cur})", justify="right")
    changes_table.add_column("Change %", justify="right")

    today = day_change_summary(portfolios, quotes, rates, cur)
    changes_table.add_row("Today", signed(today.delta), signed(today.percent, "%"))
    for time_range, change in all_range_changes(portfolios, quotes, rates, cur, now=now).items():
        changes_table.add_row(time_range.value, signed(change.delta), signed(change.percent, "%"))

    console.print(changes_table)

    movers = rank_movers(portfolios, quotes, rates, cur)
    if movers:
        movers_table = Table(title="Movers (unrealized)")
        movers_table.add_column("Symbol", style="cyan", justify="left")
        movers_table.add_column(f"Unrealized ({cur})", justify="right")
        movers_table.add_column("Return %", justify="right")
        for mover in movers:
            movers_table.add_row(mover.symbol, signed(mover.unrealized), signed(mover.percent, "%"))
        console.print(movers_table)

    allocations = top_allocations(portfolios, quotes, rates, cur)
    if allocations:
        allocation_table = Table(title="Top Allocations")
        allocation_table.add_column("Symbol", style="cyan", justify="left")
        allocation_table.add_column(f"Value ({cur})", style="green", justify="right")
        allocation_table.add_column("Weight", justify="right")
        for allocation in allocations:
            allocation_table.add_row(allocation.symbol, f"{allocation.value:,.2f}", f"{allocation.weight * 100:.1f}%")
        console.print(allocation_table)

    console.print(
        Panel(
            f"[bold green]Total Value: {totals.total:,.2f} {cur}[/bold green]\n"
            f"Holdings: {totals.holdings_value:,.2f} {cur}    Cash: {totals.cash:,.2f} {cur}\n"
            f"{totals.portfolio_count} portfolios • {totals.holdings_count} holdings • {totals.watchlist_count} watched",
            title="Summary",
        )
    )

    return 0
