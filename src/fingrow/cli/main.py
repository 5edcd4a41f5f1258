#!/usr/bin/env python3
"""Main entry point for the fingrow CLI."""

import argparse
import sys

FINGROW_LOGO = """
  ___ _
 | __(_)_ _  __ _ _ _ _____ __ __
 | _|| | ' \\/ _` | '_/ _ \\ V  V /
 |_| |_|_||_\\__, |_| \\___/\\_/\\_/
            |___/
 fingrow - multi-portfolio valuation and P&L
"""

INVESTING_WARNING = (
    " \033[33m⚠  Values use the latest FX snapshot for every date, so long\n"
    "    look-back windows drift with today's exchange rates. Nothing here\n"
    "    should be construed as investment advice.\033[0m"
)


def main(argv=None):
    """Parse CLI arguments and dispatch to the appropriate subcommand.

    Args:
        argv: Argument list; defaults to ``sys.argv[1:]``.

    Returns:
        int: Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="fingrow",
        description="fingrow - multi-portfolio valuation and P&L",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  fingrow report snapshot.json               Holdings, P&L, period changes
  fingrow report snapshot.json -c SGD        Report in SGD
  fingrow report snapshot.json --live        Refresh quotes and FX first
  fingrow history snapshot.json -r 6M        Holdings value over six months
        """,
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        help="Available commands",
    )

    from .report import register_subcommand as register_report
    from .history import register_subcommand as register_history
    from .version import register_subcommand as register_version

    register_report(subparsers)
    register_history(subparsers)
    register_version(subparsers)

    args = parser.parse_args(argv)

    print(FINGROW_LOGO)
    print(INVESTING_WARNING)
    print()

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
