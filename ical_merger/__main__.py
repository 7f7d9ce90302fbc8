"""Command-line entry for ical_merger.

Two subcommands are provided:
- ``check``: validate a configuration file and print what it describes
- ``serve``: run the HTTP server (and the refresh scheduler in periodic mode)
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import NoReturn, Optional, Sequence

from . import _init_logging, check_config, run_server

DEFAULT_PORT = 8080
DEFAULT_LISTEN = "0.0.0.0"  # nosec: B104 - bind all interfaces unless told otherwise


def _verbosity_to_level(verbose: int, quiet: int) -> str:
    """Map -v/-q counts onto a logging level name (INFO is the baseline)."""
    levels = ["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]
    index = max(0, min(len(levels) - 1, 3 + verbose - quiet))
    return levels[index]


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the ical_merger CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="ical_merger",
        description="iCal Merger - fetch, merge and serve ICS calendars",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m ical_merger check --path config.yaml   # Validate a configuration file
  python -m ical_merger serve                      # Serve on 0.0.0.0:8080
  python -m ical_merger serve --port 3000          # Serve on port 3000
        """,
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (repeatable)",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Decrease log verbosity (repeatable)",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Configuration file (default: $ICAL_MERGER_CONFIG or ./config.yaml)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser("check", help="Validate a configuration file")
    check.add_argument(
        "--path",
        metavar="PATH",
        help="Configuration file to validate (overrides --config)",
    )

    serve = subparsers.add_parser("serve", help="Serve merged calendars over HTTP")
    serve.add_argument(
        "--port",
        type=int,
        # A string default goes through type=int, so a bad PORT is a usage error
        default=os.environ.get("PORT") or DEFAULT_PORT,
        metavar="PORT",
        help="Port number for the web server (default: 8080, or from PORT env var)",
    )
    serve.add_argument(
        "--listen",
        default=os.environ.get("ADDRESS") or DEFAULT_LISTEN,
        metavar="ADDRESS",
        help="Address to bind (default: 0.0.0.0, or from ADDRESS env var)",
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """Run the ical_merger CLI and exit with the command's status code."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    _init_logging(_verbosity_to_level(args.verbose, args.quiet))

    if args.command == "check":
        sys.exit(check_config(args))

    try:
        sys.exit(run_server(args))
    except OSError as exc:
        print(f"Could not start server: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
