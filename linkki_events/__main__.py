"""Command-line entry for linkki_events."""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn

from . import run_server


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the linkki_events CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="linkki_events",
        description="Linkki events - cached JSON API for the Linkki public calendar",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m linkki_events                    # Serve on 0.0.0.0:3030
  python -m linkki_events --port 8080        # Serve on port 8080
  python -m linkki_events --bind 127.0.0.1   # Local connections only
        """,
    )

    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port for the web server (default: 3030, or LINKKI_EVENTS_WEB_PORT)",
    )
    parser.add_argument(
        "--bind",
        metavar="HOST",
        help="Address to bind (default: 0.0.0.0, or LINKKI_EVENTS_WEB_HOST)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging for linkki_events modules",
    )

    return parser


def main(argv: list[str] | None = None) -> NoReturn:
    """Run the linkki_events CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    run_server(args)
    sys.exit(0)


if __name__ == "__main__":
    main()
