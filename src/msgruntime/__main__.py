"""
=============================================================================
COMMAND-LINE ENTRY POINT
=============================================================================

    python -m msgruntime                                  # echo handler
    python -m msgruntime --handler myapp.steps:process    # your handler
    MSG_PORT=9000 python -m msgruntime                    # env config

Options given on the command line override MSG_* environment variables.

=============================================================================
"""

import argparse
import sys
from typing import Optional, Sequence

from . import __version__
from .config import ServerConfig, LOG_LEVELS, LOG_FORMATS
from .handlers import HandlerLoadError
from .server import MessageServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="msgruntime",
        description="Serve a message handler over HTTP (/ready, /messages)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m msgruntime                               # Echo handler on 127.0.0.1:8080
  python -m msgruntime --handler myapp.steps:process # Custom handler
  python -m msgruntime --port 0 --log-level DEBUG    # Any free port, verbose
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 127.0.0.1)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 8080, 0 = any free port)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # PERFORMANCE ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum worker threads, i.e. messages handled in parallel (default: 32)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # HANDLER
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--handler",
        default=None,
        metavar="MODULE:ATTR",
        help="Message handler import path (default: built-in echo handler)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=None,
        help="Access log format (default: text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"msgruntime {__version__}"
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Parse arguments, build the server and run it until drained."""
    args = build_parser().parse_args(argv)

    try:
        config = ServerConfig.from_env(
            host=args.host,
            port=args.port,
            max_workers=args.workers,
            handler=args.handler,
            log_level=args.log_level,
            log_format=args.log_format,
        )
        server = MessageServer(config=config)
    except (ValueError, HandlerLoadError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        server.run()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
