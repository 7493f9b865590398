"""
=============================================================================
SMOLLCHAT CLI ENTRY POINT
=============================================================================

    # Defaults: 0.0.0.0:8080, room "Room", bundled pages
    python -m smollchat

    # Custom port and room, QR code for phones
    python -m smollchat --port 3000 --room-name Lobby --qrcode

    # Own pages (index.html, chat.html, chat.js, style.css)
    python -m smollchat --static-dir ./my-chat

Settings are read from defaults, then ./.env (or --env-file), then
SMOLLCHAT_* environment variables, then these flags; see config.py.

=============================================================================
EXIT STATUS
=============================================================================

    0   Stopped normally (Ctrl+C / SIGTERM)
    1   Could not bind the listening socket (port taken, no permission)
    2   Invalid configuration or arguments

=============================================================================
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from . import __version__
from .chat import DeliveryPolicy
from .config import ChatConfig, LOG_LEVELS, parse_bool
from .server import ChatServer


logger = logging.getLogger("smollchat")


def build_parser() -> argparse.ArgumentParser:
    """The smollchat argument parser. Every default is None: unset flags
    leave the lower configuration layers alone."""
    parser = argparse.ArgumentParser(
        prog="smollchat",
        description="Single-room long-poll chat server over raw HTTP/1.1 sockets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m smollchat                          # 0.0.0.0:8080, room "Room"
  python -m smollchat --port 3000 --qrcode     # Custom port, QR code for phones
  python -m smollchat --room-name Lobby        # Custom room name
  python -m smollchat --static-dir ./my-chat   # Serve your own pages
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        help="Host to bind to (default: 0.0.0.0, all interfaces)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        help="Port to listen on (default: 8080)"
    )

    parser.add_argument(
        "--workers", "-w",
        type=int,
        help="Maximum worker threads (default: 128)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # CHAT ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--room-name", "-r",
        help='Room name shown on the pages (default: "Room")'
    )

    parser.add_argument(
        "--static-dir", "-s",
        help="Directory with index.html, chat.html and static files "
             "(default: the bundled pages)"
    )

    parser.add_argument(
        "--long-poll-timeout",
        type=float,
        help="Seconds a /new-message request waits before 204 (default: 30)"
    )

    parser.add_argument(
        "--max-listeners",
        type=int,
        help="Most long-polls waiting at once, 503 beyond (default: 64)"
    )

    parser.add_argument(
        "--delivery",
        choices=[p.value for p in DeliveryPolicy],
        help="Message delivery: 'all' waiting listeners (default) or one at a time"
    )

    parser.add_argument(
        "--qrcode",
        nargs="?",
        const=True,
        type=parse_bool,
        metavar="BOOL",
        help="Print the chat URL as a QR code at startup (bare flag means true)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONFIG / LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--env-file",
        default=".env",
        help="Settings file read before the environment (default: .env)"
    )

    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        help="Access log format (default: text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"smollchat {__version__}"
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ChatConfig:
    """
    Layer the parsed flags over .env and the environment.

    Raises:
        ValueError: Bad value in .env or the environment.
    """
    config = ChatConfig.load(env_file=args.env_file)

    config = config.with_overrides(
        host=args.host,
        port=args.port,
        max_workers=args.workers,
        room_name=args.room_name,
        static_dir=args.static_dir,
        long_poll_timeout=args.long_poll_timeout,
        max_listeners=args.max_listeners,
        delivery_policy=DeliveryPolicy(args.delivery) if args.delivery else None,
        qrcode=args.qrcode,
        log_level=args.log_level,
        log_format=args.log_format,
    )

    # A small worker count shouldn't trip the min <= max check
    if config.min_workers > config.max_workers:
        config = config.with_overrides(min_workers=config.max_workers)

    # Nor the listener cap, unless it was set on purpose
    if (config.max_listeners == ChatConfig.max_listeners
            and config.max_listeners >= config.max_workers):
        config = config.with_overrides(max_listeners=max(1, config.max_workers - 1))

    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    CLI entry point.

    Returns:
        Process exit status (see module docstring).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args)
        server = ChatServer(config)
    except ValueError as e:
        print(f"smollchat: invalid configuration: {e}", file=sys.stderr)
        return 2

    try:
        server.bind()
    except OSError as e:
        print(
            f"smollchat: cannot listen on {config.host}:{config.port}: {e}",
            file=sys.stderr,
        )
        return 1

    server.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
