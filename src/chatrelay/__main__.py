"""
=============================================================================
CHATRELAY CLI ENTRY POINT
=============================================================================

    # Run the relay with defaults (127.0.0.1:9000)
    python -m chatrelay serve

    # Classroom LAN, custom port
    python -m chatrelay serve --host 0.0.0.0 --port 9100

    # JSON session logs
    python -m chatrelay serve --log-format json

    # Join as a console participant
    python -m chatrelay client --name Alice

Environment variables (CHAT_HOST, CHAT_PORT, ...) provide the defaults;
command-line flags override them.

=============================================================================
"""

import argparse
import sys
from typing import Optional

from . import __version__
from .client import ChatClient
from .config import ServerConfig
from .core import BindError
from .server import ChatServer


def build_parser(defaults: Optional[ServerConfig] = None) -> argparse.ArgumentParser:
    """
    Build the argument parser.

    Args:
        defaults: Config whose values become the flag defaults, usually
                  ServerConfig.from_env().
    """
    defaults = defaults or ServerConfig()

    parser = argparse.ArgumentParser(
        prog="chatrelay",
        description="Line-based broadcast chat relay over TCP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m chatrelay serve                    # Relay on 127.0.0.1:9000
  python -m chatrelay serve --host 0.0.0.0     # Listen on all interfaces
  python -m chatrelay client --name Alice      # Join the chat
        """
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"chatrelay {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # ─────────────────────────────────────────────────────────────────────
    # SERVE
    # ─────────────────────────────────────────────────────────────────────

    serve = subparsers.add_parser("serve", help="Run the chat relay")
    serve.add_argument(
        "--host", "-H",
        default=defaults.host,
        help=f"Host to bind to (default: {defaults.host})"
    )
    serve.add_argument(
        "--port", "-p",
        type=int,
        default=defaults.port,
        help=f"Port to listen on (default: {defaults.port})"
    )
    serve.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=defaults.log_level.upper(),
        help=f"Logging level (default: {defaults.log_level.upper()})"
    )
    serve.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=defaults.log_format,
        help=f"Session log format (default: {defaults.log_format})"
    )
    serve.add_argument(
        "--no-echo",
        action="store_true",
        help="Do not send a participant's own lines back to it"
    )

    # ─────────────────────────────────────────────────────────────────────
    # CLIENT
    # ─────────────────────────────────────────────────────────────────────

    client = subparsers.add_parser("client", help="Join a relay from the console")
    client.add_argument(
        "--name", "-n",
        required=True,
        help="Display name announced to the other participants"
    )
    client.add_argument(
        "--host", "-H",
        default=defaults.host,
        help=f"Relay host (default: {defaults.host})"
    )
    client.add_argument(
        "--port", "-p",
        type=int,
        default=defaults.port,
        help=f"Relay port (default: {defaults.port})"
    )

    return parser


def config_from_args(args: argparse.Namespace, base: ServerConfig) -> ServerConfig:
    """Translate `serve` arguments into a ServerConfig."""
    return ServerConfig(
        host=args.host,
        port=args.port,
        backlog=base.backlog,
        buffer_size=base.buffer_size,
        accept_timeout=base.accept_timeout,
        max_line_length=base.max_line_length,
        encoding=base.encoding,
        echo_to_sender=not args.no_echo,
        log_level=args.log_level,
        log_format=args.log_format,
        server_name=base.server_name,
    )


def serve(args: argparse.Namespace, base: ServerConfig) -> int:
    config = config_from_args(args, base)

    if not 0 < config.port < 65536:
        print(f"Error: invalid port {config.port}, must be 1-65535", file=sys.stderr)
        return 2

    try:
        server = ChatServer(config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        server.run()
    except BindError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def join(args: argparse.Namespace) -> int:
    client = ChatClient(host=args.host, port=args.port, name=args.name)
    try:
        client.run()
    except ConnectionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Process exit status: 0 on normal exit, 1 when the port cannot be
        bound or the relay is unreachable, 2 for invalid settings.
    """
    try:
        base = ServerConfig.from_env()
    except ValueError as e:
        print(f"Error: invalid environment configuration: {e}", file=sys.stderr)
        return 2

    args = build_parser(base).parse_args(argv)

    if args.command == "serve":
        return serve(args, base)
    return join(args)


if __name__ == "__main__":
    sys.exit(main())
