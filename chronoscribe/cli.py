#!/usr/bin/env python3
"""
Chronoscribe CLI

Pipes stdin log lines to the Chronoscribe relay for unified viewing, or runs
the relay and dashboard itself with --serve.

Usage:
    npm start | chronoscribe --name frontend
    chronoscribe --serve
"""

import argparse
import asyncio
import logging
import random
import sys
import time
from typing import List, Optional
from urllib.parse import urlparse

from . import __version__
from .client import SourceClient
from .colors import Colors
from .config import config
from .errors import ConnectFailed, ReconnectExhausted
from .log_config import level_from_name, setup_logging
from .parser import parse_log_line
from .server import serve
from .stdin_reader import for_each_line

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog="chronoscribe",
        description="Chronoscribe - Unified Local-Dev Log Aggregator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  npm start | chronoscribe --name frontend
  docker logs -f mydb | chronoscribe --name database --color "#FF6B6B"
  chronoscribe --serve
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Chronoscribe v{__version__}"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Suppress output except errors")

    # Client options
    parser.add_argument("-n", "--name", help="Source name (default: cli-<random>)")
    parser.add_argument("-c", "--color", help="Preferred source color (hex code or CSS name)")
    parser.add_argument(
        "-s", "--server",
        default=config.default_server_url(),
        help=f"Relay WebSocket URL (default: {config.default_server_url()})"
    )
    parser.add_argument(
        "--level-pattern",
        help='Custom regex for log level detection (must have a named group "level")'
    )

    # Server options
    parser.add_argument("-S", "--serve", action="store_true", help="Start the relay and dashboard")
    parser.add_argument(
        "--no-open",
        dest="open",
        action="store_false",
        help="Do not open the dashboard in the browser automatically"
    )
    parser.add_argument("--ws-port", type=int, default=config.server.port, help="Relay WebSocket port")
    parser.add_argument("--http-port", type=int, default=config.server.http_port, help="Dashboard HTTP port")
    parser.add_argument("--no-dashboard", dest="dashboard", action="store_false", help="Run the relay only")
    parser.add_argument("--dashboard-dir", help="Serve a pre-built dashboard bundle from this directory")

    return parser


def _valid_server_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("ws", "wss") and bool(parsed.netloc)


async def pipe_stdin(args: argparse.Namespace) -> int:
    """
    Stream stdin to the relay as one source.

    Returns:
        Exit code (0 once stdin closes, 1 if the relay is unreachable)
    """
    name = args.name or f"cli-{random.randint(0, 999)}"
    print(Colors.bold("Chronoscribe CLI"), file=sys.stderr)
    print(f"  Source: {name}", file=sys.stderr)
    print(f"  Server: {args.server}", file=sys.stderr)

    client = SourceClient(server_url=args.server, source_name=name, color=args.color)
    try:
        await client.connect()
    except ConnectFailed as e:
        print(Colors.error(f"Failed to connect to relay: {e}"), file=sys.stderr)
        print("Make sure the Chronoscribe server is running.", file=sys.stderr)
        print("Start it with: chronoscribe --serve", file=sys.stderr)
        return 1

    print(Colors.success("Connected to relay"), file=sys.stderr)
    print(f"  Color:  {Colors.hex(client.assigned_color or '', client.assigned_color or '')}", file=sys.stderr)
    if sys.stdin.isatty():
        print(Colors.info("Interactive mode: type log lines and press Enter. Ctrl+D to exit."), file=sys.stderr)

    async def send_line(line: str) -> None:
        await client.send_log(parse_log_line(line, args.level_pattern), line)

    started = time.monotonic()
    reader = asyncio.create_task(for_each_line(send_line))
    await asyncio.wait({reader, client.runner}, return_when=asyncio.FIRST_COMPLETED)

    if not reader.done():
        # The client gave up on the relay before stdin ended.
        reader.cancel()
        await asyncio.gather(reader, return_exceptions=True)
        try:
            await client.wait()
        except ReconnectExhausted as e:
            print(Colors.error(f"Lost connection to relay: {e}"), file=sys.stderr)
        finally:
            await client.close()
        return 1

    await client.close()
    count = reader.result()
    print(f"\nProcessed {count} logs in {time.monotonic() - started:.1f}s", file=sys.stderr)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    log_level = level_from_name(config.server.log_level)
    if args.verbose:
        log_level = logging.DEBUG
    elif args.quiet:
        log_level = logging.ERROR
    setup_logging(log_level)

    try:
        if args.serve:
            asyncio.run(serve(
                ws_port=args.ws_port,
                http_port=args.http_port,
                dashboard=args.dashboard,
                dashboard_dir=args.dashboard_dir,
                open_browser=args.open and args.dashboard
            ))
            return 0

        if not _valid_server_url(args.server):
            print(Colors.error(f"Error: Invalid server URL: {args.server}"), file=sys.stderr)
            return 1
        return asyncio.run(pipe_stdin(args))

    except KeyboardInterrupt:
        print(f"\n{Colors.warning('Operation cancelled by user')}", file=sys.stderr)
        return 130
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
