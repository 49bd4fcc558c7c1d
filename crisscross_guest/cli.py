"""Command-line interface for crisscross-guest.

Subcommands::

    crisscross-guest watch     Start the cache and stream its events
    crisscross-guest list      Pull the server list once and print it
    crisscross-guest devhost   Run a local mock of the host's guest API
"""

import argparse
import asyncio
import logging
import sys
from typing import Any, Dict, Optional

from rich.console import Console
from rich.markup import escape

from crisscross_guest.constants import APP_NAME, APP_VERSION, DEFAULT_HOST, DEFAULT_PORT
from crisscross_guest.errors import GuestBaseError

module_logger = logging.getLogger(__name__)

_LOG_LEVEL_CHOICES = ["debug", "info", "warning", "error", "critical"]


def _config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "host": getattr(args, "host", None),
        "port": getattr(args, "port", None),
        "log_level": getattr(args, "log_level", None),
    }


def _load(args: argparse.Namespace):
    from crisscross_guest.config import load_config

    return load_config(getattr(args, "config", None), overrides=_config_overrides(args))


# ── ``crisscross-guest watch`` ───────────────────────────────────────────


async def _watch(args: argparse.Namespace, console: Console) -> None:
    from crisscross_guest.display.console import format_event, print_servers
    from crisscross_guest.runtime import CacheService

    config = _load(args)
    service = CacheService(config)
    queue = service.events.listen()
    try:
        await service.start()
        print_servers(
            service.list_servers(),
            console=console,
            title=f"Servers at {service.host}:{service.port}",
        )
        while True:
            record = await queue.get()
            console.print(format_event(record))
    finally:
        service.events.unlisten(queue)
        await service.stop()


def _cmd_watch(args: argparse.Namespace) -> None:
    """Entry-point for ``crisscross-guest watch``."""
    from crisscross_guest.display.logging_config import setup_logging

    console = Console()
    setup_logging(args.log_level or "info", quiet=True)
    try:
        asyncio.run(_watch(args, console))
    except KeyboardInterrupt:
        module_logger.info("Watch interrupted by KeyboardInterrupt.")
        console.print("[dim]Stopped.[/dim]")
    except GuestBaseError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        sys.exit(1)


# ── ``crisscross-guest list`` ────────────────────────────────────────────


async def _list(args: argparse.Namespace, console: Console) -> None:
    from crisscross_guest.display.console import print_servers
    from crisscross_guest.models import normalize
    from crisscross_guest.transport.http import PullClient

    config = _load(args)
    client = PullClient(timeout=config.request_timeout)
    try:
        servers = await client.fetch_servers(config.host, config.port)
    finally:
        await client.close()

    wanted = normalize(args.type)
    if wanted:
        servers = [s for s in servers if s.type_key == wanted]
    print_servers(
        servers,
        console=console,
        title=f"{len(servers)} server(s) at {config.host}:{config.port}",
    )


def _cmd_list(args: argparse.Namespace) -> None:
    """Entry-point for ``crisscross-guest list``."""
    console = Console()
    try:
        asyncio.run(_list(args, console))
    except GuestBaseError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        sys.exit(1)


# ── ``crisscross-guest devhost`` ─────────────────────────────────────────


def _cmd_devhost(args: argparse.Namespace) -> None:
    """Entry-point for ``crisscross-guest devhost``."""
    from crisscross_guest.devhost import load_servers_file, serve
    from crisscross_guest.display.logging_config import setup_logging

    setup_logging(args.log_level or "info", console=True, quiet=True)
    servers: Optional[list] = None
    if args.servers_file:
        try:
            servers = load_servers_file(args.servers_file)
        except (OSError, ValueError) as exc:
            print(f"Error: cannot load servers file: {exc}", file=sys.stderr)
            sys.exit(1)

    try:
        asyncio.run(
            serve(
                host=args.host or DEFAULT_HOST,
                port=args.port or DEFAULT_PORT,
                servers=servers,
            )
        )
    except KeyboardInterrupt:
        module_logger.info("Mock host interrupted by KeyboardInterrupt.")


# ── Parser ───────────────────────────────────────────────────────────────


def _add_common_args(sp: argparse.ArgumentParser) -> None:
    sp.add_argument(
        "--host",
        type=str,
        default=None,
        help=f"Host address (default: {DEFAULT_HOST})",
    )
    sp.add_argument(
        "--port",
        type=int,
        default=None,
        help=f"Port (default: {DEFAULT_PORT})",
    )
    sp.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=_LOG_LEVEL_CHOICES,
        help="Set file logging level (default: info)",
    )
    sp.add_argument(
        "--config",
        type=str,
        default=None,
        metavar="PATH",
        help="Path to configuration file (YAML)",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser with watch/list/devhost subcommands."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description=f"{APP_NAME} v{APP_VERSION}",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")

    subparsers = parser.add_subparsers(dest="command")

    # ── watch ───────────────────────────────────────────────────
    sp_watch = subparsers.add_parser(
        "watch",
        help="Start the server cache and stream its events to the console",
    )
    _add_common_args(sp_watch)
    sp_watch.set_defaults(func=_cmd_watch)

    # ── list ────────────────────────────────────────────────────
    sp_list = subparsers.add_parser(
        "list",
        help="Pull the server list once and print it as a table",
    )
    _add_common_args(sp_list)
    sp_list.add_argument(
        "--type",
        type=str,
        default="",
        help="Only show servers of this type (case-insensitive)",
    )
    sp_list.set_defaults(func=_cmd_list)

    # ── devhost ─────────────────────────────────────────────────
    sp_devhost = subparsers.add_parser(
        "devhost",
        help="Run a local mock of the host's guest API",
    )
    _add_common_args(sp_devhost)
    sp_devhost.add_argument(
        "--servers-file",
        type=str,
        default=None,
        metavar="PATH",
        help="JSON file with the initial server list",
    )
    sp_devhost.set_defaults(func=_cmd_devhost)

    return parser


def main(argv: Optional[list] = None) -> None:
    """Program entry point: parse arguments and dispatch to subcommand."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(1)
    else:
        args.func(args)


if __name__ == "__main__":
    main()
