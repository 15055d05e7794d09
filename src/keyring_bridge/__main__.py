"""keyring-bridge -- entry point.

Usage::

    python -m keyring_bridge [--config PATH] [--verbose] serve
    python -m keyring_bridge [--config PATH] seed [--store NAME]
    python -m keyring_bridge [--config PATH] list [--store NAME]
    python -m keyring_bridge [--config PATH] search [--store NAME]
    python -m keyring_bridge [--config PATH] info [--store NAME]

``serve`` runs the store service on the configured Unix socket. The other
commands are clients: they connect to a running service, select a store for
the duration of the command, and print the outcome as JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from keyring_bridge.bridge import CommandBridge, StoreSelectionError, UnixSocketTransport
from keyring_bridge.config import Settings, load_settings
from keyring_bridge.result import Err, Result

logger = logging.getLogger("keyring_bridge")


# ---------------------------------------------------------------------------
# Integration seams -- module-level names so tests can patch them.
# ---------------------------------------------------------------------------


def load_config(config_path: str | None) -> Settings:
    path = Path(config_path) if config_path else None
    return load_settings(config_path=path)


def create_bridge(settings: Settings) -> CommandBridge:
    """Create a bridge talking to the store service socket."""
    transport = UnixSocketTransport(
        socket_path=settings.bridge.socket_path,
        rpc_timeout=settings.bridge.rpc_timeout,
        limit=settings.bridge.max_line_bytes,
    )
    return CommandBridge(transport)


def create_server(settings: Settings) -> Any:
    """Create the store service server."""
    from keyring_bridge.backend.history import CommandHandler
    from keyring_bridge.backend.server import StoreServer

    handler = CommandHandler(settings.backend)
    return StoreServer(
        handler,
        socket_path=settings.bridge.socket_path,
        limit=settings.bridge.max_line_bytes,
    )


# ---------------------------------------------------------------------------
# CLI argument parsing
# ---------------------------------------------------------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Parameters
    ----------
    argv:
        Argument list.  Defaults to ``sys.argv[1:]`` when ``None``.
    """
    parser = argparse.ArgumentParser(
        prog="keyring-bridge",
        description="Async command bridge to a credential store service",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("serve", help="Run the store service")
    for name, help_text in (
        ("seed", "Create the sample entries"),
        ("list", "List every credential in the store"),
        ("search", "Search the store and add the results to the history"),
        ("info", "Describe the selected store"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument(
            "--store",
            type=str,
            default=None,
            help="Named store to use (default: backend.default_store)",
        )
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def run_service(settings: Settings) -> None:
    """Run the store service until cancelled."""
    server = create_server(settings)
    await server.start()
    try:
        await server.serve_forever()
    except asyncio.CancelledError:
        logger.info("Shutdown signal received -- stopping store service")
    finally:
        await server.stop()


def _emit(result: Result[Any]) -> int:
    print(json.dumps(result.to_wire(), indent=2))
    return 0 if result.is_ok else 1


async def run_client(settings: Settings, command: str, store: str | None) -> int:
    """Run one client command against the store service. Returns an exit code."""
    from keyring_bridge.seeder import seed_sample_entries

    bridge = create_bridge(settings)
    store_name = store or settings.backend.default_store
    try:
        async with bridge.open_store(store_name) as session:
            if command == "seed":
                report = await seed_sample_entries(session)
                print(json.dumps(report.to_wire(), indent=2))
                return 0 if report.error is None else 1
            if command == "search":
                return _emit(await session.search_all())
            if command == "list":
                # Selection starts an empty history; a search fills it from the store.
                found = await session.search_all()
                if isinstance(found, Err):
                    return _emit(found)
                return _emit(await session.get_all_entries())
            return _emit(await session.store_info())
    except StoreSelectionError as exc:
        logger.error("%s", exc)
        return 1


# ---------------------------------------------------------------------------
# Script entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Parse CLI args and run the requested command."""
    args = parse_args(argv)
    settings = load_config(args.config)

    level = logging.DEBUG if args.verbose else getattr(logging, settings.logging.level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        if args.command == "serve":
            asyncio.run(run_service(settings))
            sys.exit(0)
        sys.exit(asyncio.run(run_client(settings, args.command, args.store)))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
