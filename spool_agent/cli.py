"""Command-line interface for spool-agent."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from . import constants
from .app import AgentServices, SpoolAgentApp, build_services
from .config import AgentConfig, load_config, save_config
from .errors import AgentError
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spool-agent", description="Local print-server agent for CUPS"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("start", help="Start the spool-agent service")
    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )
    subparsers.add_parser(
        "init-config", help="Write a configuration file populated with defaults"
    )
    subparsers.add_parser("scan", help="Run one tree reconciliation and print its summary")

    purge_parser = subparsers.add_parser("purge", help="Remove stale files from the watch root")
    purge_parser.add_argument(
        "--max-age-days", type=float, default=None, help="Age threshold in days"
    )

    sync_parser = subparsers.add_parser(
        "sync-printers", help="Reconcile printers against a desired-state JSON file"
    )
    sync_parser.add_argument(
        "--file", type=Path, required=True, help="JSON list of desired printers"
    )

    subparsers.add_parser("drivers", help="List the drivers known to the spooler")
    subparsers.add_parser("discover", help="List devices the spooler can see")

    return parser


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _run_once(
    config: AgentConfig, action: Callable[[AgentServices], Awaitable[Any]]
) -> int:
    async def _runner() -> Any:
        services = build_services(config)
        try:
            return await action(services)
        finally:
            await services.close()

    try:
        _print_json(asyncio.run(_runner()))
    except AgentError as exc:
        LOGGER.error("%s failed: %s", exc.step or "command", exc.message)
        return 1
    return 0


def _load_desired(path: Path) -> list[dict[str, Any]]:
    with path.open("r", encoding="utf-8") as stream:
        payload = json.load(stream)
    if isinstance(payload, dict):
        payload = payload.get("data", [payload])
    return list(payload)


async def _scan(services: AgentServices) -> Any:
    return (await services.ingestion.reconcile_tree()).as_dict()


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.command == "start":
        SpoolAgentApp.start(config)
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    if args.command == "init-config":
        if config.path.exists():
            LOGGER.error("Configuration already exists at %s", config.path)
            return 1
        save_config(config)
        print(f"Configuration written to {config.path!s}")
        return 0

    configure_logging(config.logging.level, verbose_libraries=config.logging.verbose_libraries)

    if args.command == "scan":
        return _run_once(config, _scan)

    if args.command == "purge":
        max_age = args.max_age_days

        async def _purge(services: AgentServices) -> Any:
            report = await services.ingestion.purge_stale(max_age_days=max_age)
            return report.as_dict()

        return _run_once(config, _purge)

    if args.command == "sync-printers":
        try:
            desired = _load_desired(args.file)
        except (OSError, ValueError) as exc:
            LOGGER.error("Could not read %s: %s", args.file, exc)
            return 1

        async def _sync(services: AgentServices) -> Any:
            return (await services.facade.sync_printers(desired)).as_dict()

        return _run_once(config, _sync)

    if args.command == "drivers":

        async def _drivers(services: AgentServices) -> Any:
            return await services.facade.list_drivers()

        return _run_once(config, _drivers)

    if args.command == "discover":

        async def _discover(services: AgentServices) -> Any:
            devices = await services.facade.discover_printers()
            return [{"type": device.type, "uri": device.uri} for device in devices]

        return _run_once(config, _discover)

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
