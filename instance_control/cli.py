"""
Instance Control CLI
====================

Operator command line over the console API.

Usage:
    instance-control show <instance_id>
    instance-control power <instance_id> {boot,shutdown,reboot}
    instance-control catalog {plans,regions}

All output is JSON on stdout; logs go to stderr.
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from enum import Enum
from typing import Any, Dict, List, Optional

from .actions import ActionCategory
from .config import ConsoleConfig
from .instance_view import InstanceView
from .logging_config import configure_logging
from .orchestrator import ActionOrchestrator
from .services.catalog import CatalogService
from .transport import ConsoleAPIError, ConsoleClient

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return str(value)


def _emit(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=_json_default))


def view_to_dict(view: InstanceView, orchestrator: ActionOrchestrator) -> Dict[str, Any]:
    """Serializable view with rDNS values passed through the display policy."""
    data = asdict(view)
    for entry in data["addresses"]:
        entry["rdns_display"] = orchestrator.reconciler.display_rdns(entry.get("rdns"))
    data["available_firewalls"] = [fw.id for fw in orchestrator.available_firewalls(view.id)]
    return data


# =========================================
# COMMANDS
# =========================================

async def show(config: ConsoleConfig, instance_id: str) -> int:
    async with ConsoleClient.from_config(config.api) as client:
        orchestrator = ActionOrchestrator(client, config=config)
        await orchestrator.load_networking_config()
        view = await orchestrator.load(instance_id)

        if view is None:
            _emit({"ok": False, "message": f"Instance {instance_id} could not be loaded"})
            return 1
        _emit({"ok": True, "instance": view_to_dict(view, orchestrator)})
        return 0


async def power(config: ConsoleConfig, instance_id: str, action: str) -> int:
    async with ConsoleClient.from_config(config.api) as client:
        orchestrator = ActionOrchestrator(client, config=config)
        await orchestrator.load(instance_id)

        result = await orchestrator.dispatch(instance_id, ActionCategory.POWER, {"action": action})
        await orchestrator.wait_for_refreshes()

        output = result.to_dict()
        view = orchestrator.store.get(instance_id)
        if view is not None:
            output["status"] = view.status.value
            output["progress"] = view.progress
        _emit(output)
        return 0 if result.ok else 1


async def catalog(config: ConsoleConfig, kind: str) -> int:
    async with ConsoleClient.from_config(config.api) as client:
        service = CatalogService(client)
        try:
            if kind == "plans":
                records = await service.fetch_plans()
            else:
                records = await service.fetch_regions()
        except ConsoleAPIError as e:
            logger.error(f"Failed to fetch {kind}: {e.message}")
            _emit({"ok": False, "message": e.message})
            return 1

        _emit({
            "ok": True,
            kind: {provider.value: [asdict(r) for r in items] for provider, items in records.items()},
        })
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Instance control-plane client")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command")

    show_parser = subparsers.add_parser("show", help="Fetch and print one instance")
    show_parser.add_argument("instance_id")

    power_parser = subparsers.add_parser("power", help="Boot, shut down or reboot an instance")
    power_parser.add_argument("instance_id")
    power_parser.add_argument("action", choices=["boot", "shutdown", "reboot"])

    catalog_parser = subparsers.add_parser("catalog", help="List upstream plans or regions")
    catalog_parser.add_argument("kind", choices=["plans", "regions"])

    return parser


def main(argv: Optional[List[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    config = ConsoleConfig.from_env()
    configure_logging(args.log_level or config.log_level, config.log_format, stream=sys.stderr)

    if not config.api.is_configured:
        logger.warning("CONSOLE_API_TOKEN is not set; requests will be unauthenticated")

    if args.command == "show":
        code = asyncio.run(show(config, args.instance_id))
    elif args.command == "power":
        code = asyncio.run(power(config, args.instance_id, args.action))
    else:
        code = asyncio.run(catalog(config, args.kind))

    sys.exit(code)


if __name__ == "__main__":
    main()
