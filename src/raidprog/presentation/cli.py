"""Command-line surface for raid progress lookups.

Usage examples:
    python -m raidprog lookup "Alpha Beta" Twintania
    python -m raidprog lookup "Alpha Beta" Twintania --encounter FRU --encounter M9S
    python -m raidprog clear-cache --lodestone-id 12345678
    python -m raidprog history
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from rich.console import Console
from rich.panel import Panel

from raidprog.domain.encounter_catalog import EncounterDescriptor, find_by_short_name, list_encounters
from raidprog.domain.errors import LookupFailure
from raidprog.domain.models.progress import Cleared, EncounterResult, InProgress, NotStarted
from raidprog.infrastructure.client_factory import (
    ClientSettings,
    create_resolution_client,
    load_host_configuration,
)
from raidprog.infrastructure.host_config import HostConfiguration


_CONSOLE = Console()
_LOGGER = logging.getLogger(__name__)

_FAILURE_MESSAGES = {
    LookupFailure.NOT_FOUND: "Character not found.",
    LookupFailure.NETWORK_ERROR: "Network error, try again later.",
    LookupFailure.UNEXPECTED_STATUS: "The site answered unexpectedly.",
    LookupFailure.MALFORMED_REDIRECT: "The site answered unexpectedly.",
}


def format_result(result: EncounterResult | None) -> str:
    if result is None:
        return "[dim]unknown[/dim]"
    if isinstance(result, Cleared):
        if not result.has_info:
            return "[green]cleared[/green]"
        text = f"[green]cleared[/green] {result.timestamp:%Y-%m-%d}"
        if result.completion_week:
            text += f" (week {result.completion_week})"
        return text
    if isinstance(result, InProgress):
        points = []
        for lockout in result.lockouts:
            point = str(lockout.percent)
            if lockout.date is not None:
                point += f" on {lockout.date:%Y-%m-%d}"
            points.append(point)
        return "[yellow]in progress[/yellow] " + ", ".join(points)
    if isinstance(result, NotStarted):
        return "not started"
    raise TypeError(f"Unknown encounter result: {result!r}")


def select_encounters(names: list[str] | None) -> list[EncounterDescriptor]:
    if not names:
        seen: set[str] = set()
        selected: list[EncounterDescriptor] = []
        for descriptor in list_encounters():
            if descriptor.slug not in seen:
                seen.add(descriptor.slug)
                selected.append(descriptor)
        return selected

    selected = []
    for name in names:
        descriptor = find_by_short_name(name)
        if descriptor is None:
            raise ValueError(f"Unknown encounter '{name}'")
        selected.append(descriptor)
    return selected


def split_full_name(full_name: str) -> tuple[str, str]:
    parts = full_name.split()
    if len(parts) != 2:
        raise ValueError("Character name must be 'First Last'")
    return parts[0], parts[1]


async def run_lookup(
    full_name: str,
    world: str,
    encounter_names: list[str] | None,
    *,
    settings: ClientSettings,
    config: HostConfiguration,
) -> list[tuple[EncounterDescriptor, EncounterResult | None]]:
    first_name, last_name = split_full_name(full_name)
    encounters = select_encounters(encounter_names)

    async with create_resolution_client(settings, config) as client:
        identity = await client.resolve_character(first_name, last_name, world)
        if isinstance(identity, LookupFailure):
            _CONSOLE.print(f"[red]{_FAILURE_MESSAGES[identity]}[/red]")
            return []

        config.record_lookup(first_name, last_name, world)
        try:
            config.save()
        except OSError:
            _LOGGER.exception("Could not save lookup history")

        rows = []
        for encounter in encounters:
            rows.append((encounter, await client.fetch_encounter_result(identity.lodestone_id, encounter)))

    lines = [f"{encounter.short_name or encounter.slug}: {format_result(result)}" for encounter, result in rows]
    _CONSOLE.print(
        Panel(
            "\n".join(lines),
            title=f"{first_name} {last_name} @ {world} ({identity.lodestone_id})",
            border_style="cyan",
        )
    )
    return rows


def run_clear_cache(lodestone_id: int | None, encounter_slug: str | None, *, settings: ClientSettings, config: HostConfiguration) -> int:
    client = create_resolution_client(settings, config)
    try:
        removed = client.clear_persistent_cache(lodestone_id=lodestone_id, encounter_slug=encounter_slug)
    finally:
        asyncio.run(client.aclose())
    _CONSOLE.print(f"Removed {removed} cached clear(s).")
    return removed


def run_history(config: HostConfiguration) -> None:
    if not config.history:
        _CONSOLE.print("[dim]No lookups yet.[/dim]")
        return
    lines = [
        f"{entry.first_name} {entry.last_name} @ {entry.world}  [dim]{entry.last_seen:%Y-%m-%d %H:%M}[/dim]"
        for entry in config.history
    ]
    _CONSOLE.print(Panel("\n".join(lines), title="Recent lookups", border_style="blue"))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="raidprog", description="Raid progress lookups")
    sub = parser.add_subparsers(dest="command", required=True)

    lookup = sub.add_parser("lookup", help="Resolve a character and show encounter progress")
    lookup.add_argument("name", help="Character name, 'First Last'")
    lookup.add_argument("world", help="Home world")
    lookup.add_argument("--encounter", action="append", help="Short name or slug, repeatable (default: all)")

    clear = sub.add_parser("clear-cache", help="Forget persisted clears")
    clear.add_argument("--lodestone-id", type=int, default=None)
    clear.add_argument("--encounter", default=None, help="Encounter slug")

    sub.add_parser("history", help="List recent lookups")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = ClientSettings.from_env()
    config = load_host_configuration(settings)

    if args.command == "lookup":
        asyncio.run(run_lookup(args.name, args.world, args.encounter, settings=settings, config=config))
    elif args.command == "clear-cache":
        run_clear_cache(args.lodestone_id, args.encounter, settings=settings, config=config)
    elif args.command == "history":
        run_history(config)
    return 0
