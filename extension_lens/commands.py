"""Runtime command catalog with a short-lived cache and source attribution."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .conflicts import RuntimeCommandTable
from .manifest import ComponentManifest

logger = logging.getLogger(__name__)

CACHE_SECONDS = 5.0
CORE_SOURCE = "Core"
UNKNOWN_SOURCE = "Unknown"
CORE_PREFIXES = ("vscode.", "workbench.")


class CachedCommandTable:
    """Memoizes the runtime command list for ``ttl`` seconds.

    Concurrent misses are not coalesced; each one fetches from the wrapped table.
    """

    def __init__(
        self,
        table: RuntimeCommandTable,
        ttl: float = CACHE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._table = table
        self._ttl = ttl
        self._clock = clock
        self._cached: Tuple[str, ...] = ()
        self._fetched_at: Optional[float] = None

    async def get_commands(self) -> Tuple[str, ...]:
        now = self._clock()
        if self._fetched_at is not None and now - self._fetched_at < self._ttl:
            return self._cached
        commands = tuple(await self._table.get_commands())
        self._cached = commands
        self._fetched_at = now
        logger.debug("Fetched %d runtime command(s)", len(commands))
        return commands

    def invalidate(self) -> None:
        self._fetched_at = None


@dataclass(frozen=True)
class CommandInfo:
    id: str
    source: str
    title: Optional[str] = None
    category: Optional[str] = None
    is_internal: bool = False
    declared: bool = False


def is_internal_command(command_id: str) -> bool:
    return command_id.startswith("_") or "._" in command_id


def find_command_source(command_id: str, manifests: Sequence[ComponentManifest]) -> str:
    if command_id.startswith(CORE_PREFIXES):
        return CORE_SOURCE
    for manifest in manifests:
        if command_id in manifest.command_ids:
            return manifest.display_name
    # Fall back to matching the id prefix against "publisher.name" short names.
    prefix = command_id.split(".")[0]
    for manifest in manifests:
        short_name = manifest.id.split(".", 1)[-1]
        if prefix == short_name:
            return manifest.display_name
    return UNKNOWN_SOURCE


def describe_commands(command_ids: Iterable[str], manifests: Sequence[ComponentManifest]) -> List[CommandInfo]:
    declared = {}
    for manifest in manifests:
        for contribution in manifest.commands:
            declared.setdefault(contribution.command, contribution)

    infos: List[CommandInfo] = []
    for command_id in command_ids:
        contribution = declared.get(command_id)
        infos.append(
            CommandInfo(
                id=command_id,
                source=find_command_source(command_id, manifests),
                title=contribution.title if contribution else None,
                category=contribution.category if contribution else None,
                is_internal=is_internal_command(command_id),
                declared=contribution is not None,
            )
        )
    return infos


def search_commands(commands: Iterable[CommandInfo], query: str) -> List[CommandInfo]:
    needle = query.lower()
    return [
        info
        for info in commands
        if needle in info.id.lower()
        or (info.title and needle in info.title.lower())
        or needle in info.source.lower()
    ]


def unmapped_runtime_commands(commands: Iterable[CommandInfo]) -> List[CommandInfo]:
    """Registered at runtime but declared by no manifest, excluding core and internal ones."""
    return [
        info for info in commands if not info.declared and info.source != CORE_SOURCE and not info.is_internal
    ]
