"""Collect an immutable snapshot of installed extension manifests."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

KEY_VARIANTS = ("key", "mac", "linux", "win")


@dataclass(frozen=True)
class ComponentDescriptor:
    """Raw registry entry: the parsed package manifest plus host state."""

    id: str
    is_active: bool
    package: Mapping[str, Any]
    location: Optional[str] = None


class ExtensionRegistry(Protocol):
    async def list_components(self) -> List[ComponentDescriptor]:
        ...

    async def get_component(self, component_id: str) -> Optional[ComponentDescriptor]:
        ...


@dataclass(frozen=True)
class CommandContribution:
    command: str
    title: Optional[str] = None
    category: Optional[str] = None


@dataclass(frozen=True)
class KeybindingContribution:
    command: str
    key: Optional[str] = None
    mac: Optional[str] = None
    linux: Optional[str] = None
    win: Optional[str] = None

    @property
    def representative_key(self) -> Optional[str]:
        for variant in KEY_VARIANTS:
            value = getattr(self, variant)
            if value:
                return value
        return None


@dataclass(frozen=True)
class ComponentManifest:
    id: str
    display_name: str
    publisher: str
    version: str
    is_active: bool
    commands: Tuple[CommandContribution, ...] = field(default_factory=tuple)
    keybindings: Tuple[KeybindingContribution, ...] = field(default_factory=tuple)
    activation_events: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def command_ids(self) -> Tuple[str, ...]:
        return tuple(cmd.command for cmd in self.commands)


class ManifestCollector:
    """Read-only view over the extension registry. Never caches."""

    def __init__(self, registry: ExtensionRegistry) -> None:
        self._registry = registry

    async def collect(self) -> List[ComponentManifest]:
        descriptors = await self._registry.list_components()
        return [build_manifest(descriptor) for descriptor in descriptors]

    async def get(self, component_id: str) -> Optional[ComponentManifest]:
        descriptor = await self._registry.get_component(component_id)
        if descriptor is None:
            return None
        return build_manifest(descriptor)


def build_manifest(descriptor: ComponentDescriptor) -> ComponentManifest:
    package = descriptor.package or {}
    contributes = package.get("contributes") or {}
    if not isinstance(contributes, Mapping):
        contributes = {}
    return ComponentManifest(
        id=descriptor.id,
        display_name=str(package.get("displayName") or package.get("name") or descriptor.id),
        publisher=str(package.get("publisher") or "Unknown"),
        version=str(package.get("version") or ""),
        is_active=bool(descriptor.is_active),
        commands=tuple(_commands(contributes.get("commands"), descriptor.id)),
        keybindings=tuple(_keybindings(contributes.get("keybindings"), descriptor.id)),
        activation_events=tuple(
            event for event in _as_list(package.get("activationEvents")) if isinstance(event, str)
        ),
    )


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    # A single contribution object is valid in package manifests.
    if isinstance(value, dict):
        return [value]
    return []


def _commands(raw: Any, component_id: str) -> Iterable[CommandContribution]:
    for item in _as_list(raw):
        if not isinstance(item, dict) or not isinstance(item.get("command"), str):
            logger.debug("Skipping malformed command contribution in %s: %r", component_id, item)
            continue
        title = item.get("title")
        if isinstance(title, dict):
            # Localized titles: {"value": ..., "original": ...}
            title = title.get("value") or title.get("original")
        yield CommandContribution(
            command=item["command"],
            title=title if isinstance(title, str) else None,
            category=item.get("category") if isinstance(item.get("category"), str) else None,
        )


def _keybindings(raw: Any, component_id: str) -> Iterable[KeybindingContribution]:
    for item in _as_list(raw):
        if not isinstance(item, dict):
            logger.debug("Skipping malformed keybinding in %s: %r", component_id, item)
            continue
        variants = {name: item.get(name) if isinstance(item.get(name), str) else None for name in KEY_VARIANTS}
        yield KeybindingContribution(command=str(item.get("command") or ""), **variants)
