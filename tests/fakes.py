"""In-memory collaborators for engine tests."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Iterable, List, Optional, Sequence

from extension_lens.manifest import ComponentDescriptor, build_manifest
from extension_lens.remediation import DocumentEdit


def make_package(
    name: str,
    *,
    publisher: str = "acme",
    display_name: Optional[str] = None,
    commands: Iterable[str] = (),
    keybindings: Iterable[Dict[str, str]] = (),
    activation_events: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    package: Dict[str, Any] = {
        "name": name,
        "publisher": publisher,
        "version": "1.0.0",
        "displayName": display_name or name.title(),
        "contributes": {
            "commands": [{"command": command, "title": command} for command in commands],
            "keybindings": list(keybindings),
        },
    }
    if activation_events is not None:
        package["activationEvents"] = list(activation_events)
    return package


def make_descriptor(package: Dict[str, Any], *, active: bool = False, location: Optional[str] = None) -> ComponentDescriptor:
    ext_id = f"{package['publisher']}.{package['name']}"
    return ComponentDescriptor(
        id=ext_id,
        is_active=active,
        package=package,
        location=location or f"/extensions/{ext_id}/package.json",
    )


def make_manifest(name: str, *, active: bool = False, **package_fields: Any):
    return build_manifest(make_descriptor(make_package(name, **package_fields), active=active))


class FakeRegistry:
    def __init__(self, descriptors: Iterable[ComponentDescriptor] = ()) -> None:
        self.descriptors: List[ComponentDescriptor] = list(descriptors)
        self.list_calls = 0

    async def list_components(self) -> List[ComponentDescriptor]:
        self.list_calls += 1
        return list(self.descriptors)

    async def get_component(self, component_id: str) -> Optional[ComponentDescriptor]:
        for descriptor in self.descriptors:
            if descriptor.id == component_id:
                return descriptor
        return None


class FakeCommandTable:
    def __init__(self, commands: Iterable[str] = ()) -> None:
        self.commands = list(commands)
        self.calls = 0

    async def get_commands(self) -> List[str]:
        self.calls += 1
        await asyncio.sleep(0)
        return list(self.commands)


class FakeFileEditor:
    def __init__(self, docs: Optional[Dict[str, str]] = None, accept: bool = True) -> None:
        self.docs: Dict[str, str] = dict(docs or {})
        self.accept = accept
        self.apply_calls: List[List[DocumentEdit]] = []

    def add_package(self, descriptor: ComponentDescriptor, indent: Any = 4) -> None:
        assert descriptor.location is not None
        self.docs[descriptor.location] = json.dumps(descriptor.package, indent=indent) + "\n"

    async def read_text(self, location: str) -> str:
        if location not in self.docs:
            raise FileNotFoundError(location)
        return self.docs[location]

    async def apply_edits(self, edits: Sequence[DocumentEdit]) -> bool:
        self.apply_calls.append(list(edits))
        if not self.accept:
            return False
        for edit in edits:
            text = self.docs[edit.location]
            self.docs[edit.location] = text[: edit.start] + edit.new_text + text[edit.end :]
        return True


class FakeClipboard:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.texts: List[str] = []

    async def write_text(self, text: str) -> None:
        if self.fail:
            raise OSError("clipboard unavailable")
        self.texts.append(text)
