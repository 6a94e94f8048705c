"""Local filesystem implementations of the host collaborators."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from rich.console import Console

from .manifest import ComponentDescriptor
from .remediation import DocumentEdit

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.json"


class DirectoryRegistry:
    """Extensions installed as ``<root>/<folder>/package.json``."""

    def __init__(self, root: os.PathLike | str, active_ids: Iterable[str] = ()) -> None:
        self.root = Path(root).expanduser()
        self.active_ids: Set[str] = {ext_id.lower() for ext_id in active_ids}

    async def list_components(self) -> List[ComponentDescriptor]:
        return await asyncio.to_thread(self._scan)

    async def get_component(self, component_id: str) -> Optional[ComponentDescriptor]:
        wanted = component_id.lower()
        for descriptor in await self.list_components():
            if descriptor.id.lower() == wanted:
                return descriptor
        return None

    def _scan(self) -> List[ComponentDescriptor]:
        try:
            folders = sorted(child for child in self.root.iterdir() if child.is_dir())
        except OSError as exc:
            logger.warning("Cannot list extensions directory %s: %s", self.root, exc)
            return []

        descriptors: List[ComponentDescriptor] = []
        for folder in folders:
            manifest_path = folder / MANIFEST_NAME
            if not manifest_path.is_file():
                continue
            try:
                package = json.loads(manifest_path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning("Skipping %s: %s", manifest_path, exc)
                continue
            if not isinstance(package, dict):
                continue
            ext_id = _extension_id(package, folder.name)
            descriptors.append(
                ComponentDescriptor(
                    id=ext_id,
                    is_active=ext_id.lower() in self.active_ids,
                    package=package,
                    location=str(manifest_path),
                )
            )
        return descriptors


def _extension_id(package: Dict[str, object], folder_name: str) -> str:
    publisher = package.get("publisher")
    name = package.get("name")
    if isinstance(publisher, str) and isinstance(name, str):
        return f"{publisher}.{name}"
    return folder_name


class StaticCommandTable:
    def __init__(self, commands: Iterable[str] = ()) -> None:
        self._commands: Tuple[str, ...] = tuple(commands)

    @classmethod
    def from_file(cls, path: os.PathLike | str) -> "StaticCommandTable":
        """One command id per line; blank lines and ``#`` comments are ignored."""
        lines = Path(path).read_text(encoding="utf-8").splitlines()
        return cls(line.strip() for line in lines if line.strip() and not line.lstrip().startswith("#"))

    async def get_commands(self) -> Tuple[str, ...]:
        return self._commands


class LocalFileEditor:
    """Applies edits across files by staging every result before replacing any."""

    async def read_text(self, location: str) -> str:
        return await asyncio.to_thread(Path(location).read_text, encoding="utf-8")

    async def apply_edits(self, edits: Sequence[DocumentEdit]) -> bool:
        return await asyncio.to_thread(self._apply, list(edits))

    def _apply(self, edits: List[DocumentEdit]) -> bool:
        by_location: Dict[str, List[DocumentEdit]] = {}
        for edit in edits:
            by_location.setdefault(edit.location, []).append(edit)

        staged: List[Tuple[str, str]] = []
        try:
            for location, doc_edits in by_location.items():
                text = Path(location).read_text(encoding="utf-8")
                for edit in sorted(doc_edits, key=lambda e: e.start, reverse=True):
                    text = text[: edit.start] + edit.new_text + text[edit.end :]
                fd, tmp_path = tempfile.mkstemp(dir=os.path.dirname(location) or ".", suffix=".tmp")
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(text)
                staged.append((tmp_path, location))
        except OSError as exc:
            logger.error("Staging manifest edits failed: %s", exc)
            for tmp_path, _ in staged:
                _remove_quietly(tmp_path)
            return False

        for tmp_path, location in staged:
            os.replace(tmp_path, location)
        return True


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except OSError:
        pass


class ConsoleClipboard:
    """Stand-in clipboard for terminals: shows the text so it can be copied by hand."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    async def write_text(self, text: str) -> None:
        self.console.print(f"[bold cyan]Copy:[/bold cyan] {text}", highlight=False)
