"""Patch missing ``onCommand`` activation events into extension manifests.

Two paths exist and they deliberately differ:

* ``remediate_single`` never touches a file. It produces the activation token
  the user has to add and puts it on the clipboard.
* ``remediate_batch`` rewrites every affected manifest in one transaction,
  unless ``RemediationPolicy.auto_apply_batch`` is off, in which case the
  edits are computed and returned without being applied.
"""

from __future__ import annotations

import json
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Union

from .conflicts import MISSING_ACTIVATION, Conflict, activation_token
from .manifest import ExtensionRegistry

logger = logging.getLogger(__name__)

DEFAULT_INDENT = 4
_INDENT_PATTERN = re.compile(r"^([ \t]+)\S", re.MULTILINE)


@dataclass(frozen=True)
class DocumentEdit:
    """Replace the ``[start, end)`` character range of one document."""

    location: str
    start: int
    end: int
    new_text: str


class FileEditor(Protocol):
    async def read_text(self, location: str) -> str:
        ...

    async def apply_edits(self, edits: Sequence[DocumentEdit]) -> bool:
        ...


class Clipboard(Protocol):
    async def write_text(self, text: str) -> None:
        ...


@dataclass(frozen=True)
class RemediationPolicy:
    auto_apply_batch: bool = True


@dataclass
class RemediationResult:
    success: bool
    message: str
    text: Optional[str] = None


@dataclass
class BatchRemediationResult:
    success: bool
    message: str
    edits: List[DocumentEdit] = field(default_factory=list)
    updated_components: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    applied: bool = False


def is_missing_activation(conflict: Conflict) -> bool:
    return conflict.type == "registration" and conflict.code == MISSING_ACTIVATION and bool(conflict.component_id)


def detect_indent(text: str) -> Union[int, str]:
    match = _INDENT_PATTERN.search(text)
    if not match:
        return DEFAULT_INDENT
    indent = match.group(1)
    if "\t" in indent:
        return "\t"
    return len(indent)


def patch_activation_events(text: str, command_ids: Iterable[str]) -> Optional[str]:
    """Return the rewritten manifest text, or None when nothing needs adding.

    Raises ``ValueError`` (including ``json.JSONDecodeError``) for manifests
    that cannot be patched.
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("manifest root is not an object")

    events = data.get("activationEvents")
    if events is None:
        events = []
    if not isinstance(events, list):
        raise ValueError("activationEvents is not a list")

    added = False
    for command_id in command_ids:
        token = activation_token(command_id)
        if token not in events:
            events.append(token)
            added = True
    if not added:
        return None

    data["activationEvents"] = sorted(events, key=str)
    patched = json.dumps(data, indent=detect_indent(text), ensure_ascii=False)
    if text.endswith("\n"):
        patched += "\n"
    return patched


class RemediationEngine:
    def __init__(
        self,
        registry: ExtensionRegistry,
        file_editor: Optional[FileEditor] = None,
        clipboard: Optional[Clipboard] = None,
        policy: Optional[RemediationPolicy] = None,
    ) -> None:
        self._registry = registry
        self._file_editor = file_editor
        self._clipboard = clipboard
        self.policy = policy or RemediationPolicy()

    async def remediate_single(self, conflict: Conflict) -> RemediationResult:
        if not is_missing_activation(conflict):
            return RemediationResult(False, f'Conflict "{conflict.id}" is not a missing activation event.')

        token = activation_token(conflict.id)
        message = f"To fix this, add \"{token}\" to 'activationEvents' in package.json."
        if self._clipboard is None:
            return RemediationResult(False, f"Manual fix required: {message} (no clipboard available)", token)
        try:
            await self._clipboard.write_text(token)
        except Exception as exc:
            logger.warning("Clipboard write failed for %s: %s", conflict.id, exc)
            return RemediationResult(False, f"Manual fix required: {message} Copy failed: {exc}", token)
        return RemediationResult(True, f"Manual fix required: {message} Copied to clipboard.", token)

    async def remediate_batch(self, conflicts: Iterable[Conflict]) -> BatchRemediationResult:
        groups = group_by_component(conflict for conflict in conflicts if is_missing_activation(conflict))
        if not groups:
            return BatchRemediationResult(True, "No missing activation events detected.")
        file_editor = self._file_editor
        if file_editor is None:
            return BatchRemediationResult(False, "No file editor available to update manifests.")

        result = BatchRemediationResult(success=True, message="")
        for component_id, command_ids in groups.items():
            edit = await self._build_edit(file_editor, component_id, command_ids, result.failures)
            if edit is not None:
                result.edits.append(edit)
                result.updated_components.append(component_id)

        if not result.edits:
            result.success = not result.failures
            result.message = _summary("No manifest changes needed", result)
            return result

        if not self.policy.auto_apply_batch:
            result.message = _summary(
                f"Prepared activationEvents updates for {len(result.edits)} extension(s); not applied", result
            )
            return result

        try:
            result.applied = await file_editor.apply_edits(result.edits)
        except Exception as exc:
            logger.error("Applying manifest edits failed: %s", exc)
            result.success = False
            result.message = f"Failed to apply manifest edits: {exc}"
            return result

        result.success = result.applied
        if result.applied:
            result.message = _summary(f"Updated activationEvents for {len(result.edits)} extension(s)", result)
        else:
            result.message = "The editor rejected the manifest edits."
        return result

    async def _build_edit(
        self, file_editor: FileEditor, component_id: str, command_ids: Sequence[str], failures: Dict[str, str]
    ) -> Optional[DocumentEdit]:
        descriptor = await self._registry.get_component(component_id)
        if descriptor is None:
            logger.debug("Extension %s disappeared before remediation, skipping", component_id)
            return None
        if not descriptor.location:
            failures[component_id] = "manifest location unknown"
            return None

        try:
            text = await file_editor.read_text(descriptor.location)
            patched = patch_activation_events(text, command_ids)
        except (OSError, ValueError) as exc:
            logger.error("Failed to process package.json for %s: %s", component_id, exc)
            failures[component_id] = str(exc)
            return None

        if patched is None:
            return None
        return DocumentEdit(location=descriptor.location, start=0, end=len(text), new_text=patched)


def group_by_component(conflicts: Iterable[Conflict]) -> "OrderedDict[str, List[str]]":
    groups: "OrderedDict[str, List[str]]" = OrderedDict()
    for conflict in conflicts:
        if not conflict.component_id:
            logger.debug("Skipping %s: no owning extension", conflict.id)
            continue
        ids = groups.setdefault(conflict.component_id, [])
        if conflict.id not in ids:
            ids.append(conflict.id)
    return groups


def _summary(headline: str, result: BatchRemediationResult) -> str:
    if not result.failures:
        return f"{headline}."
    failed = ", ".join(sorted(result.failures))
    return f"{headline}; failed for: {failed}."
