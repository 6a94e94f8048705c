"""Detect conflicts and misconfiguration across a manifest snapshot."""

from __future__ import annotations

import asyncio
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Literal, Optional, Protocol, Sequence, Tuple

from .manifest import ComponentManifest, ManifestCollector

logger = logging.getLogger(__name__)

ConflictType = Literal["command", "keybinding", "activation", "registration"]
Severity = Literal["warning", "error"]

WILDCARD_EVENT = "*"
STARTUP_FINISHED_EVENT = "onStartupFinished"
EAGER_EVENTS = (WILDCARD_EVENT, STARTUP_FINISHED_EVENT)

MISSING_ACTIVATION = "missing-activation"

_MODIFIER_ALIASES = {"control": "ctrl", "option": "alt", "command": "cmd", "meta": "cmd"}
_ALIAS_PATTERN = re.compile(r"(control|option|command|meta)\+")
_WHITESPACE = re.compile(r"\s+")


def normalize_keybinding(key: str) -> str:
    """Canonical form of a key chord: lower-case, no whitespace, aliases collapsed."""
    key = _WHITESPACE.sub("", key.lower())
    return _ALIAS_PATTERN.sub(lambda match: _MODIFIER_ALIASES[match.group(1)] + "+", key)


def activation_token(command_id: str) -> str:
    return f"onCommand:{command_id}"


@dataclass(frozen=True)
class Conflict:
    type: ConflictType
    id: str
    sources: Tuple[str, ...]
    severity: Severity
    description: str
    component_id: Optional[str] = None
    code: Optional[str] = None


@dataclass(frozen=True)
class AnalyzerConfig:
    activation_overlap_threshold: int = 2
    command_collision_severity: Severity = "error"
    builtin_prefixes: Tuple[str, ...] = ("vscode.", "microsoft.")


@dataclass(frozen=True)
class AnalysisContext:
    manifests: Tuple[ComponentManifest, ...]
    runtime_commands: FrozenSet[str] = field(default_factory=frozenset)


class ConflictRule(Protocol):
    name: str

    def evaluate(self, context: AnalysisContext) -> List[Conflict]:
        ...


class RuntimeCommandTable(Protocol):
    async def get_commands(self) -> Iterable[str]:
        ...


@dataclass(frozen=True)
class CommandCollisionRule:
    severity: Severity = "error"
    name: str = "command-collision"

    def evaluate(self, context: AnalysisContext) -> List[Conflict]:
        owners: Dict[str, "OrderedDict[str, str]"] = {}
        for manifest in context.manifests:
            for command_id in manifest.command_ids:
                owners.setdefault(command_id, OrderedDict())[manifest.id] = manifest.display_name

        return [
            Conflict(
                type="command",
                id=command_id,
                sources=tuple(names.values()),
                severity=self.severity,
                description=f'Command "{command_id}" is registered by multiple extensions',
                code="duplicate-command",
            )
            for command_id, names in owners.items()
            if len(names) > 1
        ]


@dataclass(frozen=True)
class KeybindingCollisionRule:
    name: str = "keybinding-collision"

    def evaluate(self, context: AnalysisContext) -> List[Conflict]:
        groups: Dict[str, List[str]] = {}
        for manifest in context.manifests:
            for binding in manifest.keybindings:
                key = binding.representative_key
                if not key:
                    continue
                groups.setdefault(normalize_keybinding(key), []).append(
                    f"{manifest.display_name} ({binding.command})"
                )

        return [
            Conflict(
                type="keybinding",
                id=key,
                sources=tuple(sources),
                severity="warning",
                description=f'Keybinding "{key}" is used by multiple commands',
                code="duplicate-keybinding",
            )
            for key, sources in groups.items()
            if len(sources) > 1
        ]


@dataclass(frozen=True)
class ActivationOverlapRule:
    threshold: int = 2
    name: str = "activation-overlap"

    def evaluate(self, context: AnalysisContext) -> List[Conflict]:
        owners: Dict[str, "OrderedDict[str, str]"] = {}
        for manifest in context.manifests:
            for event in manifest.activation_events:
                if event in EAGER_EVENTS:
                    continue
                owners.setdefault(event, OrderedDict())[manifest.id] = manifest.display_name

        return [
            Conflict(
                type="activation",
                id=event,
                sources=tuple(names.values()),
                severity="warning",
                description=(
                    f'Multiple extensions ({len(names)}) activate on "{event}". '
                    "This may impact editor responsiveness."
                ),
                code="activation-overlap",
            )
            for event, names in owners.items()
            if len(names) > self.threshold
        ]


@dataclass(frozen=True)
class RegistrationMismatchRule:
    builtin_prefixes: Tuple[str, ...] = ("vscode.", "microsoft.")
    name: str = "registration-mismatch"

    def evaluate(self, context: AnalysisContext) -> List[Conflict]:
        conflicts: List[Conflict] = []
        for manifest in context.manifests:
            if manifest.id.startswith(self.builtin_prefixes):
                continue
            conflicts.extend(self._check_component(manifest, context.runtime_commands))
        return conflicts

    def _check_component(self, manifest: ComponentManifest, runtime_commands: FrozenSet[str]) -> List[Conflict]:
        findings: List[Conflict] = []
        events = set(manifest.activation_events)
        eager = any(event in events for event in EAGER_EVENTS)
        sources = (manifest.display_name,)

        for command_id in manifest.command_ids:
            if manifest.is_active and command_id not in runtime_commands:
                findings.append(
                    Conflict(
                        type="registration",
                        id=command_id,
                        sources=sources,
                        severity="error",
                        description=(
                            f'Command "{command_id}" is defined in the manifest but not registered in code. '
                            'Users will see "Command not found".'
                        ),
                        component_id=manifest.id,
                        code="ghost-command",
                    )
                )
            token = activation_token(command_id)
            if token not in events and not eager:
                findings.append(
                    Conflict(
                        type="registration",
                        id=command_id,
                        sources=sources,
                        severity="warning",
                        description=(
                            f'Command "{command_id}" is missing "{token}" in activationEvents. '
                            "It may fail to trigger if the extension isn't already active."
                        ),
                        component_id=manifest.id,
                        code=MISSING_ACTIVATION,
                    )
                )

        if WILDCARD_EVENT in events:
            findings.append(
                Conflict(
                    type="activation",
                    id=WILDCARD_EVENT,
                    sources=sources,
                    severity="warning",
                    description='Extension uses wildcard activation ("*"). This significantly impacts startup time.',
                    component_id=manifest.id,
                    code="eager-activation",
                )
            )
        return findings


def default_rules(config: Optional[AnalyzerConfig] = None) -> List[ConflictRule]:
    config = config or AnalyzerConfig()
    return [
        CommandCollisionRule(severity=config.command_collision_severity),
        KeybindingCollisionRule(),
        ActivationOverlapRule(threshold=config.activation_overlap_threshold),
        RegistrationMismatchRule(builtin_prefixes=config.builtin_prefixes),
    ]


def merge_rules(rules: Sequence[ConflictRule], context: AnalysisContext) -> List[Conflict]:
    """Evaluate every rule against the same context and concatenate in rule order."""
    conflicts: List[Conflict] = []
    for rule in rules:
        found = rule.evaluate(context)
        logger.debug("Rule %s produced %d conflict(s)", rule.name, len(found))
        conflicts.extend(found)
    return conflicts


class ConflictAnalyzer:
    def __init__(
        self,
        collector: ManifestCollector,
        command_table: RuntimeCommandTable,
        rules: Optional[Sequence[ConflictRule]] = None,
    ) -> None:
        self._collector = collector
        self._command_table = command_table
        self._rules = list(rules) if rules is not None else default_rules()

    @property
    def rules(self) -> List[ConflictRule]:
        return list(self._rules)

    async def build_context(self) -> AnalysisContext:
        manifests, commands = await asyncio.gather(
            self._collector.collect(),
            self._command_table.get_commands(),
        )
        return AnalysisContext(manifests=tuple(manifests), runtime_commands=frozenset(commands))

    async def analyze(self) -> List[Conflict]:
        context = await self.build_context()
        conflicts = merge_rules(self._rules, context)
        logger.info("Analyzed %d extension(s), found %d conflict(s)", len(context.manifests), len(conflicts))
        return conflicts


@dataclass(frozen=True)
class ConflictDetails:
    command_ids: Tuple[str, ...]
    component_ids: Tuple[str, ...]


def conflict_details(conflict: Conflict, manifests: Iterable[ComponentManifest]) -> ConflictDetails:
    """Commands and owning extensions bound to the key of a keybinding conflict."""
    command_ids: List[str] = []
    component_ids: List[str] = []
    if conflict.type == "keybinding":
        target = normalize_keybinding(conflict.id)
        for manifest in manifests:
            for binding in manifest.keybindings:
                key = binding.representative_key
                if key and normalize_keybinding(key) == target:
                    command_ids.append(binding.command)
                    component_ids.append(manifest.id)
    return ConflictDetails(command_ids=tuple(command_ids), component_ids=tuple(component_ids))
