"""Suggest key combinations that no installed extension has claimed."""

from __future__ import annotations

import logging
from itertools import product
from typing import Iterable, List, Optional, Set

from .conflicts import normalize_keybinding
from .manifest import ComponentManifest

MODIFIERS = ("ctrl+shift", "ctrl+alt", "alt+shift", "ctrl+shift+alt")
KEYS = tuple(f"f{n}" for n in range(1, 13)) + tuple("abcdefghijklmnopqrstuvwxyz") + tuple("1234567890")
MAX_SUGGESTIONS = 10

logger = logging.getLogger(__name__)


def used_keybindings(manifests: Iterable[ComponentManifest]) -> Set[str]:
    used: Set[str] = set()
    for manifest in manifests:
        for binding in manifest.keybindings:
            key = binding.representative_key
            if key:
                used.add(normalize_keybinding(key))
    return used


def candidate_bindings() -> List[str]:
    """All candidates in search order: modifier outer, key inner."""
    return [f"{modifier}+{key}" for modifier, key in product(MODIFIERS, KEYS)]


def suggest_keybindings(
    manifests: Iterable[ComponentManifest],
    current_binding: Optional[str] = None,
    limit: int = MAX_SUGGESTIONS,
) -> List[str]:
    """Return up to ``limit`` unused bindings, first found first.

    Only declared contributions count as used; ``current_binding`` labels the
    request and does not narrow the search. An exhausted candidate space
    yields an empty list.
    """
    used = used_keybindings(manifests)
    logger.debug("Suggesting replacements for %r against %d used binding(s)", current_binding, len(used))

    suggestions: List[str] = []
    for binding in candidate_bindings():
        if len(suggestions) >= limit:
            break
        if normalize_keybinding(binding) not in used:
            suggestions.append(binding)
    return suggestions
