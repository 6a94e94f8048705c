"""Console-friendly formatting utilities."""

from __future__ import annotations

from typing import Iterable, Sequence

from .commands import CommandInfo
from .conflicts import Conflict
from .logs import LogEntry


def format_bytes(num: float) -> str:
    suffixes = ["B", "KiB", "MiB", "GiB", "TiB"]
    value = float(num)
    for suffix in suffixes:
        if value < 1024 or suffix == suffixes[-1]:
            return f"{value:.1f} {suffix}"
        value /= 1024
    return f"{value:.1f} TiB"


def render_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    widths = [len(h) for h in headers]
    for row in rows:
        for index, cell in enumerate(row):
            widths[index] = max(widths[index], len(cell))
    lines = []
    lines.append(_format_row(headers, widths))
    lines.append(_format_row(["-" * w for w in widths], widths))
    for row in rows:
        lines.append(_format_row(row, widths))
    return "\n".join(lines)


def format_conflicts(conflicts: Iterable[Conflict]) -> str:
    rows = [
        [conflict.severity, conflict.type, conflict.id, ", ".join(conflict.sources), conflict.description]
        for conflict in conflicts
    ]
    return render_table(["Severity", "Type", "Id", "Sources", "Description"], rows) if rows else "No conflicts detected."


def format_log_entries(entries: Iterable[LogEntry]) -> str:
    rows = [[entry.timestamp, entry.level, entry.source, _first_line(entry.message)] for entry in entries]
    return render_table(["Time", "Level", "Source", "Message"], rows) if rows else "No log entries."


def format_commands(commands: Iterable[CommandInfo]) -> str:
    rows = [[info.id, info.title or "", info.source] for info in commands]
    return render_table(["Command", "Title", "Source"], rows) if rows else "No commands."


def _first_line(message: str) -> str:
    head, _, rest = message.partition("\n")
    if not rest:
        return head
    extra = rest.count("\n") + 1
    return f"{head} (+{extra} lines)"


def _format_row(row: Sequence[str], widths: Sequence[int]) -> str:
    padded = [cell.ljust(width) for cell, width in zip(row, widths)]
    return " | ".join(padded)
