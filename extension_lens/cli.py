"""Entry point for the extension-lens command line tool."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .conflicts import MISSING_ACTIVATION, AnalyzerConfig, Conflict
from .engine import DiagnosticsEngine
from .formatting import format_commands, format_conflicts, format_log_entries
from .host import ConsoleClipboard, DirectoryRegistry, LocalFileEditor, StaticCommandTable
from .logs import LogEntry, LogMonitor
from .profiling import log_slow_operation
from .remediation import RemediationPolicy

DEFAULT_EXTENSIONS_DIR = "~/.vscode/extensions"
OWN_LOG_DIR = "extension-lens"


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    return asyncio.run(_run(args))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find conflicts and errors among installed editor extensions.")
    parser.add_argument("--extensions-dir", default=DEFAULT_EXTENSIONS_DIR, help="Directory of installed extensions")
    parser.add_argument("--commands", help="File listing runtime command ids, one per line")
    parser.add_argument("--active", action="append", default=[], help="Treat this extension id as active")
    parser.add_argument("--log-root", help="Session log directory holding one folder per extension")
    parser.add_argument("--overlap-threshold", type=int, default=2, help="Activation overlap threshold")
    parser.add_argument("--collision-severity", choices=["warning", "error"], default="error")
    parser.add_argument("--builtin-prefix", action="append", help="Extension id prefix treated as built-in")
    parser.add_argument("--json", action="store_true", help="Emit JSON")
    parser.add_argument("--ui", action="store_true", help="Render rich terminal tables")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="action")
    sub.add_parser("analyze", help="Run every conflict detector")

    fix = sub.add_parser("fix", help="Fix missing onCommand activation events")
    fix.add_argument("--command", dest="command_id", help="Show the manual fix for a single command")
    fix.add_argument("--extension", dest="extension_id", help="Extension owning --command")
    fix.add_argument("--dry-run", action="store_true", help="Compute manifest edits without writing them")

    suggest = sub.add_parser("suggest", help="Suggest unused keybindings")
    suggest.add_argument("binding", help="Keybinding to replace")

    logs = sub.add_parser("logs", help="Show parsed logs for one extension")
    logs.add_argument("source", help="Log folder name")

    errors = sub.add_parser("errors", help="Show recent errors across all extensions")
    errors.add_argument("--limit", type=int, default=50)

    commands = sub.add_parser("commands", help="List runtime commands")
    commands.add_argument("--search", help="Filter by id, title or source")
    commands.add_argument("--unmapped", action="store_true", help="Only commands no manifest declares")
    return parser


def _build_engine(args: argparse.Namespace, console: Console) -> DiagnosticsEngine:
    config = AnalyzerConfig(
        activation_overlap_threshold=args.overlap_threshold,
        command_collision_severity=args.collision_severity,
        builtin_prefixes=tuple(args.builtin_prefix) if args.builtin_prefix else AnalyzerConfig().builtin_prefixes,
    )
    command_table = StaticCommandTable.from_file(args.commands) if args.commands else StaticCommandTable()
    log_monitor = LogMonitor(Path(args.log_root) / OWN_LOG_DIR) if args.log_root else LogMonitor()
    return DiagnosticsEngine(
        registry=DirectoryRegistry(args.extensions_dir, active_ids=args.active),
        command_table=command_table,
        file_editor=LocalFileEditor(),
        clipboard=ConsoleClipboard(console),
        log_monitor=log_monitor,
        config=config,
        policy=RemediationPolicy(auto_apply_batch=not getattr(args, "dry_run", False)),
        slow_operation_hook=log_slow_operation,
    )


async def _run(args: argparse.Namespace) -> int:
    console = Console()
    engine = _build_engine(args, console)
    action = args.action or "analyze"

    if action == "analyze":
        conflicts = await engine.run_full_analysis()
        if args.json:
            print(_to_json([asdict(conflict) for conflict in conflicts]))
        elif args.ui:
            _render_conflicts(console, conflicts)
        else:
            print(format_conflicts(conflicts))
        return 1 if any(conflict.severity == "error" for conflict in conflicts) else 0

    if action == "fix":
        return await _fix(args, engine)

    if action == "suggest":
        suggestions = await engine.suggest_keybindings(args.binding)
        if args.json:
            print(_to_json(suggestions))
        elif suggestions:
            print("\n".join(suggestions))
        else:
            print("No alternative keybindings available.")
        return 0

    if action in ("logs", "errors"):
        if action == "logs":
            entries = await engine.get_logs(args.source)
        else:
            entries = await engine.get_recent_errors(args.limit)
        if args.json:
            print(_to_json([asdict(entry) for entry in entries]))
        elif args.ui:
            _render_logs(console, entries)
        else:
            print(format_log_entries(entries))
        return 0

    if action == "commands":
        if args.unmapped:
            infos = await engine.unmapped_runtime_commands()
        elif args.search:
            infos = await engine.search_commands(args.search)
        else:
            infos = await engine.describe_commands()
        print(_to_json([asdict(info) for info in infos]) if args.json else format_commands(infos))
        return 0

    return 2


async def _fix(args: argparse.Namespace, engine: DiagnosticsEngine) -> int:
    if args.command_id:
        conflict = Conflict(
            type="registration",
            id=args.command_id,
            sources=(args.extension_id or "unknown",),
            severity="warning",
            description="",
            component_id=args.extension_id or "unknown",
            code=MISSING_ACTIVATION,
        )
        single = await engine.run_single_remediation(conflict)
        print(_to_json(asdict(single)) if args.json else single.message)
        return 0 if single.success else 1

    batch = await engine.run_batch_remediation()
    if args.json:
        print(_to_json(asdict(batch)))
    else:
        print(batch.message)
        for component_id, reason in batch.failures.items():
            print(f"  {component_id}: {reason}")
    return 0 if batch.success else 1


def _to_json(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2)


def _render_conflicts(console: Console, conflicts: List[Conflict]) -> None:
    if not conflicts:
        console.print(Panel("No conflicts detected!", style="bold green"))
        return

    table = Table(title=f"Found {len(conflicts)} conflict(s)", box=box.SIMPLE_HEAD)
    table.add_column("Severity", style="bold")
    table.add_column("Type")
    table.add_column("Id")
    table.add_column("Sources")
    table.add_column("Description")
    for conflict in conflicts:
        style = "red" if conflict.severity == "error" else "yellow"
        table.add_row(
            f"[{style}]{conflict.severity}[/{style}]",
            conflict.type,
            conflict.id,
            "\n".join(conflict.sources),
            conflict.description,
        )
    console.print(table)


def _render_logs(console: Console, entries: List[LogEntry]) -> None:
    if not entries:
        console.print(Panel("No log entries.", style="bold green"))
        return

    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("Time")
    table.add_column("Level", style="bold")
    table.add_column("Source")
    table.add_column("Message")
    for entry in entries:
        table.add_row(entry.timestamp, entry.level, entry.source, entry.message)
    console.print(table)


if __name__ == "__main__":
    raise SystemExit(main())
