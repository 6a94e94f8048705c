"""Operations exposed to the UI and CLI layers."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .commands import CachedCommandTable, CommandInfo, describe_commands, search_commands, unmapped_runtime_commands
from .conflicts import (
    AnalyzerConfig,
    Conflict,
    ConflictAnalyzer,
    ConflictDetails,
    ConflictRule,
    RegistrationMismatchRule,
    RuntimeCommandTable,
    conflict_details,
    default_rules,
    merge_rules,
)
from .logs import DEFAULT_ERROR_LIMIT, LogEntry, LogMonitor
from .manifest import ExtensionRegistry, ManifestCollector
from .profiling import SlowOperationHook, timed
from .remediation import (
    BatchRemediationResult,
    Clipboard,
    FileEditor,
    RemediationEngine,
    RemediationPolicy,
    RemediationResult,
)
from .suggestions import suggest_keybindings

logger = logging.getLogger(__name__)


class DiagnosticsEngine:
    def __init__(
        self,
        registry: ExtensionRegistry,
        command_table: RuntimeCommandTable,
        file_editor: Optional[FileEditor] = None,
        clipboard: Optional[Clipboard] = None,
        log_monitor: Optional[LogMonitor] = None,
        config: Optional[AnalyzerConfig] = None,
        policy: Optional[RemediationPolicy] = None,
        rules: Optional[Sequence[ConflictRule]] = None,
        slow_operation_hook: Optional[SlowOperationHook] = None,
        cache_commands: bool = True,
    ) -> None:
        self.config = config or AnalyzerConfig()
        self.collector = ManifestCollector(registry)
        self.command_table: RuntimeCommandTable = (
            CachedCommandTable(command_table) if cache_commands else command_table
        )
        self.analyzer = ConflictAnalyzer(
            self.collector,
            self.command_table,
            rules if rules is not None else default_rules(self.config),
        )
        self.remediation = RemediationEngine(registry, file_editor, clipboard, policy)
        self.log_monitor = log_monitor or LogMonitor()
        self._slow_hook = slow_operation_hook

    async def run_full_analysis(self) -> List[Conflict]:
        async with timed("analysis", self._slow_hook):
            return await self.analyzer.analyze()

    async def run_single_remediation(self, conflict: Conflict) -> RemediationResult:
        async with timed("single-remediation", self._slow_hook):
            return await self.remediation.remediate_single(conflict)

    async def run_batch_remediation(self) -> BatchRemediationResult:
        async with timed("batch-remediation", self._slow_hook):
            context = await self.analyzer.build_context()
            rule = RegistrationMismatchRule(builtin_prefixes=self.config.builtin_prefixes)
            conflicts = merge_rules([rule], context)
            result = await self.remediation.remediate_batch(conflicts)
            logger.info(result.message)
            return result

    async def suggest_keybindings(self, current_binding: str) -> List[str]:
        async with timed("suggest-keybindings", self._slow_hook):
            manifests = await self.collector.collect()
            return suggest_keybindings(manifests, current_binding)

    async def conflict_details(self, conflict: Conflict) -> ConflictDetails:
        manifests = await self.collector.collect()
        return conflict_details(conflict, manifests)

    async def get_logs(self, source_id: str) -> List[LogEntry]:
        async with timed("get-logs", self._slow_hook):
            return await self.log_monitor.get_logs(source_id)

    async def get_recent_errors(self, limit: int = DEFAULT_ERROR_LIMIT) -> List[LogEntry]:
        async with timed("get-recent-errors", self._slow_hook):
            return await self.log_monitor.get_recent_errors(limit)

    async def list_log_sources(self) -> List[str]:
        return await self.log_monitor.list_sources()

    async def describe_commands(self) -> List[CommandInfo]:
        context = await self.analyzer.build_context()
        return describe_commands(sorted(context.runtime_commands), context.manifests)

    async def search_commands(self, query: str) -> List[CommandInfo]:
        return search_commands(await self.describe_commands(), query)

    async def unmapped_runtime_commands(self) -> List[CommandInfo]:
        return unmapped_runtime_commands(await self.describe_commands())
