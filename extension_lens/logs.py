"""Read and parse per-extension log files with bounded memory."""

from __future__ import annotations

import asyncio
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Literal, Optional, Union

logger = logging.getLogger(__name__)

LogLevel = Literal["info", "warn", "error", "debug"]

MAX_READ_BYTES = 50 * 1024
TRUNCATION_MARKER = "...[TRUNCATED]...\n"
HOST_CHANNEL = "exthost"
DEFAULT_ERROR_LIMIT = 50

# [2024-01-01T00:00:00.000] [exthost] [error] message
_LINE_PATTERN = re.compile(r"^\[(.*?)\] \[(.*?)\] \[(.*?)\] (.*)$")


@dataclass
class LogEntry:
    timestamp: str
    level: LogLevel
    message: str
    source: str


def normalize_level(token: str) -> LogLevel:
    token = token.lower()
    if "err" in token:
        return "error"
    if "warn" in token:
        return "warn"
    if "debug" in token or "trace" in token:
        return "debug"
    return "info"


def parse_log_content(content: str, source: str) -> List[LogEntry]:
    """Split raw log text into entries, folding continuation lines into the previous one."""
    entries: List[LogEntry] = []
    for line in content.split("\n"):
        line = line.rstrip("\r")
        match = _LINE_PATTERN.match(line)
        if match:
            timestamp, channel, level, message = match.groups()
            entries.append(
                LogEntry(
                    timestamp=timestamp,
                    level=normalize_level(level),
                    message=message,
                    source=source if channel == HOST_CHANNEL else channel,
                )
            )
        elif line.strip() and entries:
            entries[-1].message += "\n" + line
    return entries


def read_tail(path: Union[str, os.PathLike], max_bytes: int = MAX_READ_BYTES) -> str:
    """Return the file text, or only its trailing ``max_bytes`` behind a truncation marker.

    Unreadable files read as an empty string.
    """
    try:
        with open(path, "rb") as handle:
            size = os.fstat(handle.fileno()).st_size
            if size <= max_bytes:
                return handle.read(max_bytes).decode("utf-8", errors="replace")
            handle.seek(size - max_bytes)
            tail = handle.read(max_bytes)
    except OSError as exc:
        logger.debug("Cannot read log file %s: %s", path, exc)
        return ""
    return TRUNCATION_MARKER + tail.decode("utf-8", errors="replace")


def resolve_log_root(own_log_path: Optional[Union[str, os.PathLike]]) -> Optional[Path]:
    """The session log root is the parent of this tool's own log location."""
    if not own_log_path:
        return None
    try:
        return Path(own_log_path).expanduser().resolve().parent
    except (OSError, RuntimeError, ValueError):
        return None


class LogMonitor:
    def __init__(self, own_log_path: Optional[Union[str, os.PathLike]] = None, max_bytes: int = MAX_READ_BYTES) -> None:
        self.root = resolve_log_root(own_log_path)
        self.max_bytes = max_bytes

    async def list_sources(self) -> List[str]:
        """Names of every sibling log directory under the session root."""
        if self.root is None:
            return []
        return await asyncio.to_thread(self._list_dirs, self.root)

    async def get_logs(self, source_id: str) -> List[LogEntry]:
        if self.root is None:
            return []
        source_dir = (self.root / source_id).resolve()
        if self.root not in source_dir.parents:
            logger.debug("Rejecting log source %r outside %s", source_id, self.root)
            return []
        files = await asyncio.to_thread(self._list_log_files, source_dir)

        entries: List[LogEntry] = []
        for path in files:
            content = await asyncio.to_thread(read_tail, path, self.max_bytes)
            entries.extend(parse_log_content(content, source_id))
        entries.sort(key=lambda entry: entry.timestamp)
        return entries

    async def get_recent_errors(self, limit: int = DEFAULT_ERROR_LIMIT) -> List[LogEntry]:
        if self.root is None:
            logger.info("Could not determine the root log directory")
            return []
        logger.debug("Scanning logs at %s", self.root)

        sources = await self.list_sources()
        per_source = await asyncio.gather(*(self.get_logs(source) for source in sources))
        errors = [entry for entries in per_source for entry in entries if entry.level == "error"]
        errors.sort(key=lambda entry: entry.timestamp, reverse=True)
        return errors[: max(limit, 0)]

    @staticmethod
    def _list_dirs(root: Path) -> List[str]:
        try:
            return sorted(child.name for child in root.iterdir() if child.is_dir())
        except OSError as exc:
            logger.debug("Cannot list log root %s: %s", root, exc)
            return []

    @staticmethod
    def _list_log_files(source_dir: Path) -> List[Path]:
        try:
            return sorted(
                child for child in source_dir.iterdir() if child.is_file() and child.name.endswith(".log")
            )
        except OSError as exc:
            logger.debug("Cannot list log directory %s: %s", source_dir, exc)
            return []
