"""Flag slow engine operations."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

import psutil

from .formatting import format_bytes

logger = logging.getLogger(__name__)

SLOW_THRESHOLD_MS = 100.0

SlowOperationHook = Callable[[str, float], None]


def current_rss() -> Optional[int]:
    try:
        return psutil.Process().memory_info().rss
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return None


def log_slow_operation(name: str, duration_ms: float) -> None:
    rss = current_rss()
    memory = format_bytes(rss) if rss is not None else "unknown"
    logger.warning("Slow operation detected: %s took %.0fms (rss %s)", name, duration_ms, memory)


@asynccontextmanager
async def timed(
    name: str,
    hook: Optional[SlowOperationHook],
    threshold_ms: float = SLOW_THRESHOLD_MS,
) -> AsyncIterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        if hook is not None and duration_ms > threshold_ms:
            hook(name, duration_ms)
