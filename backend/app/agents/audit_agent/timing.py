"""Timeout and timing helpers for pipeline stages and external calls."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Awaitable, Optional, TypeVar

from .errors import StageTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def log_timing(node_name: str, action: str, duration_ms: Optional[float] = None) -> None:
    """Log a timing event in standard format."""
    if duration_ms is not None:
        logger.info("[TIMING] %s: %s — duration=%.0fms", node_name, action, duration_ms)
    else:
        logger.info("[TIMING] %s: %s", node_name, action)


@asynccontextmanager
async def async_timer(node_name: str, action: str = "STAGE"):
    log_timing(node_name, f"{action} START")
    start = time.perf_counter()
    try:
        yield
    finally:
        log_timing(node_name, f"{action} END", (time.perf_counter() - start) * 1000)


async def with_timeout(awaitable: Awaitable[T], seconds: float, label: str) -> T:
    """Await ``awaitable`` for at most ``seconds``; raise StageTimeoutError past that."""
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as exc:
        raise StageTimeoutError(label, seconds) from exc
