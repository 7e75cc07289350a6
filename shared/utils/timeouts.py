"""Deadline helper for best-effort network calls (web search, URL fetch)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_timeout(
    awaitable: Awaitable[T],
    timeout: float,
    default: T,
    label: str = "operation",
) -> T:
    """
    Await ``awaitable`` for at most ``timeout`` seconds.

    On timeout the underlying task is cancelled and ``default`` is returned.
    Any other exception is logged and also yields ``default``; callers use
    this for optional context, so a failure must not fail the request.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("%s timed out after %.1fs", label, timeout)
    except Exception:
        logger.warning("%s failed", label, exc_info=True)
    return default
