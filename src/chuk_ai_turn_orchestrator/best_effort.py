# chuk_ai_turn_orchestrator/best_effort.py
"""
Named best-effort operations.

Some engine calls (finalize notifications, evictions) must never fail a
turn. They are run through :func:`best_effort`, which logs a failure and
reports it as ``False`` instead of raising. :class:`BackgroundCalls`
runs them fire-and-forget while keeping a reference to every task so
they can be drained on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable

from chuk_ai_turn_orchestrator.exceptions import describe_error

logger = logging.getLogger(__name__)


async def best_effort(operation: str, awaitable: Awaitable[object]) -> bool:
    """
    Await ``awaitable``, logging and absorbing any ``Exception``.

    Returns:
        True if the operation succeeded.
    """
    try:
        await awaitable
    except Exception as e:
        logger.warning(f"{operation} failed (not propagated): {describe_error(e)}")
        return False
    return True


class BackgroundCalls:
    """Fire-and-forget runner for best-effort operations."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, operation: str, awaitable: Awaitable[object]) -> asyncio.Task:
        task = asyncio.ensure_future(best_effort(operation, awaitable))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every spawned operation to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
