# chuk_ai_turn_orchestrator/cancellation.py
"""
Cooperative cancellation.

A :class:`CancellationToken` combines a flag, checked at chunk and agent
iteration boundaries, with cancellation of the tasks currently running on
behalf of the turn (a stream blocked waiting for its next chunk, or a
sandbox execution). :class:`CancellationController` owns one token per
conversation and enforces that at most one turn is active per
conversation.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from chuk_ai_turn_orchestrator.exceptions import TurnCancelled, TurnInProgressError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cancellation state for a single turn."""

    def __init__(self) -> None:
        self._cancelled = False
        self._tasks: set[asyncio.Task] = set()
        self._finished = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def request_cancel(self) -> bool:
        """
        Request cancellation. Idempotent.

        Returns:
            True if this call transitioned the token to cancelled.
        """
        if self._cancelled:
            return False
        self._cancelled = True
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
        return True

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    def mark_finished(self) -> None:
        self._finished.set()

    async def wait_finished(self) -> None:
        """Wait until the turn owning this token has ended."""
        await self._finished.wait()

    def raise_if_cancelled(self, partial_answer: str = "", partial_reasoning: str | None = None) -> None:
        if self._cancelled:
            raise TurnCancelled(partial_answer, partial_reasoning)

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Run ``awaitable`` as a task that :meth:`request_cancel` can interrupt.

        Raises:
            TurnCancelled: the token was cancelled before or while running.
        """
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise TurnCancelled()

        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        try:
            return await task
        except asyncio.CancelledError:
            # Only our own cancellation becomes TurnCancelled; anything else
            # (caller task cancelled, loop shutdown) propagates untouched.
            if self._cancelled and task.cancelled():
                raise TurnCancelled() from None
            raise
        finally:
            self._tasks.discard(task)


class CancellationController:
    """Tracks the single active turn per conversation."""

    def __init__(self) -> None:
        self._active: dict[str, CancellationToken] = {}

    def begin(self, conversation_id: str) -> CancellationToken:
        """
        Register a new active turn.

        Raises:
            TurnInProgressError: a turn is already active for the conversation.
        """
        if conversation_id in self._active:
            raise TurnInProgressError(conversation_id)
        token = CancellationToken()
        self._active[conversation_id] = token
        return token

    def end(self, conversation_id: str, token: CancellationToken) -> None:
        if self._active.get(conversation_id) is token:
            del self._active[conversation_id]
        token.mark_finished()

    def is_active(self, conversation_id: str) -> bool:
        return conversation_id in self._active

    def token_for(self, conversation_id: str) -> CancellationToken | None:
        return self._active.get(conversation_id)

    def request_cancel(self, conversation_id: str) -> bool:
        """
        Cancel the active turn of a conversation.

        Returns:
            True if a turn was active (whether or not it was already cancelling).
        """
        token = self._active.get(conversation_id)
        if token is None:
            return False
        if token.request_cancel():
            logger.debug(f"Cancellation requested for conversation {conversation_id}")
        return True

    def cancel_all(self) -> int:
        """Cancel every active turn. Returns how many were active."""
        active = list(self._active)
        for conversation_id in active:
            self.request_cancel(conversation_id)
        return len(active)

    async def wait_idle(self) -> None:
        """Wait until every turn active at call time has ended."""
        tokens = list(self._active.values())
        if tokens:
            await asyncio.gather(*(token.wait_finished() for token in tokens))

    @property
    def active_count(self) -> int:
        return len(self._active)
