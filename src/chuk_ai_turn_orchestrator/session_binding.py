# chuk_ai_turn_orchestrator/session_binding.py
"""
Session Binding - maps conversations to engine session handles.

A conversation has at most one valid handle at a time. Handles are
created lazily on the first turn (seeded with recent history so resumed
conversations keep their context), replaced only by an explicit reset,
and dropped when invalidated.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from chuk_ai_turn_orchestrator.best_effort import best_effort
from chuk_ai_turn_orchestrator.exceptions import EngineError, SessionUnavailableError
from chuk_ai_turn_orchestrator.models.turn_request import RecentTurn
from chuk_ai_turn_orchestrator.protocols import InferenceEngine

logger = logging.getLogger(__name__)


class SessionBinding:
    """Owns the conversation -> session handle table."""

    def __init__(self, engine: InferenceEngine):
        self._engine = engine
        self._handles: dict[str, str] = {}

    def current(self, conversation_id: str) -> str | None:
        return self._handles.get(conversation_id)

    @property
    def bound_count(self) -> int:
        return len(self._handles)

    async def resolve_session(
        self,
        conversation_id: str,
        system_prompt: str,
        recent_turns: Sequence[RecentTurn] = (),
    ) -> str:
        """
        Return the conversation's handle, creating a session if none is bound.

        An existing handle is returned unchanged: the engine already holds
        the session's accumulated state, so no history is replayed.
        """
        existing = self._handles.get(conversation_id)
        if existing is not None:
            logger.debug(f"Conversation {conversation_id}: reusing session {existing}")
            return existing

        handle = await self._engine.create_session(system_prompt, list(recent_turns) or None)
        self._handles[conversation_id] = handle
        logger.debug(f"Conversation {conversation_id}: new session {handle} (history turns={len(recent_turns)})")
        return handle

    def adopt(self, conversation_id: str, handle: str) -> None:
        """Record a handle the engine swapped in on its own (internal reset)."""
        previous = self._handles.get(conversation_id)
        if previous != handle:
            logger.debug(f"Conversation {conversation_id}: engine swapped session {previous} -> {handle}")
        self._handles[conversation_id] = handle

    def invalidate(self, conversation_id: str) -> str | None:
        """Forget the conversation's handle so the next turn creates a fresh one."""
        handle = self._handles.pop(conversation_id, None)
        if handle is not None:
            logger.debug(f"Conversation {conversation_id}: invalidated session {handle}")
        return handle

    async def reset(
        self,
        conversation_id: str,
        system_prompt: str,
        recent_turns: Sequence[RecentTurn] = (),
        document_context: str | None = None,
        narrative_summary: str | None = None,
        handle: str | None = None,
    ) -> str:
        """
        Discard the session's engine state and bind a fresh, pre-seeded handle.

        Args:
            handle: The handle to reset. Defaults to the currently bound one.

        Raises:
            SessionUnavailableError: no handle to reset.
            EngineError: the engine handed back the handle being reset.
        """
        old = handle or self._handles.get(conversation_id)
        if old is None:
            raise SessionUnavailableError(f"No session bound for conversation {conversation_id}")

        new = await self._engine.reset_and_replay(
            old,
            system_prompt,
            list(recent_turns),
            narrative_summary=narrative_summary,
            document_context=document_context,
        )
        if new == old:
            self._handles.pop(conversation_id, None)
            raise EngineError(f"Engine reused session handle {old} after reset", session_handle=old)

        self._handles[conversation_id] = new
        logger.info(f"Conversation {conversation_id}: reset session {old} -> {new} (turns={len(recent_turns)})")
        return new

    async def evict(self, conversation_id: str) -> bool:
        """
        Invalidate the handle and ask the engine to release it.

        Engine failures are logged, not raised: the handle is gone from the
        binding either way.

        Returns:
            True if a handle was bound.
        """
        handle = self.invalidate(conversation_id)
        if handle is None:
            return False
        await best_effort(f"evict session {handle}", self._engine.evict_session(handle))
        return True
