# chuk_ai_turn_orchestrator/protocols.py
"""
Protocols for the external collaborators of the orchestrator.

The inference engine, the code sandbox and the conversation store are
opaque services with their own concurrency guarantees. This package only
issues one call at a time per conversation against them.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Collection, Sequence
from typing import Protocol

from chuk_ai_turn_orchestrator.models.chat_message import ChatMessage
from chuk_ai_turn_orchestrator.models.run_output import RunOutput
from chuk_ai_turn_orchestrator.models.sampling_params import SamplingParams
from chuk_ai_turn_orchestrator.models.stream_chunk import StreamChunk
from chuk_ai_turn_orchestrator.models.turn_request import RecentTurn


class InferenceEngine(Protocol):
    """Remote, multi-process engine that holds per-session generation state."""

    async def create_session(
        self,
        system_prompt: str,
        recent_turns: Sequence[RecentTurn] | None = None,
    ) -> str:
        """Allocate a session, optionally replaying prior turns. Returns its handle."""
        ...

    async def complete_stream(
        self,
        session_handle: str,
        prompt: str,
        params: SamplingParams,
        system_prompt: str,
        recent_turns: Sequence[RecentTurn],
        document_context: str | None = None,
    ) -> tuple[AsyncIterator[StreamChunk], str]:
        """
        Start a streamed generation.

        Returns the chunk stream and the handle actually used, which differs
        from ``session_handle`` when the engine reset the session internally.
        """
        ...

    async def finalize_completed(
        self,
        session_handle: str,
        prompt_tokens: int,
        completion_tokens: int,
        decode_ms: float,
        finish_reason: str,
    ) -> None: ...

    async def finalize_cancelled(self, session_handle: str) -> None: ...

    async def finalize_failed(self, session_handle: str, reason: str) -> None: ...

    async def reset_and_replay(
        self,
        session_handle: str,
        system_prompt: str,
        recent_turns: Sequence[RecentTurn],
        narrative_summary: str | None = None,
        document_context: str | None = None,
    ) -> str:
        """Discard the session's state and return a fresh, pre-seeded handle."""
        ...

    async def evict_session(self, session_handle: str) -> None:
        """Release a session's engine-side resources."""
        ...


class SandboxExecutor(Protocol):
    """Sandboxed code interpreter (REPL-style, persistent namespace)."""

    async def run(self, code: str) -> RunOutput: ...


class PersistenceStore(Protocol):
    """Conversation store."""

    async def write(self, conversation_id: str, title: str, messages: Sequence[ChatMessage]) -> None:
        """Replace the stored transcript."""
        ...

    async def write_incremental(
        self,
        conversation_id: str,
        title: str,
        messages: Sequence[ChatMessage],
        existing_message_ids: Collection[str],
    ) -> None:
        """Insert new messages and delete removed ones relative to ``existing_message_ids``."""
        ...
