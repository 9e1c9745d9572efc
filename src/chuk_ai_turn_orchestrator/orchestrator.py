# chuk_ai_turn_orchestrator/orchestrator.py
"""
TurnOrchestrator - the caller-facing coordinator.

One orchestrator owns, for every conversation it has seen:
- the in-memory transcript
- the agent-mode toggle
- the active turn's cancellation token
- the session handle (through SessionBinding)
- the pending save (through DeferredPersistenceScheduler)

All of that state is mutated only from ``send_turn`` and the small set of
control methods below; streaming and sandbox execution run as separate
tasks whose results come back through the executor.

Usage:
    orchestrator = TurnOrchestrator(engine, sandbox=sandbox, store=store)
    outcome = await orchestrator.send_turn("conv-1", "2+2?")
    async for item in orchestrator.stream_turn("conv-1", "and 3+3?"):
        ...
    await orchestrator.shutdown()
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable, Sequence
from enum import Enum

from pydantic import BaseModel, Field

from chuk_ai_turn_orchestrator.agent.loop import AgentLoopController, recent_turns_from
from chuk_ai_turn_orchestrator.cancellation import CancellationController, CancellationToken
from chuk_ai_turn_orchestrator.config import (
    AGENT_MAX_ITERATIONS,
    DEFAULT_CONTEXT_SIZE,
    DEFAULT_SYSTEM_PROMPT,
    SAVE_DEBOUNCE_SECONDS,
)
from chuk_ai_turn_orchestrator.exceptions import TurnCancelled, TurnFailedError
from chuk_ai_turn_orchestrator.models.agent_state import AgentStopReason
from chuk_ai_turn_orchestrator.models.chat_message import ChatMessage, format_stopped_metrics
from chuk_ai_turn_orchestrator.models.message_role import MessageRole
from chuk_ai_turn_orchestrator.models.orchestrator_stats import OrchestratorStats
from chuk_ai_turn_orchestrator.models.preview import PreviewSnapshot
from chuk_ai_turn_orchestrator.models.sampling_params import ResponseMode, SamplingParams, apply_response_mode
from chuk_ai_turn_orchestrator.models.turn_result import TurnResult
from chuk_ai_turn_orchestrator.persistence import DeferredPersistenceScheduler
from chuk_ai_turn_orchestrator.protocols import InferenceEngine, PersistenceStore, SandboxExecutor
from chuk_ai_turn_orchestrator.stream_consumer import PreviewCallback
from chuk_ai_turn_orchestrator.turn_executor import TurnExecutor

logger = logging.getLogger(__name__)


class TurnStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class TurnOutcome(BaseModel):
    """What one ``send_turn`` produced."""

    status: TurnStatus
    messages: list[ChatMessage] = Field(default_factory=list)
    result: TurnResult | None = None
    error: str | None = None
    agent_iterations: int = 0


class ConversationState(BaseModel):
    """Per-conversation state owned by the orchestrator."""

    messages: list[ChatMessage] = Field(default_factory=list)
    agent_mode: bool = False


_STREAM_END = object()


class TurnOrchestrator:
    """Runs turns for many conversations, at most one active turn each."""

    def __init__(
        self,
        engine: InferenceEngine,
        sandbox: SandboxExecutor | None = None,
        store: PersistenceStore | None = None,
        *,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        context_size: int = DEFAULT_CONTEXT_SIZE,
        response_mode: ResponseMode = ResponseMode.AUTO,
        default_params: SamplingParams | None = None,
        max_agent_iterations: int = AGENT_MAX_ITERATIONS,
        debounce_seconds: float = SAVE_DEBOUNCE_SECONDS,
        executor: TurnExecutor | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.system_prompt = system_prompt
        self.context_size = context_size
        self.response_mode = response_mode
        self.default_params = default_params or SamplingParams()
        self._clock = clock

        self.executor = executor or TurnExecutor(engine)
        self.binding = self.executor.binding
        self.cancellation = CancellationController()
        self.agent = (
            AgentLoopController(self.executor, sandbox, max_iterations=max_agent_iterations, clock=clock)
            if sandbox is not None
            else None
        )
        self.scheduler = DeferredPersistenceScheduler(store, debounce_seconds) if store is not None else None

        self._conversations: dict[str, ConversationState] = {}
        self._stats = OrchestratorStats()

    # ------------------------------------------------------------------
    # Conversation state
    # ------------------------------------------------------------------

    def _state(self, conversation_id: str) -> ConversationState:
        state = self._conversations.get(conversation_id)
        if state is None:
            state = ConversationState()
            self._conversations[conversation_id] = state
        return state

    def messages(self, conversation_id: str) -> list[ChatMessage]:
        """Copy of the conversation's transcript."""
        state = self._conversations.get(conversation_id)
        return list(state.messages) if state else []

    def load_messages(self, conversation_id: str, messages: Sequence[ChatMessage]) -> None:
        """
        Replace the transcript with messages loaded from the store.

        The bound session (if any) is dropped so the next turn replays the
        loaded history into a fresh one.
        """
        if self.cancellation.is_active(conversation_id):
            raise RuntimeError(f"Cannot load messages while a turn is active for {conversation_id}")
        state = self._state(conversation_id)
        state.messages = list(messages)
        self.binding.invalidate(conversation_id)
        if self.scheduler is not None:
            self.scheduler.mark_written(conversation_id, (m.id for m in messages))

    def is_agent_mode(self, conversation_id: str) -> bool:
        state = self._conversations.get(conversation_id)
        return bool(state and state.agent_mode)

    def set_agent_mode(self, conversation_id: str, enabled: bool) -> None:
        """Toggle the CodeAct loop. Enabling drops the bound session."""
        state = self._state(conversation_id)
        if state.agent_mode == enabled:
            return
        state.agent_mode = enabled
        if enabled:
            # The next turn needs a session seeded with the agent system prompt.
            self.binding.invalidate(conversation_id)
        logger.debug(f"Conversation {conversation_id}: agent mode {'on' if enabled else 'off'}")

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def send_turn(
        self,
        conversation_id: str,
        prompt: str,
        *,
        document_context: str | None = None,
        params: SamplingParams | None = None,
        on_preview: PreviewCallback | None = None,
    ) -> TurnOutcome:
        """
        Run one user turn and return its outcome.

        Cancellation and fatal failures are reported through the outcome's
        status, not raised.

        Raises:
            TurnInProgressError: a turn is already active for the conversation.
        """
        token = self.cancellation.begin(conversation_id)
        try:
            state = self._state(conversation_id)
            state.messages.append(ChatMessage.user(prompt))
            effective = apply_response_mode(self.response_mode, params or self.default_params, self.context_size)

            if state.agent_mode and self.agent is not None:
                outcome = await self._run_agent(conversation_id, state, prompt, document_context, token, effective, on_preview)
            else:
                outcome = await self._run_plain(conversation_id, state, prompt, document_context, token, effective, on_preview)

            if outcome.status == TurnStatus.COMPLETED:
                self._stats.turns_completed += 1
            elif outcome.status == TurnStatus.CANCELLED:
                self._stats.turns_cancelled += 1
            else:
                self._stats.turns_failed += 1

            # Staged before the turn ends so shutdown's flush sees it.
            if self.scheduler is not None:
                self.scheduler.schedule(conversation_id, state.messages)
        finally:
            self.cancellation.end(conversation_id, token)
        return outcome

    async def _run_plain(
        self,
        conversation_id: str,
        state: ConversationState,
        prompt: str,
        document_context: str | None,
        token: CancellationToken,
        params: SamplingParams,
        on_preview: PreviewCallback | None,
    ) -> TurnOutcome:
        started = self._clock()
        try:
            result = await self.executor.execute(
                conversation_id,
                prompt,
                params,
                system_prompt=self.system_prompt,
                recent_turns=recent_turns_from(state.messages[:-1]),
                document_context=document_context,
                cancel_token=token,
                on_preview=on_preview,
            )
        except TurnCancelled as cancelled:
            if not cancelled.has_partial_content:
                return TurnOutcome(status=TurnStatus.CANCELLED)
            elapsed = self._clock() - started
            stopped = ChatMessage(
                role=MessageRole.ASSISTANT,
                content=cancelled.partial_answer,
                metrics=format_stopped_metrics(elapsed),
                reasoning=cancelled.partial_reasoning,
                reasoning_seconds=elapsed if cancelled.partial_reasoning else None,
            )
            state.messages.append(stopped)
            return TurnOutcome(status=TurnStatus.CANCELLED, messages=[stopped])
        except TurnFailedError as e:
            return TurnOutcome(status=TurnStatus.FAILED, error=e.message)

        elapsed = self._clock() - started
        reply = ChatMessage(
            role=MessageRole.ASSISTANT,
            content=result.answer_text,
            metrics=result.format_metrics(elapsed),
            reasoning=result.reasoning_text,
            reasoning_seconds=result.reasoning_seconds(elapsed) if result.reasoning_text else None,
        )
        state.messages.append(reply)
        return TurnOutcome(status=TurnStatus.COMPLETED, messages=[reply], result=result)

    async def _run_agent(
        self,
        conversation_id: str,
        state: ConversationState,
        prompt: str,
        document_context: str | None,
        token: CancellationToken,
        params: SamplingParams,
        on_preview: PreviewCallback | None,
    ) -> TurnOutcome:
        loop_result = await self.agent.run(
            conversation_id,
            prompt,
            history=state.messages,
            document_context=document_context,
            cancel_token=token,
            params=params,
            on_preview=on_preview,
        )
        state.messages.extend(loop_result.messages)
        self._stats.agent_iterations += loop_result.iterations

        if loop_result.stop_reason == AgentStopReason.CANCELLED:
            status = TurnStatus.CANCELLED
        elif loop_result.stop_reason == AgentStopReason.FAILED:
            status = TurnStatus.FAILED
        else:
            status = TurnStatus.COMPLETED
        return TurnOutcome(
            status=status,
            messages=loop_result.messages,
            result=loop_result.results[-1] if loop_result.results else None,
            error=loop_result.error,
            agent_iterations=loop_result.iterations,
        )

    async def stream_turn(
        self,
        conversation_id: str,
        prompt: str,
        *,
        document_context: str | None = None,
        params: SamplingParams | None = None,
    ) -> AsyncIterator[PreviewSnapshot | TurnOutcome]:
        """
        Run a turn, yielding preview snapshots and finally the TurnOutcome.

        Closing the generator early cancels the turn.
        """
        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.ensure_future(
            self.send_turn(
                conversation_id,
                prompt,
                document_context=document_context,
                params=params,
                on_preview=queue.put_nowait,
            )
        )
        task.add_done_callback(lambda _: queue.put_nowait(_STREAM_END))
        try:
            while True:
                item = await queue.get()
                if item is _STREAM_END:
                    break
                yield item
            yield task.result()
        finally:
            if not task.done():
                self.cancel_active_turn(conversation_id)
                await asyncio.gather(task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def cancel_active_turn(self, conversation_id: str) -> bool:
        """Request cancellation of the conversation's active turn. Idempotent."""
        return self.cancellation.request_cancel(conversation_id)

    def is_turn_active(self, conversation_id: str) -> bool:
        return self.cancellation.is_active(conversation_id)

    async def reset_context(self, conversation_id: str) -> bool:
        """
        Drop the conversation's session so the next turn starts fresh.

        Returns:
            False when a turn is active (nothing is reset) or no session was bound.
        """
        if self.cancellation.is_active(conversation_id):
            logger.debug(f"Conversation {conversation_id}: reset ignored while a turn is active")
            return False
        return await self.binding.evict(conversation_id)

    def stats(self) -> OrchestratorStats:
        return self._stats.model_copy(
            update={
                "recoveries": self.executor.recoveries,
                "active_turns": self.cancellation.active_count,
                "bound_sessions": self.binding.bound_count,
                "pending_saves": self.scheduler.pending_count if self.scheduler else 0,
            }
        )

    async def shutdown(self) -> None:
        """
        Stop the orchestrator without losing the most recent turn.

        Active turns are cancelled and awaited so their stopped messages are
        staged, then pending saves are flushed and engine notifications drained.
        """
        if self.cancellation.cancel_all():
            await self.cancellation.wait_idle()
        if self.scheduler is not None:
            await self.scheduler.flush_now()
        await self.executor.drain()
