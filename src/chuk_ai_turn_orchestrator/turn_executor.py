# chuk_ai_turn_orchestrator/turn_executor.py
"""
Turn Executor - runs one full turn against the inference engine.

Steps:
1. Resolve (or create) the conversation's session
2. Open a streaming completion and drive it through a StreamConsumer
3. Notify the engine how the attempt ended (completed / cancelled / failed)
4. On a recoverable failure, reset the session once and retry the same request

Token counts missing from the engine are replaced by a character-length
estimate. The estimate is an approximation for display and accounting,
not a tokenizer count.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Sequence
from typing import TypeVar

from chuk_ai_turn_orchestrator.best_effort import BackgroundCalls, best_effort
from chuk_ai_turn_orchestrator.cancellation import CancellationToken
from chuk_ai_turn_orchestrator.config import CHARS_PER_TOKEN, DEFAULT_SYSTEM_PROMPT, PREVIEW_INTERVAL_SECONDS
from chuk_ai_turn_orchestrator.exceptions import TurnCancelled, TurnFailedError, describe_error
from chuk_ai_turn_orchestrator.models.failure_class import FailureClass
from chuk_ai_turn_orchestrator.models.sampling_params import SamplingParams
from chuk_ai_turn_orchestrator.models.turn_request import RecentTurn, TurnRequest
from chuk_ai_turn_orchestrator.models.turn_result import TurnResult
from chuk_ai_turn_orchestrator.protocols import InferenceEngine
from chuk_ai_turn_orchestrator.recovery import RecoveryPolicy
from chuk_ai_turn_orchestrator.session_binding import SessionBinding
from chuk_ai_turn_orchestrator.stream_consumer import PreviewCallback, StreamConsumer

logger = logging.getLogger(__name__)

T = TypeVar("T")


def estimate_token_count(text: str, chars_per_token: float = CHARS_PER_TOKEN) -> int:
    """
    Approximate a token count from character length.

    ``max(1, round(len / chars_per_token))`` for non-empty text (halves
    round up), ``0`` for empty text.
    """
    if not text:
        return 0
    return max(1, math.floor(len(text) / chars_per_token + 0.5))


class TurnExecutor:
    """
    Executes turns for any number of conversations.

    The executor itself keeps no per-turn state; the caller guarantees at
    most one active turn per conversation (see CancellationController).
    """

    def __init__(
        self,
        engine: InferenceEngine,
        binding: SessionBinding | None = None,
        recovery: RecoveryPolicy | None = None,
        chars_per_token: float = CHARS_PER_TOKEN,
        preview_interval: float = PREVIEW_INTERVAL_SECONDS,
    ):
        self._engine = engine
        self.binding = binding or SessionBinding(engine)
        self.recovery = recovery or RecoveryPolicy(self.binding)
        self._chars_per_token = chars_per_token
        self._preview_interval = preview_interval
        self._notifications = BackgroundCalls()
        self.recoveries = 0

    async def execute(
        self,
        conversation_id: str,
        prompt: str,
        params: SamplingParams | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        recent_turns: Sequence[RecentTurn] = (),
        document_context: str | None = None,
        allow_recovery: bool = True,
        *,
        cancel_token: CancellationToken | None = None,
        on_preview: PreviewCallback | None = None,
    ) -> TurnResult:
        """
        Run one turn to completion.

        Args:
            conversation_id: Conversation the turn belongs to.
            prompt: User (or observation) text for this turn.
            recent_turns: History replayed when a session has to be created or rebuilt.
            document_context: Extracted document text sent inline with the prompt.
            allow_recovery: Permit one reset-and-retry on a context overflow.
            cancel_token: Token checked between chunks; cancelling it interrupts the stream.
            on_preview: Receives throttled preview snapshots.

        Returns:
            The authoritative TurnResult.

        Raises:
            TurnCancelled: the token fired; carries partial content.
            TurnFailedError: the turn failed and could not be recovered.
        """
        request = TurnRequest(
            prompt=prompt,
            system_prompt=system_prompt,
            recent_turns=tuple(recent_turns),
            params=params or SamplingParams(),
            document_context=document_context,
        )

        try:
            handle = await self._run(
                cancel_token,
                self.binding.resolve_session(conversation_id, system_prompt, request.recent_turns),
            )
        except TurnCancelled:
            raise
        except Exception as e:
            reason = describe_error(e)
            logger.error(f"Conversation {conversation_id}: session unavailable: {reason}")
            raise TurnFailedError(reason, FailureClass.fatal(reason)) from e

        return await self._attempt(
            conversation_id,
            handle,
            request,
            allow_recovery=allow_recovery,
            recovery_attempted=False,
            cancel_token=cancel_token,
            on_preview=on_preview,
        )

    async def _run(self, token: CancellationToken | None, awaitable: Awaitable[T]) -> T:
        if token is None:
            return await awaitable
        return await token.run(awaitable)

    async def _attempt(
        self,
        conversation_id: str,
        handle: str,
        request: TurnRequest,
        allow_recovery: bool,
        recovery_attempted: bool,
        cancel_token: CancellationToken | None,
        on_preview: PreviewCallback | None,
    ) -> TurnResult:
        active = handle
        consumer = StreamConsumer(cancel_token, on_preview, preview_interval=self._preview_interval)
        try:
            chunks, active = await self._run(
                cancel_token,
                self._engine.complete_stream(
                    handle,
                    request.prompt,
                    request.params,
                    request.system_prompt,
                    list(request.recent_turns),
                    request.document_context,
                ),
            )
            if active != handle:
                self.binding.adopt(conversation_id, active)
            result = await self._run(cancel_token, consumer.consume(chunks, active))
        except TurnCancelled:
            logger.debug(f"Conversation {conversation_id}: turn cancelled on {active}")
            self._notifications.spawn(f"finalize_cancelled({active})", self._engine.finalize_cancelled(active))
            raise
        except asyncio.CancelledError:
            self._notifications.spawn(f"finalize_cancelled({active})", self._engine.finalize_cancelled(active))
            raise
        except Exception as e:
            return await self._on_failure(
                conversation_id,
                active,
                request,
                e,
                allow_recovery=allow_recovery,
                recovery_attempted=recovery_attempted,
                cancel_token=cancel_token,
                on_preview=on_preview,
            )

        result = self._with_estimates(result, request, handle_swapped=active != handle)
        await best_effort(
            f"finalize_completed({active})",
            self._engine.finalize_completed(
                active,
                result.prompt_tokens,
                result.completion_tokens,
                result.decode_ms,
                result.finish_reason,
            ),
        )
        logger.debug(
            f"Conversation {conversation_id}: turn completed on {active} "
            f"(finish={result.finish_reason}, completion_tokens={result.completion_tokens})"
        )
        return result

    async def _on_failure(
        self,
        conversation_id: str,
        handle: str,
        request: TurnRequest,
        error: Exception,
        allow_recovery: bool,
        recovery_attempted: bool,
        cancel_token: CancellationToken | None,
        on_preview: PreviewCallback | None,
    ) -> TurnResult:
        reason = describe_error(error)
        await best_effort(f"finalize_failed({handle})", self._engine.finalize_failed(handle, reason))

        failure = self.recovery.classify(error)
        if recovery_attempted:
            # The retry after a recovery never gets another chance.
            failure = FailureClass.fatal(failure.reason)

        if not (allow_recovery and failure.is_recoverable):
            self.binding.invalidate(conversation_id)
            logger.error(f"Conversation {conversation_id}: turn failed on {handle}: {reason}")
            raise TurnFailedError(reason, failure, handle, recovery_attempted=recovery_attempted) from error

        self.recoveries += 1
        try:
            new_handle = await self._run(
                cancel_token,
                self.recovery.reset_for_retry(conversation_id, handle, request),
            )
        except TurnCancelled:
            raise
        except Exception as reset_error:
            self.binding.invalidate(conversation_id)
            reset_reason = describe_error(reset_error)
            logger.error(f"Conversation {conversation_id}: session reset failed: {reset_reason}")
            raise TurnFailedError(
                reset_reason,
                FailureClass.fatal(reset_reason),
                handle,
                recovery_attempted=True,
            ) from reset_error

        return await self._attempt(
            conversation_id,
            new_handle,
            request,
            allow_recovery=False,
            recovery_attempted=True,
            cancel_token=cancel_token,
            on_preview=on_preview,
        )

    def _with_estimates(self, result: TurnResult, request: TurnRequest, handle_swapped: bool) -> TurnResult:
        updates: dict[str, object] = {}
        if result.completion_tokens <= 0:
            completion_text = result.answer_text + (result.reasoning_text or "")
            estimate = estimate_token_count(completion_text, self._chars_per_token)
            if estimate:
                updates["completion_tokens"] = estimate
        if result.prompt_tokens <= 0:
            estimate = estimate_token_count(request.accounting_prompt(handle_swapped), self._chars_per_token)
            if estimate:
                updates["prompt_tokens"] = estimate
        if not updates:
            return result
        updates["tokens_estimated"] = True
        logger.debug(f"Engine omitted token counts; estimated {updates}")
        return result.model_copy(update=updates)

    @property
    def pending_notifications(self) -> int:
        return self._notifications.pending

    async def drain(self) -> None:
        """Wait for fire-and-forget engine notifications to finish."""
        await self._notifications.drain()
