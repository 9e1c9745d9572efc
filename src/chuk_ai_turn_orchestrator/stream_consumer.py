# chuk_ai_turn_orchestrator/stream_consumer.py
"""
Stream Consumer - turns one streaming completion into a TurnResult.

Responsibilities:
- Accumulate delta text in delivery order
- Coalesce rapid deltas into throttled preview snapshots
- Split raw text into answer and reasoning (authoritatively on ``done``)
- Stop between chunks when the turn is cancelled, keeping partial content
- Raise on an engine-reported ``error`` chunk

State machine: IDLE -> STREAMING -> {COMPLETED, CANCELLED, FAILED}
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum

from chuk_ai_turn_orchestrator.cancellation import CancellationToken
from chuk_ai_turn_orchestrator.config import PREVIEW_BOUNDARY_CHARS, PREVIEW_INTERVAL_SECONDS
from chuk_ai_turn_orchestrator.exceptions import DecodeFailedError, TurnCancelled, describe_error
from chuk_ai_turn_orchestrator.models.preview import PreviewSnapshot, ReasoningSplit
from chuk_ai_turn_orchestrator.models.stream_chunk import StreamChunk, StreamEventKind
from chuk_ai_turn_orchestrator.models.turn_result import TurnResult
from chuk_ai_turn_orchestrator.thinking import split_reasoning

logger = logging.getLogger(__name__)

PreviewCallback = Callable[[PreviewSnapshot], Awaitable[None] | None]

DEFAULT_ERROR_REASON = "decode_stream failed"


class StreamPhase(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class StreamConsumer:
    """
    Consumes the chunk stream of a single attempt.

    A consumer is single-use: create one per call to ``complete_stream``.
    Previews are best-effort views for the caller; only the returned
    TurnResult is authoritative.
    """

    def __init__(
        self,
        cancel_token: CancellationToken | None = None,
        on_preview: PreviewCallback | None = None,
        preview_interval: float = PREVIEW_INTERVAL_SECONDS,
        boundary_chars: frozenset[str] = PREVIEW_BOUNDARY_CHARS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._token = cancel_token
        self._on_preview = on_preview
        self._preview_interval = preview_interval
        self._boundary_chars = boundary_chars
        self._clock = clock

        self.phase = StreamPhase.IDLE
        self._parts: list[str] = []
        self._dirty = False
        self._last_preview_at = 0.0
        self.previews_published = 0
        self.preview_errors = 0

    @property
    def raw_text(self) -> str:
        return "".join(self._parts)

    def partial(self) -> ReasoningSplit:
        """Best split of everything received so far."""
        return split_reasoning(self.raw_text)

    def _has_boundary(self, delta: str) -> bool:
        return any(ch in self._boundary_chars for ch in delta)

    async def _publish(self, split: ReasoningSplit, final: bool = False) -> None:
        self._dirty = False
        self._last_preview_at = self._clock()
        if self._on_preview is None:
            return
        self.previews_published += 1
        snapshot = PreviewSnapshot(answer=split.answer, reasoning=split.reasoning, final=final)
        try:
            outcome = self._on_preview(snapshot)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            # Previews are a side channel; a broken callback never fails the turn.
            self.preview_errors += 1
            logger.warning(f"Preview callback failed (not propagated): {describe_error(e)}")

    def _cancelled(self) -> TurnCancelled:
        self.phase = StreamPhase.CANCELLED
        split = self.partial()
        return TurnCancelled(split.answer, split.reasoning)

    async def consume(
        self,
        chunks: AsyncIterator[StreamChunk],
        session_handle: str | None = None,
    ) -> TurnResult:
        """
        Drive ``chunks`` to completion.

        Returns:
            TurnResult with engine-reported token counts (zero when absent).

        Raises:
            TurnCancelled: the cancel token fired; carries partial content.
            DecodeFailedError: the stream terminated with an ``error`` chunk.
        """
        if self.phase != StreamPhase.IDLE:
            raise RuntimeError("StreamConsumer instances are single-use")

        self.phase = StreamPhase.STREAMING
        self._last_preview_at = self._clock()
        try:
            async for chunk in chunks:
                if self._token is not None and self._token.cancelled:
                    raise self._cancelled()

                if chunk.event == StreamEventKind.DELTA:
                    await self._on_delta(chunk.text)
                elif chunk.event == StreamEventKind.DONE:
                    return await self._on_done(chunk, session_handle)
                else:
                    self.phase = StreamPhase.FAILED
                    reason = "\n".join(part for part in (chunk.message, chunk.detail) if part)
                    raise DecodeFailedError(session_handle, reason or DEFAULT_ERROR_REASON, detail=chunk.detail)
        except asyncio.CancelledError:
            if self._token is not None and self._token.cancelled:
                raise self._cancelled() from None
            raise
        finally:
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()

        # Stream ended without a terminal chunk: flush what we have once.
        logger.warning(f"Stream for {session_handle} ended without a terminal chunk")
        split = self.partial()
        if self._dirty:
            await self._publish(split, final=True)
        self.phase = StreamPhase.COMPLETED
        return TurnResult(
            finish_reason="unknown",
            answer_text=split.answer,
            reasoning_text=split.reasoning,
            session_handle=session_handle,
        )

    async def _on_delta(self, delta: str) -> None:
        if not delta:
            return
        self._parts.append(delta)
        self._dirty = True

        elapsed = self._clock() - self._last_preview_at
        if elapsed >= self._preview_interval or self._has_boundary(delta):
            await self._publish(split_reasoning(self.raw_text, streaming=True))

    async def _on_done(self, chunk: StreamChunk, session_handle: str | None) -> TurnResult:
        raw = chunk.full_text if chunk.full_text is not None else self.raw_text
        split = split_reasoning(raw, preferred_reasoning=chunk.reasoning_text)
        await self._publish(split, final=True)
        self.phase = StreamPhase.COMPLETED
        return TurnResult(
            finish_reason=chunk.finish_reason or "stop",
            prompt_tokens=chunk.prompt_tokens or 0,
            completion_tokens=chunk.completion_tokens or 0,
            prefill_ms=chunk.prefill_ms or 0.0,
            decode_ms=chunk.decode_ms or 0.0,
            answer_text=split.answer,
            reasoning_text=split.reasoning,
            session_handle=session_handle,
        )
