# chuk_ai_turn_orchestrator/models/stream_chunk.py
"""
Incremental chunks emitted by a streaming completion.

A stream is any number of ``delta`` chunks followed by exactly one
terminal ``done`` or ``error`` chunk.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class StreamEventKind(str, Enum):
    DELTA = "delta"
    DONE = "done"
    ERROR = "error"


class StreamChunk(BaseModel):
    """One event of a streaming completion."""

    event: StreamEventKind
    text: str = ""

    # Terminal ``done`` payload
    finish_reason: str | None = None
    prompt_tokens: int | None = Field(default=None, ge=0)
    completion_tokens: int | None = Field(default=None, ge=0)
    prefill_ms: float | None = None
    decode_ms: float | None = None
    full_text: str | None = None
    reasoning_text: str | None = None

    # Terminal ``error`` payload
    message: str | None = None
    detail: str | None = None

    model_config = {"frozen": True}

    @property
    def is_terminal(self) -> bool:
        return self.event in (StreamEventKind.DONE, StreamEventKind.ERROR)

    @classmethod
    def delta(cls, text: str) -> StreamChunk:
        return cls(event=StreamEventKind.DELTA, text=text)

    @classmethod
    def done(
        cls,
        full_text: str | None = None,
        finish_reason: str | None = "stop",
        prompt_tokens: int | None = None,
        completion_tokens: int | None = None,
        prefill_ms: float | None = None,
        decode_ms: float | None = None,
        reasoning_text: str | None = None,
    ) -> StreamChunk:
        return cls(
            event=StreamEventKind.DONE,
            full_text=full_text,
            finish_reason=finish_reason,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            prefill_ms=prefill_ms,
            decode_ms=decode_ms,
            reasoning_text=reasoning_text,
        )

    @classmethod
    def error(cls, message: str, detail: str | None = None) -> StreamChunk:
        return cls(event=StreamEventKind.ERROR, message=message, detail=detail)
