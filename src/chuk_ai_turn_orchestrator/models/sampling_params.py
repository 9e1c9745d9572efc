# chuk_ai_turn_orchestrator/models/sampling_params.py
"""Sampling configuration passed through to the inference engine."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class ResponseMode(str, Enum):
    """How aggressively a turn should trade latency for depth."""

    AUTO = "auto"
    INSTANT = "instant"
    THINKING = "thinking"


class SamplingParams(BaseModel):
    """Opaque-to-the-orchestrator decoding parameters."""

    max_tokens: int = Field(default=256, ge=1)
    temperature: float = Field(default=0.7, ge=0.0)
    top_p: float = Field(default=0.95, ge=0.0)
    top_k: int = Field(default=40, ge=1)
    repeat_penalty: float = Field(default=1.1, ge=0.0)
    stop: tuple[str, ...] = ()

    model_config = {"frozen": True}

    @classmethod
    def greedy(cls, max_tokens: int = 256) -> SamplingParams:
        return cls(max_tokens=max_tokens, temperature=0.0, top_p=1.0, top_k=1, repeat_penalty=1.0)


def apply_response_mode(mode: ResponseMode, base: SamplingParams, context_size: int) -> SamplingParams:
    """
    Clamp sampling parameters for the selected response mode.

    ``instant`` caps generation length and narrows sampling; ``thinking``
    raises a floor under generation length so reasoning models have room
    to think. ``auto`` leaves the parameters untouched.
    """
    if mode == ResponseMode.INSTANT:
        cap = max(96, context_size // 16)
        return base.model_copy(
            update={
                "max_tokens": min(base.max_tokens, cap),
                "temperature": min(base.temperature, 0.35),
                "top_p": min(base.top_p, 0.90),
                "top_k": min(base.top_k, 30),
            }
        )
    if mode == ResponseMode.THINKING:
        floor = min(context_size, max(512, context_size // 4))
        return base.model_copy(
            update={
                "max_tokens": max(base.max_tokens, floor),
                "temperature": max(base.temperature, 0.70),
                "top_p": max(base.top_p, 0.95),
                "top_k": max(base.top_k, 40),
            }
        )
    return base
