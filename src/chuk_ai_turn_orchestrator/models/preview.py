# chuk_ai_turn_orchestrator/models/preview.py
from __future__ import annotations

from pydantic import BaseModel


class ReasoningSplit(BaseModel):
    """Raw model text split into visible answer and reasoning disclosure."""

    answer: str = ""
    reasoning: str | None = None

    model_config = {"frozen": True}


class PreviewSnapshot(BaseModel):
    """
    A coalesced, non-authoritative view of a stream in progress.

    ``final`` marks the last snapshot of a stream, published after the
    authoritative split of the terminal chunk.
    """

    answer: str = ""
    reasoning: str | None = None
    final: bool = False

    model_config = {"frozen": True}
