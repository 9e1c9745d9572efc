# chuk_ai_turn_orchestrator/models/chat_message.py
from __future__ import annotations

import uuid

from pydantic import BaseModel, Field

from chuk_ai_turn_orchestrator.models.message_role import MessageRole
from chuk_ai_turn_orchestrator.models.turn_result import METRICS_SEPARATOR

STOPPED_MARKER = "stopped"


class ChatMessage(BaseModel):
    """A transcript message as handed to the persistence store."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: MessageRole
    content: str
    metrics: str | None = None
    reasoning: str | None = None
    reasoning_seconds: float | None = None

    @property
    def is_stopped(self) -> bool:
        return bool(self.metrics) and self.metrics.startswith(STOPPED_MARKER)

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(role=MessageRole.USER, content=content)


def format_stopped_metrics(elapsed_seconds: float) -> str:
    """Metrics marker for a turn the caller cancelled."""
    return f"{STOPPED_MARKER}{METRICS_SEPARATOR}{elapsed_seconds:.2f}s"
