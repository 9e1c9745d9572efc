# chuk_ai_turn_orchestrator/models/message_role.py
from __future__ import annotations

from enum import Enum


class MessageRole(str, Enum):
    """Role of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"
