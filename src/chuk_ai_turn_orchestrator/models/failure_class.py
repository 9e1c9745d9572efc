# chuk_ai_turn_orchestrator/models/failure_class.py
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class FailureKind(str, Enum):
    RECOVERABLE = "recoverable"
    FATAL = "fatal"


class FailureClass(BaseModel):
    """Classification of a terminal turn failure."""

    kind: FailureKind
    reason: str

    model_config = {"frozen": True}

    @property
    def is_recoverable(self) -> bool:
        return self.kind == FailureKind.RECOVERABLE

    @classmethod
    def context_overflow(cls, reason: str = "context overflow") -> FailureClass:
        return cls(kind=FailureKind.RECOVERABLE, reason=reason)

    @classmethod
    def fatal(cls, reason: str) -> FailureClass:
        return cls(kind=FailureKind.FATAL, reason=reason)
