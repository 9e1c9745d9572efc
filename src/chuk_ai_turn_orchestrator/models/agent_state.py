# chuk_ai_turn_orchestrator/models/agent_state.py
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from chuk_ai_turn_orchestrator.models.chat_message import ChatMessage
from chuk_ai_turn_orchestrator.models.turn_result import TurnResult


class AgentStopReason(str, Enum):
    """Why an agent loop stopped."""

    NO_INSTRUCTION = "no_instruction"
    CANCELLED = "cancelled"
    MAX_ITERATIONS = "max_iterations"
    FAILED = "failed"


class AgentIterationState(BaseModel):
    """Position of an agent loop within its iteration budget."""

    iteration_index: int = Field(default=0, ge=0)
    max_iterations: int = Field(default=10, ge=1)
    last_observation: str | None = None

    @property
    def exhausted(self) -> bool:
        return self.iteration_index >= self.max_iterations

    def advance(self, observation: str) -> None:
        self.iteration_index += 1
        self.last_observation = observation


class AgentLoopResult(BaseModel):
    """Messages and results emitted by one agent loop run."""

    messages: list[ChatMessage] = Field(default_factory=list)
    results: list[TurnResult] = Field(default_factory=list)
    iterations: int = 0
    stop_reason: AgentStopReason = AgentStopReason.NO_INSTRUCTION
    error: str | None = None
