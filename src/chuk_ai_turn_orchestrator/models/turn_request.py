# chuk_ai_turn_orchestrator/models/turn_request.py
from __future__ import annotations

from pydantic import BaseModel, Field

from chuk_ai_turn_orchestrator.models.message_role import MessageRole
from chuk_ai_turn_orchestrator.models.sampling_params import SamplingParams


class RecentTurn(BaseModel):
    """A prior (role, content) pair replayed into a fresh session."""

    role: MessageRole
    content: str

    model_config = {"frozen": True}


class TurnRequest(BaseModel):
    """Everything sent to the engine for one attempt of a turn."""

    prompt: str
    system_prompt: str
    recent_turns: tuple[RecentTurn, ...] = ()
    params: SamplingParams = Field(default_factory=SamplingParams)
    document_context: str | None = None

    model_config = {"frozen": True}

    def accounting_prompt(self, handle_swapped: bool = False) -> str:
        """
        Text used to estimate prompt tokens when the engine reports none.

        Document context counts toward the prompt only when it was sent
        inline, i.e. the engine did not swap in a rehydrated session that
        already absorbed it.
        """
        if handle_swapped or not self.document_context:
            return self.prompt
        return f"{self.document_context}\n\n{self.prompt}"
