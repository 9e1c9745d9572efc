# chuk_ai_turn_orchestrator/models/orchestrator_stats.py
"""Orchestrator statistics model."""

from __future__ import annotations

from pydantic import BaseModel


class OrchestratorStats(BaseModel):
    """Counters across all conversations handled by one orchestrator."""

    turns_completed: int = 0
    turns_cancelled: int = 0
    turns_failed: int = 0
    recoveries: int = 0
    agent_iterations: int = 0
    active_turns: int = 0
    bound_sessions: int = 0
    pending_saves: int = 0

    @property
    def total_turns(self) -> int:
        return self.turns_completed + self.turns_cancelled + self.turns_failed
