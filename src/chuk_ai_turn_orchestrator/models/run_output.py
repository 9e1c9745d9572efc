# chuk_ai_turn_orchestrator/models/run_output.py
from __future__ import annotations

from pydantic import BaseModel, Field


class RunOutput(BaseModel):
    """Captured result of one sandboxed code execution."""

    stdout: str = ""
    stderr: str = ""
    error: str | None = None
    figures: list[bytes] = Field(default_factory=list)  # PNG bytes
    elapsed_ms: int = Field(default=0, ge=0)

    model_config = {"frozen": True}
