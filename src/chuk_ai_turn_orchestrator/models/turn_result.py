# chuk_ai_turn_orchestrator/models/turn_result.py
"""Terminal result of a successfully completed turn."""

from __future__ import annotations

from pydantic import BaseModel, Field

# Separator used in human-readable metrics strings
METRICS_SEPARATOR = "  ·  "

# Prefill longer than this is reported as a separate "thinking" phase
THINKING_BREAKDOWN_SECONDS = 1.0


class TurnResult(BaseModel):
    """
    Immutable outcome of one turn.

    Token counts are what the engine reported, or a character-length
    estimate substituted by the turn executor when the engine reported
    none (see ``tokens_estimated``).
    """

    finish_reason: str = "unknown"
    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    decode_ms: float = 0.0
    prefill_ms: float = 0.0
    answer_text: str = ""
    reasoning_text: str | None = None
    session_handle: str | None = None
    tokens_estimated: bool = False

    model_config = {"frozen": True}

    def reasoning_seconds(self, elapsed_seconds: float) -> float:
        """Time attributed to thinking: prefill time, or the whole turn when unknown."""
        if self.prefill_ms > 0:
            return self.prefill_ms / 1000.0
        return elapsed_seconds

    def tokens_per_second(self, elapsed_seconds: float) -> float:
        if elapsed_seconds <= 0:
            return 0.0
        return self.completion_tokens / elapsed_seconds

    def format_metrics(self, elapsed_seconds: float, breakdown: bool = True) -> str:
        """
        Render throughput metrics for display next to the assistant message.

        Args:
            elapsed_seconds: Wall-clock duration of the turn.
            breakdown: Split into thinking and generation time when the
                engine reported more than a second of prefill.
        """
        tps = self.tokens_per_second(elapsed_seconds)
        head = f"{tps:.1f} tok/s{METRICS_SEPARATOR}{self.completion_tokens} tokens{METRICS_SEPARATOR}"
        thinking = self.prefill_ms / 1000.0
        if breakdown and thinking > THINKING_BREAKDOWN_SECONDS:
            generation = max(0.0, elapsed_seconds - thinking)
            return f"{head}thinking {thinking:.1f}s + gen {generation:.1f}s = {elapsed_seconds:.1f}s"
        return f"{head}{elapsed_seconds:.2f}s"
