# chuk_ai_turn_orchestrator/agent/__init__.py
"""
CodeAct agent loop: model turns interleaved with sandboxed code execution.
"""

from .codeact import (
    CODEACT_SYSTEM_PROMPT,
    format_observation,
    parse_execute_block,
)
from .loop import AgentLoopController, recent_turns_from

__all__ = [
    "AgentLoopController",
    "CODEACT_SYSTEM_PROMPT",
    "format_observation",
    "parse_execute_block",
    "recent_turns_from",
]
