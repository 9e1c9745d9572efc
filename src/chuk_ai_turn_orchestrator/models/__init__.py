# chuk_ai_turn_orchestrator/models/__init__.py
"""
Core models for turn orchestration.
"""

from .agent_state import (
    AgentIterationState,
    AgentLoopResult,
    AgentStopReason,
)
from .chat_message import (
    STOPPED_MARKER,
    ChatMessage,
    format_stopped_metrics,
)
from .failure_class import FailureClass, FailureKind
from .message_role import MessageRole
from .orchestrator_stats import OrchestratorStats
from .preview import PreviewSnapshot, ReasoningSplit
from .run_output import RunOutput
from .sampling_params import (
    ResponseMode,
    SamplingParams,
    apply_response_mode,
)
from .stream_chunk import StreamChunk, StreamEventKind
from .turn_request import RecentTurn, TurnRequest
from .turn_result import TurnResult

__all__ = [
    "AgentIterationState",
    "AgentLoopResult",
    "AgentStopReason",
    "ChatMessage",
    "FailureClass",
    "FailureKind",
    "MessageRole",
    "OrchestratorStats",
    "PreviewSnapshot",
    "ReasoningSplit",
    "RecentTurn",
    "ResponseMode",
    "RunOutput",
    "STOPPED_MARKER",
    "SamplingParams",
    "StreamChunk",
    "StreamEventKind",
    "TurnRequest",
    "TurnResult",
    "apply_response_mode",
    "format_stopped_metrics",
]
