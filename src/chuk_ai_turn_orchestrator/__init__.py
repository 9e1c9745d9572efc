# chuk_ai_turn_orchestrator/__init__.py
"""
Per-turn orchestration between a chat client and a streaming inference engine.

- Session binding: one engine session handle per conversation
- Stream consumption with throttled previews and reasoning split
- Cooperative cancellation that keeps partial output
- One-shot reset-and-replay recovery from context overflow
- CodeAct agent loop over a sandboxed Python executor
- Debounced conversation persistence

Quick start:
    from chuk_ai_turn_orchestrator import TurnOrchestrator

    orchestrator = TurnOrchestrator(engine, sandbox=sandbox, store=store)
    outcome = await orchestrator.send_turn("conv-1", "2+2?")
"""

from .agent import AgentLoopController, CODEACT_SYSTEM_PROMPT, format_observation, parse_execute_block
from .cancellation import CancellationController, CancellationToken
from .exceptions import (
    ContextOverflowError,
    DecodeFailedError,
    EngineError,
    PrefillFailedError,
    SessionUnavailableError,
    StorageError,
    TurnCancelled,
    TurnFailedError,
    TurnInProgressError,
    TurnOrchestratorError,
    describe_error,
)
from .models import (
    ChatMessage,
    FailureClass,
    MessageRole,
    OrchestratorStats,
    PreviewSnapshot,
    RecentTurn,
    ResponseMode,
    RunOutput,
    SamplingParams,
    StreamChunk,
    TurnRequest,
    TurnResult,
)
from .orchestrator import TurnOrchestrator, TurnOutcome, TurnStatus
from .persistence import DeferredPersistenceScheduler, PendingSave
from .protocols import InferenceEngine, PersistenceStore, SandboxExecutor
from .recovery import RecoveryPolicy, classify
from .session_binding import SessionBinding
from .stream_consumer import StreamConsumer
from .thinking import split_reasoning
from .turn_executor import TurnExecutor, estimate_token_count

__version__ = "0.1.0"


def get_version() -> str:
    return __version__


__all__ = [
    # Orchestration
    "TurnOrchestrator",
    "TurnOutcome",
    "TurnStatus",
    "TurnExecutor",
    "SessionBinding",
    "StreamConsumer",
    "RecoveryPolicy",
    "CancellationController",
    "CancellationToken",
    "DeferredPersistenceScheduler",
    "PendingSave",
    # Agent
    "AgentLoopController",
    "CODEACT_SYSTEM_PROMPT",
    "format_observation",
    "parse_execute_block",
    # Protocols
    "InferenceEngine",
    "PersistenceStore",
    "SandboxExecutor",
    # Models
    "ChatMessage",
    "FailureClass",
    "MessageRole",
    "OrchestratorStats",
    "PreviewSnapshot",
    "RecentTurn",
    "ResponseMode",
    "RunOutput",
    "SamplingParams",
    "StreamChunk",
    "TurnRequest",
    "TurnResult",
    # Errors
    "TurnOrchestratorError",
    "EngineError",
    "ContextOverflowError",
    "PrefillFailedError",
    "DecodeFailedError",
    "SessionUnavailableError",
    "TurnCancelled",
    "TurnFailedError",
    "TurnInProgressError",
    "StorageError",
    # Helpers
    "classify",
    "describe_error",
    "estimate_token_count",
    "split_reasoning",
    "get_version",
]
