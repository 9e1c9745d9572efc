# chuk_ai_turn_orchestrator/exceptions.py
"""
Exception taxonomy for turn orchestration.

Engine failures derive from :class:`EngineError`. Cancellation is modelled
by :class:`TurnCancelled`, which is deliberately *not* an engine failure:
it is a clean exit path that carries whatever partial content was
assembled before the cancel point.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from chuk_ai_turn_orchestrator.thinking import has_visible_content

if TYPE_CHECKING:
    from chuk_ai_turn_orchestrator.models.failure_class import FailureClass


class TurnOrchestratorError(Exception):
    """Base class for all errors raised by this package."""


class EngineError(TurnOrchestratorError):
    """A failure reported by (or while talking to) the inference engine."""

    def __init__(
        self,
        message: str,
        session_handle: str | None = None,
        detail: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.session_handle = session_handle
        self.detail = detail


class ContextOverflowError(EngineError):
    """The session ran out of context capacity."""

    def __init__(self, session_handle: str | None, used: int, maximum: int):
        super().__init__(
            f"Session {session_handle} exceeded context: {used}/{maximum} tokens",
            session_handle=session_handle,
        )
        self.used = used
        self.maximum = maximum


class PrefillFailedError(EngineError):
    def __init__(self, session_handle: str | None, reason: str):
        super().__init__(f"Prefill failed for {session_handle}: {reason}", session_handle=session_handle)
        self.reason = reason


class DecodeFailedError(EngineError):
    def __init__(self, session_handle: str | None, reason: str, detail: str | None = None):
        super().__init__(
            f"Decode failed for {session_handle}: {reason}",
            session_handle=session_handle,
            detail=detail,
        )
        self.reason = reason


class SessionUnavailableError(EngineError):
    """The engine is not ready or the session no longer exists."""

    def __init__(
        self,
        message: str = "Inference engine is not ready",
        session_handle: str | None = None,
    ):
        super().__init__(message, session_handle=session_handle)


class TurnCancelled(TurnOrchestratorError):
    """A turn was stopped by the caller before the engine finished."""

    def __init__(self, partial_answer: str = "", partial_reasoning: str | None = None):
        super().__init__("Turn cancelled")
        self.partial_answer = partial_answer
        self.partial_reasoning = partial_reasoning

    @property
    def has_partial_content(self) -> bool:
        return has_visible_content(self.partial_answer, self.partial_reasoning)


class TurnFailedError(TurnOrchestratorError):
    """
    A turn ended in a fatal failure.

    Raised by the turn executor once recovery (if any) is exhausted. The
    original engine error is chained as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        failure: FailureClass,
        session_handle: str | None = None,
        recovery_attempted: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.failure = failure
        self.session_handle = session_handle
        self.recovery_attempted = recovery_attempted


class TurnInProgressError(TurnOrchestratorError):
    """A turn was started while another is still active for the conversation."""

    def __init__(self, conversation_id: str):
        super().__init__(f"A turn is already active for conversation {conversation_id}")
        self.conversation_id = conversation_id


class StorageError(TurnOrchestratorError):
    """A conversation snapshot could not be written to the store."""

    def __init__(self, message: str, conversation_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.conversation_id = conversation_id


def describe_error(error: BaseException) -> str:
    """Render an exception as a human-readable message."""
    if isinstance(error, DecodeFailedError) and error.detail and error.detail not in error.message:
        return f"{error.message}\n{error.detail}"
    described = str(error).strip()
    if described:
        return described
    name = type(error).__name__
    return name if name else "Unknown error"
