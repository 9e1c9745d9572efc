# chuk_ai_turn_orchestrator/recovery.py
"""
Recovery Policy - classify terminal failures and rebuild session state.

Context-capacity exhaustion is the only failure for which discarding and
rebuilding the engine-side session is known to help the next attempt.
Everything else is treated as structural and surfaces immediately.
"""

from __future__ import annotations

import logging

from chuk_ai_turn_orchestrator.exceptions import (
    ContextOverflowError,
    DecodeFailedError,
    PrefillFailedError,
    SessionUnavailableError,
    TurnCancelled,
    describe_error,
)
from chuk_ai_turn_orchestrator.models.failure_class import FailureClass
from chuk_ai_turn_orchestrator.models.turn_request import TurnRequest
from chuk_ai_turn_orchestrator.session_binding import SessionBinding

logger = logging.getLogger(__name__)

# Lower-case substrings that identify a context-capacity failure
CONTEXT_FAILURE_KEYWORDS: tuple[str, ...] = (
    "exceeded context",
    "context window",
    "requested tokens",
    "n_ctx",
    "maximum context",
    "context length",
)


def is_context_related(reason: str | None) -> bool:
    if not reason:
        return False
    haystack = reason.lower()
    return any(needle in haystack for needle in CONTEXT_FAILURE_KEYWORDS)


def classify(error: BaseException) -> FailureClass:
    """Classify a terminal failure as recoverable (context overflow) or fatal."""
    if isinstance(error, TurnCancelled):
        raise ValueError("Cancellation is not a failure and cannot be classified")

    description = describe_error(error)
    if isinstance(error, ContextOverflowError):
        return FailureClass.context_overflow(description)
    if isinstance(error, (DecodeFailedError, PrefillFailedError)):
        if is_context_related(error.reason) or is_context_related(error.detail):
            return FailureClass.context_overflow(description)
        return FailureClass.fatal(description)
    if isinstance(error, SessionUnavailableError):
        return FailureClass.fatal(description)
    if is_context_related(description):
        return FailureClass.context_overflow(description)
    return FailureClass.fatal(description)


class RecoveryPolicy:
    """One-shot reset-and-replay recovery for recoverable failures."""

    def __init__(self, binding: SessionBinding):
        self._binding = binding

    def classify(self, error: BaseException) -> FailureClass:
        return classify(error)

    async def reset_for_retry(self, conversation_id: str, failed_handle: str, request: TurnRequest) -> str:
        """
        Rebuild the session with the history used by the failed attempt.

        Document context is not replayed into the new session; it travels
        with the re-issued request instead.
        """
        logger.info(f"Conversation {conversation_id}: recovering from context overflow on {failed_handle}")
        return await self._binding.reset(
            conversation_id,
            request.system_prompt,
            request.recent_turns,
            document_context=None,
            handle=failed_handle,
        )
