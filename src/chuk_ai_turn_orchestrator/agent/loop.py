# chuk_ai_turn_orchestrator/agent/loop.py
"""
Agent Loop Controller.

Alternates model turns with sandboxed code execution until the model
stops emitting ``<execute>`` blocks, the turn is cancelled, a turn fails,
or the iteration cap is reached. The loop never waits on outside input
between iterations.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence

from chuk_ai_turn_orchestrator.agent.codeact import CODEACT_SYSTEM_PROMPT, format_observation, parse_execute_block
from chuk_ai_turn_orchestrator.cancellation import CancellationToken
from chuk_ai_turn_orchestrator.config import AGENT_MAX_ITERATIONS
from chuk_ai_turn_orchestrator.exceptions import TurnCancelled, TurnFailedError, describe_error
from chuk_ai_turn_orchestrator.models.agent_state import AgentIterationState, AgentLoopResult, AgentStopReason
from chuk_ai_turn_orchestrator.models.chat_message import ChatMessage, format_stopped_metrics
from chuk_ai_turn_orchestrator.models.message_role import MessageRole
from chuk_ai_turn_orchestrator.models.run_output import RunOutput
from chuk_ai_turn_orchestrator.models.sampling_params import SamplingParams
from chuk_ai_turn_orchestrator.models.turn_request import RecentTurn
from chuk_ai_turn_orchestrator.protocols import SandboxExecutor
from chuk_ai_turn_orchestrator.stream_consumer import PreviewCallback
from chuk_ai_turn_orchestrator.turn_executor import TurnExecutor

logger = logging.getLogger(__name__)


def recent_turns_from(messages: Sequence[ChatMessage]) -> tuple[RecentTurn, ...]:
    return tuple(RecentTurn(role=m.role, content=m.content) for m in messages)


class AgentLoopController:
    """Drives the CodeAct loop for one user turn at a time."""

    def __init__(
        self,
        executor: TurnExecutor,
        sandbox: SandboxExecutor,
        max_iterations: int = AGENT_MAX_ITERATIONS,
        system_prompt: str = CODEACT_SYSTEM_PROMPT,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self._executor = executor
        self._sandbox = sandbox
        self.max_iterations = max_iterations
        self.system_prompt = system_prompt
        self._clock = clock

    async def run(
        self,
        conversation_id: str,
        initial_prompt: str,
        history: Sequence[ChatMessage] = (),
        document_context: str | None = None,
        cancel_token: CancellationToken | None = None,
        params: SamplingParams | None = None,
        on_preview: PreviewCallback | None = None,
    ) -> AgentLoopResult:
        """
        Run the loop for ``initial_prompt``.

        Args:
            history: Transcript so far, ending with the message that carries
                ``initial_prompt``.
            document_context: Sent with the first iteration only.

        Returns:
            AgentLoopResult with every emitted assistant and observation message.
        """
        token = cancel_token or CancellationToken()
        transcript = list(history)
        outcome = AgentLoopResult()
        state = AgentIterationState(max_iterations=self.max_iterations)
        prompt = initial_prompt
        context = document_context

        while not state.exhausted:
            if token.cancelled:
                outcome.stop_reason = AgentStopReason.CANCELLED
                return outcome

            logger.debug(f"Agent {conversation_id}: iteration {state.iteration_index}")
            started = self._clock()
            try:
                result = await self._executor.execute(
                    conversation_id,
                    prompt,
                    params,
                    system_prompt=self.system_prompt,
                    recent_turns=recent_turns_from(transcript[:-1]),
                    document_context=context,
                    cancel_token=token,
                    on_preview=on_preview,
                )
            except TurnCancelled as cancelled:
                if cancelled.has_partial_content:
                    elapsed = self._clock() - started
                    stopped = ChatMessage(
                        role=MessageRole.ASSISTANT,
                        content=cancelled.partial_answer,
                        metrics=format_stopped_metrics(elapsed),
                        reasoning=cancelled.partial_reasoning,
                        reasoning_seconds=elapsed if cancelled.partial_reasoning else None,
                    )
                    outcome.messages.append(stopped)
                outcome.iterations = state.iteration_index + 1
                outcome.stop_reason = AgentStopReason.CANCELLED
                return outcome
            except TurnFailedError as e:
                outcome.iterations = state.iteration_index + 1
                outcome.stop_reason = AgentStopReason.FAILED
                outcome.error = e.message
                return outcome

            elapsed = self._clock() - started
            code = parse_execute_block(result.answer_text)
            reply = ChatMessage(
                role=MessageRole.ASSISTANT,
                content=result.answer_text,
                metrics=None if code else result.format_metrics(elapsed, breakdown=False),
                reasoning=result.reasoning_text,
                reasoning_seconds=elapsed,
            )
            transcript.append(reply)
            outcome.messages.append(reply)
            outcome.results.append(result)
            outcome.iterations = state.iteration_index + 1

            if code is None:
                outcome.stop_reason = AgentStopReason.NO_INSTRUCTION
                return outcome
            if token.cancelled:
                outcome.stop_reason = AgentStopReason.CANCELLED
                return outcome

            try:
                output = await token.run(self._execute(code))
            except TurnCancelled:
                outcome.stop_reason = AgentStopReason.CANCELLED
                return outcome

            observation = format_observation(output)
            logger.debug(
                f"Agent {conversation_id}: iteration {state.iteration_index} executed {len(code)} chars "
                f"-> stdout={len(output.stdout)} error={output.error is not None}"
            )
            observed = ChatMessage.user(observation)
            transcript.append(observed)
            outcome.messages.append(observed)

            state.advance(observation)
            prompt = observation
            context = None

        logger.info(f"Agent {conversation_id}: stopped after {state.iteration_index} iterations (cap reached)")
        outcome.stop_reason = AgentStopReason.MAX_ITERATIONS
        return outcome

    async def _execute(self, code: str) -> RunOutput:
        try:
            return await self._sandbox.run(code)
        except Exception as e:
            # Reported to the model as an observation, not raised.
            logger.warning(f"Sandbox execution failed: {describe_error(e)}")
            return RunOutput(error=describe_error(e))
