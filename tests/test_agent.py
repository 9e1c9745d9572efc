# tests/test_agent.py
"""
Tests for the CodeAct helpers and AgentLoopController.
"""

import asyncio

import pytest
from conftest import HANG, FakeSandbox, ScriptedEngine, deltas, reply

from chuk_ai_turn_orchestrator.agent import (
    CODEACT_SYSTEM_PROMPT,
    AgentLoopController,
    format_observation,
    parse_execute_block,
)
from chuk_ai_turn_orchestrator.cancellation import CancellationToken
from chuk_ai_turn_orchestrator.models import AgentStopReason, ChatMessage, MessageRole, RunOutput, StreamChunk
from chuk_ai_turn_orchestrator.turn_executor import TurnExecutor

CODE_REPLY = "Let me compute.\n<execute>\nprint(2 + 2)\n</execute>"


class TestParseExecuteBlock:
    def test_extracts_first_block(self):
        text = "a <execute> x = 1 </execute> b <execute>y = 2</execute>"
        assert parse_execute_block(text) == "x = 1"

    def test_no_block(self):
        assert parse_execute_block("The answer is 4.") is None

    def test_unclosed_block(self):
        assert parse_execute_block("<execute>print(1)") is None

    def test_empty_block_counts_as_none(self):
        assert parse_execute_block("<execute>  \n </execute>") is None


class TestFormatObservation:
    def test_stdout_only(self):
        assert format_observation(RunOutput(stdout="4\n")) == "Observation:\n4"

    def test_all_streams(self):
        output = RunOutput(stdout="out", stderr="warn\n", error="NameError: x")
        assert format_observation(output) == "Observation:\nout\n[stderr]\nwarn\n[error]\nNameError: x"

    def test_no_output(self):
        assert format_observation(RunOutput()) == "Observation:\n(no output)"

    def test_figures(self):
        output = RunOutput(figures=[b"png1", b"png2"])
        assert format_observation(output) == "Observation:\n[2 figure(s) generated]"

    def test_system_prompt_describes_protocol(self):
        assert "<execute>" in CODEACT_SYSTEM_PROMPT
        assert CODEACT_SYSTEM_PROMPT.startswith("A chat between a curious user")


def make_loop(scripts, sandbox=None, max_iterations=10):
    engine = ScriptedEngine(scripts)
    executor = TurnExecutor(engine)
    sandbox = sandbox or FakeSandbox()
    return engine, sandbox, AgentLoopController(executor, sandbox, max_iterations=max_iterations)


class TestAgentLoop:
    async def test_single_turn_without_instruction(self):
        engine, sandbox, loop = make_loop([reply("The answer is 4.")])
        history = [ChatMessage.user("2+2?")]

        result = await loop.run("c1", "2+2?", history)

        assert result.iterations == 1
        assert result.stop_reason == AgentStopReason.NO_INSTRUCTION
        assert len(engine.calls_to("complete_stream")) == 1
        assert sandbox.codes == []
        assert [m.role for m in result.messages] == [MessageRole.ASSISTANT]
        assert result.messages[0].metrics is not None

    async def test_always_executing_model_hits_cap(self):
        engine, sandbox, loop = make_loop([reply(CODE_REPLY) for _ in range(10)], max_iterations=4)

        result = await loop.run("c1", "loop forever", [ChatMessage.user("loop forever")])

        assert result.stop_reason == AgentStopReason.MAX_ITERATIONS
        assert result.iterations == 4
        assert len(engine.calls_to("complete_stream")) == 4
        assert len(sandbox.codes) == 4

    async def test_execute_then_answer(self):
        sandbox = FakeSandbox([RunOutput(stdout="4")])
        engine, sandbox, loop = make_loop([reply(CODE_REPLY), reply("It is 4.")], sandbox=sandbox)
        history = [ChatMessage(role=MessageRole.USER, content="earlier"), ChatMessage.user("2+2?")]

        result = await loop.run("c1", "2+2?", history, document_context="doc text")

        assert result.stop_reason == AgentStopReason.NO_INSTRUCTION
        assert result.iterations == 2
        assert sandbox.codes == ["print(2 + 2)"]

        roles = [m.role for m in result.messages]
        assert roles == [MessageRole.ASSISTANT, MessageRole.USER, MessageRole.ASSISTANT]
        assert result.messages[0].metrics is None
        assert result.messages[1].content == "Observation:\n4"
        assert result.messages[2].metrics is not None

        streams = engine.calls_to("complete_stream")
        assert streams[0]["document_context"] == "doc text"
        assert streams[1]["document_context"] is None
        assert streams[1]["prompt"] == "Observation:\n4"
        assert streams[0]["system_prompt"] == CODEACT_SYSTEM_PROMPT
        # history excludes the prompt being sent
        assert [t.content for t in streams[0]["recent_turns"]] == ["earlier"]
        assert [t.content for t in streams[1]["recent_turns"]] == ["earlier", "2+2?", CODE_REPLY]
        assert [t.content for t in engine.calls_to("create_session")[0]["recent_turns"]] == ["earlier"]

    async def test_failure_stops_loop(self):
        engine, sandbox, loop = make_loop([[StreamChunk.error("worker crashed")]])

        result = await loop.run("c1", "q", [ChatMessage.user("q")])

        assert result.stop_reason == AgentStopReason.FAILED
        assert "worker crashed" in result.error
        assert result.messages == []

    async def test_sandbox_exception_becomes_observation(self):
        sandbox = FakeSandbox([RuntimeError("kernel died")])
        engine, sandbox, loop = make_loop([reply(CODE_REPLY), reply("Sorry.")], sandbox=sandbox)

        result = await loop.run("c1", "q", [ChatMessage.user("q")])

        assert result.messages[1].content == "Observation:\n[error]\nkernel died"
        assert result.stop_reason == AgentStopReason.NO_INSTRUCTION

    async def test_cancel_during_stream_keeps_partial(self):
        engine, sandbox, loop = make_loop([deltas("Working on it") + [HANG]])
        token = CancellationToken()

        task = asyncio.ensure_future(loop.run("c1", "q", [ChatMessage.user("q")], cancel_token=token))
        await engine.hanging.wait()
        token.request_cancel()
        result = await task

        assert result.stop_reason == AgentStopReason.CANCELLED
        assert len(result.messages) == 1
        assert result.messages[0].is_stopped
        assert result.messages[0].content == "Working on it"

    async def test_cancel_during_sandbox(self):
        sandbox = FakeSandbox()
        sandbox.hang = True
        engine, sandbox, loop = make_loop([reply(CODE_REPLY), reply("never")], sandbox=sandbox)
        token = CancellationToken()

        task = asyncio.ensure_future(loop.run("c1", "q", [ChatMessage.user("q")], cancel_token=token))
        await sandbox.started.wait()
        token.request_cancel()
        result = await task

        assert result.stop_reason == AgentStopReason.CANCELLED
        assert len(engine.calls_to("complete_stream")) == 1
        assert [m.role for m in result.messages] == [MessageRole.ASSISTANT]

    async def test_cancelled_before_start(self):
        engine, sandbox, loop = make_loop([reply("x")])
        token = CancellationToken()
        token.request_cancel()

        result = await loop.run("c1", "q", [ChatMessage.user("q")], cancel_token=token)

        assert result.stop_reason == AgentStopReason.CANCELLED
        assert result.iterations == 0
        assert engine.calls_to("complete_stream") == []

    def test_rejects_zero_iterations(self):
        with pytest.raises(ValueError):
            AgentLoopController(TurnExecutor(ScriptedEngine()), FakeSandbox(), max_iterations=0)
