# tests/conftest.py
"""
Shared pytest fixtures and fakes for chuk_ai_turn_orchestrator tests.

The fakes record every call so tests can assert on the exact sequence of
engine, sandbox and store interactions.
"""

import asyncio
import logging
from typing import Any

import pytest

from chuk_ai_turn_orchestrator.models import RunOutput, StreamChunk

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logging.getLogger("chuk_ai_turn_orchestrator").setLevel(logging.DEBUG)

# A None entry inside a chunk script blocks the stream until it is cancelled.
HANG = None


def done(text: str = "", **kwargs) -> StreamChunk:
    return StreamChunk.done(full_text=text, **kwargs)


def deltas(*parts: str) -> list[StreamChunk]:
    return [StreamChunk.delta(p) for p in parts]


def reply(text: str, completion_tokens: int = 1, **kwargs) -> list[StreamChunk]:
    """A well-formed stream: one delta per word, then done."""
    words = text.split(" ")
    parts = [w if i == len(words) - 1 else w + " " for i, w in enumerate(words)]
    return deltas(*parts) + [done(text, completion_tokens=completion_tokens, prompt_tokens=3, **kwargs)]


class ScriptedEngine:
    """
    Fake InferenceEngine driven by a list of scripts.

    Each call to ``complete_stream`` consumes the next script: a list of
    chunks (``HANG`` entries block), or an Exception raised by the call.
    """

    def __init__(self, scripts: list | None = None):
        self.scripts: list = list(scripts or [])
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.sessions = 0
        self.swap_to: str | None = None
        self.hanging = asyncio.Event()
        self.create_error: Exception | None = None
        self.reset_error: Exception | None = None
        self.finalize_error: Exception | None = None
        self.evict_error: Exception | None = None

    def calls_to(self, name: str) -> list[dict[str, Any]]:
        return [kwargs for called, kwargs in self.calls if called == name]

    def _new_handle(self) -> str:
        self.sessions += 1
        return f"session-{self.sessions}"

    async def create_session(self, system_prompt, recent_turns=None):
        self.calls.append(("create_session", {"system_prompt": system_prompt, "recent_turns": recent_turns}))
        if self.create_error is not None:
            raise self.create_error
        return self._new_handle()

    async def complete_stream(self, session_handle, prompt, params, system_prompt, recent_turns, document_context=None):
        self.calls.append(
            (
                "complete_stream",
                {
                    "session_handle": session_handle,
                    "prompt": prompt,
                    "params": params,
                    "system_prompt": system_prompt,
                    "recent_turns": list(recent_turns),
                    "document_context": document_context,
                },
            )
        )
        script = self.scripts.pop(0) if self.scripts else [done("")]
        if isinstance(script, Exception):
            raise script
        handle = self.swap_to or session_handle
        self.swap_to = None
        return self._stream(script), handle

    async def _stream(self, script):
        for chunk in script:
            if chunk is HANG:
                self.hanging.set()
                await asyncio.Event().wait()
            yield chunk
            await asyncio.sleep(0)

    async def finalize_completed(self, session_handle, prompt_tokens, completion_tokens, decode_ms, finish_reason):
        self.calls.append(
            (
                "finalize_completed",
                {
                    "session_handle": session_handle,
                    "prompt_tokens": prompt_tokens,
                    "completion_tokens": completion_tokens,
                    "decode_ms": decode_ms,
                    "finish_reason": finish_reason,
                },
            )
        )
        if self.finalize_error is not None:
            raise self.finalize_error

    async def finalize_cancelled(self, session_handle):
        self.calls.append(("finalize_cancelled", {"session_handle": session_handle}))
        if self.finalize_error is not None:
            raise self.finalize_error

    async def finalize_failed(self, session_handle, reason):
        self.calls.append(("finalize_failed", {"session_handle": session_handle, "reason": reason}))
        if self.finalize_error is not None:
            raise self.finalize_error

    async def reset_and_replay(
        self, session_handle, system_prompt, recent_turns, narrative_summary=None, document_context=None
    ):
        self.calls.append(
            (
                "reset_and_replay",
                {
                    "session_handle": session_handle,
                    "system_prompt": system_prompt,
                    "recent_turns": list(recent_turns),
                    "narrative_summary": narrative_summary,
                    "document_context": document_context,
                },
            )
        )
        if self.reset_error is not None:
            raise self.reset_error
        return self._new_handle()

    async def evict_session(self, session_handle):
        self.calls.append(("evict_session", {"session_handle": session_handle}))
        if self.evict_error is not None:
            raise self.evict_error


class FakeSandbox:
    """Fake SandboxExecutor returning queued outputs (or a default)."""

    def __init__(self, outputs: list | None = None):
        self.outputs: list = list(outputs or [])
        self.codes: list[str] = []
        self.hang = False
        self.started = asyncio.Event()

    async def run(self, code):
        self.codes.append(code)
        self.started.set()
        if self.hang:
            await asyncio.Event().wait()
        output = self.outputs.pop(0) if self.outputs else RunOutput(stdout="ok")
        if isinstance(output, Exception):
            raise output
        return output


class RecordingStore:
    """Fake PersistenceStore recording every write."""

    def __init__(self):
        self.writes: list[dict[str, Any]] = []
        self.error: Exception | None = None

    async def write(self, conversation_id, title, messages):
        if self.error is not None:
            raise self.error
        self.writes.append(
            {
                "kind": "write",
                "conversation_id": conversation_id,
                "title": title,
                "ids": [m.id for m in messages],
                "existing": None,
            }
        )

    async def write_incremental(self, conversation_id, title, messages, existing_message_ids):
        if self.error is not None:
            raise self.error
        self.writes.append(
            {
                "kind": "incremental",
                "conversation_id": conversation_id,
                "title": title,
                "ids": [m.id for m in messages],
                "existing": set(existing_message_ids),
            }
        )


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def chunk_iter(chunks):
    for chunk in chunks:
        if chunk is HANG:
            await asyncio.Event().wait()
        yield chunk


@pytest.fixture
def engine():
    return ScriptedEngine()


@pytest.fixture
def sandbox():
    return FakeSandbox()


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def clock():
    return FakeClock()
