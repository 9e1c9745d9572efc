# tests/test_session_binding.py
"""
Tests for SessionBinding.
"""

import pytest

from chuk_ai_turn_orchestrator.exceptions import EngineError, SessionUnavailableError
from chuk_ai_turn_orchestrator.models import MessageRole, RecentTurn
from chuk_ai_turn_orchestrator.session_binding import SessionBinding

HISTORY = (
    RecentTurn(role=MessageRole.USER, content="hi"),
    RecentTurn(role=MessageRole.ASSISTANT, content="hello"),
)


class TestResolveSession:
    async def test_creates_lazily_with_history(self, engine):
        binding = SessionBinding(engine)

        handle = await binding.resolve_session("c1", "system", HISTORY)

        assert handle == "session-1"
        assert binding.current("c1") == "session-1"
        call = engine.calls_to("create_session")[0]
        assert call["system_prompt"] == "system"
        assert call["recent_turns"] == list(HISTORY)

    async def test_no_history_passes_none(self, engine):
        await SessionBinding(engine).resolve_session("c1", "system")
        assert engine.calls_to("create_session")[0]["recent_turns"] is None

    async def test_reuses_existing_handle(self, engine):
        binding = SessionBinding(engine)
        first = await binding.resolve_session("c1", "system", HISTORY)
        second = await binding.resolve_session("c1", "system", HISTORY + HISTORY)

        assert first == second
        assert len(engine.calls_to("create_session")) == 1

    async def test_invalidate_forces_new_session(self, engine):
        binding = SessionBinding(engine)
        await binding.resolve_session("c1", "system")

        assert binding.invalidate("c1") == "session-1"
        assert binding.invalidate("c1") is None

        assert await binding.resolve_session("c1", "system") == "session-2"

    async def test_adopt(self, engine):
        binding = SessionBinding(engine)
        binding.adopt("c1", "rehydrated-7")
        assert binding.current("c1") == "rehydrated-7"
        assert binding.bound_count == 1


class TestReset:
    async def test_reset_yields_new_handle(self, engine):
        binding = SessionBinding(engine)
        await binding.resolve_session("c1", "system")

        new = await binding.reset("c1", "system", HISTORY, document_context="doc")

        assert new == "session-2"
        assert binding.current("c1") == "session-2"
        call = engine.calls_to("reset_and_replay")[0]
        assert call["session_handle"] == "session-1"
        assert call["document_context"] == "doc"
        assert call["recent_turns"] == list(HISTORY)

    async def test_reset_without_handle(self, engine):
        with pytest.raises(SessionUnavailableError):
            await SessionBinding(engine).reset("c1", "system")

    async def test_reused_handle_is_rejected(self, engine):
        binding = SessionBinding(engine)
        await binding.resolve_session("c1", "system")

        async def same_handle(handle, *args, **kwargs):
            return handle

        engine.reset_and_replay = same_handle

        with pytest.raises(EngineError):
            await binding.reset("c1", "system")
        assert binding.current("c1") is None


class TestEvict:
    async def test_evict_releases_engine_session(self, engine):
        binding = SessionBinding(engine)
        await binding.resolve_session("c1", "system")

        assert await binding.evict("c1") is True
        assert binding.current("c1") is None
        assert engine.calls_to("evict_session") == [{"session_handle": "session-1"}]

    async def test_evict_failure_is_not_propagated(self, engine):
        binding = SessionBinding(engine)
        await binding.resolve_session("c1", "system")
        engine.evict_error = RuntimeError("worker gone")

        assert await binding.evict("c1") is True
        assert binding.current("c1") is None

    async def test_evict_unbound(self, engine):
        assert await SessionBinding(engine).evict("c1") is False
        assert engine.calls_to("evict_session") == []
