# chuk_ai_turn_orchestrator/persistence.py
"""
Deferred Persistence Scheduler.

Coalesces rapid saves of a conversation into one write per debounce
window. Every ``schedule`` bumps a per-conversation generation counter; a
timer that wakes up with a stale generation does nothing. A snapshot
whose message-ID sequence equals the last written one is never written.

Writes for the same conversation are serialized by a per-conversation
lock. Store failures are logged and not propagated; the snapshot stays
staged so a later flush can retry it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence

from pydantic import BaseModel, Field

from chuk_ai_turn_orchestrator.config import DEFAULT_TITLE, SAVE_DEBOUNCE_SECONDS, TITLE_MAX_CHARS
from chuk_ai_turn_orchestrator.exceptions import StorageError, describe_error
from chuk_ai_turn_orchestrator.models.chat_message import ChatMessage
from chuk_ai_turn_orchestrator.models.message_role import MessageRole
from chuk_ai_turn_orchestrator.protocols import PersistenceStore

logger = logging.getLogger(__name__)


def derive_title(messages: Iterable[ChatMessage], max_chars: int = TITLE_MAX_CHARS) -> str:
    """First user message truncated to ``max_chars``, or the default title."""
    for message in messages:
        if message.role == MessageRole.USER:
            title = message.content[:max_chars].strip()
            return title or DEFAULT_TITLE
    return DEFAULT_TITLE


class PendingSave(BaseModel):
    """Snapshot staged for the next write of a conversation."""

    conversation_id: str
    messages: list[ChatMessage] = Field(default_factory=list)
    last_written_ids: tuple[str, ...] | None = None
    generation: int = 0

    @property
    def message_ids(self) -> tuple[str, ...]:
        return tuple(m.id for m in self.messages)

    @property
    def title(self) -> str:
        return derive_title(self.messages)


class DeferredPersistenceScheduler:
    """Debounced writer in front of a PersistenceStore."""

    def __init__(self, store: PersistenceStore, debounce_seconds: float = SAVE_DEBOUNCE_SECONDS):
        self._store = store
        self.debounce_seconds = debounce_seconds
        self._pending: dict[str, PendingSave] = {}
        self._timers: dict[str, asyncio.Task] = {}
        self._generations: dict[str, int] = {}
        self._written_ids: dict[str, tuple[str, ...]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._errors: dict[str, StorageError] = {}
        self.writes = 0

    # ------------------------------------------------------------------
    # State inspection
    # ------------------------------------------------------------------

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def has_pending(self, conversation_id: str) -> bool:
        return conversation_id in self._pending

    def last_written_ids(self, conversation_id: str) -> tuple[str, ...] | None:
        return self._written_ids.get(conversation_id)

    def last_error(self, conversation_id: str) -> StorageError | None:
        """The failure of the most recent write attempt, cleared by a successful write."""
        return self._errors.get(conversation_id)

    def mark_written(self, conversation_id: str, message_ids: Iterable[str]) -> None:
        """Record that the store already holds these messages (e.g. after loading)."""
        self._written_ids[conversation_id] = tuple(message_ids)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _stage(self, conversation_id: str, messages: Sequence[ChatMessage]) -> PendingSave | None:
        generation = self._generations.get(conversation_id, 0) + 1
        self._generations[conversation_id] = generation
        self._cancel_timer(conversation_id)

        last_written = self._written_ids.get(conversation_id)
        pending = PendingSave(
            conversation_id=conversation_id,
            messages=list(messages),
            last_written_ids=last_written,
            generation=generation,
        )
        if pending.message_ids == last_written:
            self._pending.pop(conversation_id, None)
            logger.debug(f"Conversation {conversation_id}: snapshot unchanged, nothing to save")
            return None

        self._pending[conversation_id] = pending
        return pending

    def schedule(self, conversation_id: str, messages: Sequence[ChatMessage]) -> bool:
        """
        Stage a snapshot and (re)start the debounce timer.

        Must be called from a running event loop.

        Returns:
            True if a write was scheduled, False if the snapshot is unchanged.
        """
        pending = self._stage(conversation_id, messages)
        if pending is None:
            return False
        self._timers[conversation_id] = asyncio.get_running_loop().create_task(
            self._flush_after_delay(conversation_id, pending.generation)
        )
        return True

    async def save_now(self, conversation_id: str, messages: Sequence[ChatMessage]) -> bool:
        """Stage and write immediately, skipping unchanged snapshots."""
        if self._stage(conversation_id, messages) is None:
            return False
        return await self._write_pending(conversation_id)

    async def flush_now(self, conversation_id: str | None = None) -> int:
        """
        Cancel pending timers and write staged snapshots right away.

        Args:
            conversation_id: Flush one conversation; all when omitted.

        Returns:
            Number of snapshots written.
        """
        targets = [conversation_id] if conversation_id is not None else list(self._pending)
        written = 0
        for cid in targets:
            self._cancel_timer(cid)
            if await self._write_pending(cid):
                written += 1
        return written

    def forget(self, conversation_id: str) -> None:
        """Drop all tracking for a deleted conversation."""
        self._cancel_timer(conversation_id)
        self._pending.pop(conversation_id, None)
        self._written_ids.pop(conversation_id, None)
        self._generations.pop(conversation_id, None)
        self._locks.pop(conversation_id, None)
        self._errors.pop(conversation_id, None)

    async def close(self) -> None:
        """Flush everything still staged."""
        await self.flush_now()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cancel_timer(self, conversation_id: str) -> None:
        # A timer removes itself before writing, so anything still here is asleep.
        timer = self._timers.pop(conversation_id, None)
        if timer is not None and not timer.done():
            timer.cancel()

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    async def _store_snapshot(self, pending: PendingSave, previous: tuple[str, ...] | None) -> None:
        """
        Write one snapshot: a full write first, incremental afterwards.

        Raises:
            StorageError: the store rejected the write.
        """
        conversation_id = pending.conversation_id
        try:
            if previous is None:
                await self._store.write(conversation_id, pending.title, pending.messages)
            else:
                await self._store.write_incremental(
                    conversation_id,
                    pending.title,
                    pending.messages,
                    set(previous),
                )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(
                f"Save failed for conversation {conversation_id}: {describe_error(e)}",
                conversation_id=conversation_id,
            ) from e

    async def _flush_after_delay(self, conversation_id: str, generation: int) -> None:
        await asyncio.sleep(self.debounce_seconds)
        if self._generations.get(conversation_id) != generation:
            return
        self._timers.pop(conversation_id, None)
        await self._write_pending(conversation_id)

    async def _write_pending(self, conversation_id: str) -> bool:
        async with self._lock_for(conversation_id):
            pending = self._pending.pop(conversation_id, None)
            if pending is None:
                return False

            message_ids = pending.message_ids
            previous = self._written_ids.get(conversation_id)
            if message_ids == previous:
                return False

            try:
                await self._store_snapshot(pending, previous)
            except StorageError as e:
                logger.warning(f"{e.message} (not propagated)")
                self._errors[conversation_id] = e
                self._pending.setdefault(conversation_id, pending)
                return False

            self._errors.pop(conversation_id, None)
            self._written_ids[conversation_id] = message_ids
            self.writes += 1
            logger.debug(f"Conversation {conversation_id}: saved {len(message_ids)} messages")
            return True
