"""Memory orchestration.

``MemoryService`` ties the write pipeline, the store and the consistency
checker together for concurrent callers:

- ``memorize`` is serialized per (agent, document, revision), so two
  events for the same agent never race on the read-merge-write cycle.
- The most recently used memories are cached on the instance (bounded,
  least recently used first out); the store is only read on a cache miss.
  Entries with a save still in flight are never evicted.
- Persistence runs in the background. Each write publishes a
  ``PersistenceOutcome`` on ``outcomes`` so callers can observe or retry
  failures; when nobody drains the queue the oldest outcomes are dropped.
  ``flush()`` waits for pending writes.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from draftmind.memory.consistency import ConsistencyChecker
from draftmind.memory.consistency import ConsistencyResult
from draftmind.memory.reader import query_by_topic
from draftmind.memory.reader import render_context
from draftmind.memory.schemas import AgentMemory
from draftmind.memory.schemas import CoverageEvent
from draftmind.memory.schemas import DirectChatEvent
from draftmind.memory.schemas import DiscussionEvent
from draftmind.memory.schemas import MemoryItem
from draftmind.memory.store import MemoryStore
from draftmind.memory.writer import MemoryWritePipeline

logger = logging.getLogger(__name__)

MemoryKey = tuple[str, str, str]


@dataclass(frozen=True)
class PersistenceOutcome:
    """Result of one background save."""

    key: MemoryKey
    ok: bool
    error: str | None = None


class MemoryService:
    """Concurrency-safe front door to agent memory."""

    def __init__(
        self,
        pipeline: MemoryWritePipeline,
        store: MemoryStore,
        checker: ConsistencyChecker | None = None,
        *,
        recent_statements: int = 5,
        recent_highlights: int = 3,
        max_cached: int = 1_024,
        max_outcomes: int = 1_000,
    ) -> None:
        self._pipeline = pipeline
        self._store = store
        self._checker = checker
        self._recent_statements = recent_statements
        self._recent_highlights = recent_highlights
        self._max_cached = max_cached
        # Per-key locks with their holder-plus-waiter count; dropped at zero.
        self._locks: dict[MemoryKey, tuple[asyncio.Lock, int]] = {}
        self._cache: OrderedDict[MemoryKey, AgentMemory] = OrderedDict()
        self._pending: set[asyncio.Task[None]] = set()
        self._last_save: dict[MemoryKey, asyncio.Task[None]] = {}
        self.outcomes: asyncio.Queue[PersistenceOutcome] = asyncio.Queue(maxsize=max_outcomes)

    @property
    def store(self) -> MemoryStore:
        return self._store

    # -- write --

    async def memorize(
        self,
        agent_id: str,
        document_id: str,
        revision_id: str,
        event: CoverageEvent | DiscussionEvent | DirectChatEvent,
        *,
        prior_revision_id: str | None = None,
    ) -> AgentMemory:
        """Apply *event* to the agent's memory and schedule persistence.

        When the agent has no memory on *revision_id* yet and
        *prior_revision_id* is given, the prior revision's memory seeds the
        new one as its back-reference.
        """
        key = (agent_id, document_id, revision_id)
        async with self._key_lock(key):
            existing = await self.get_memory(agent_id, document_id, revision_id)
            if existing is None and prior_revision_id and prior_revision_id != revision_id:
                existing = await self.get_memory(agent_id, document_id, prior_revision_id)

            memory = await self._pipeline.memorize(
                agent_id,
                document_id,
                revision_id,
                event,
                existing_memory=existing,
            )
            self._schedule_save(key, memory)
            self._remember(key, memory)
            return memory

    async def flush(self) -> None:
        """Wait for every background save scheduled so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def clear(self) -> None:
        """Drop cached and stored memories after pending saves land."""
        await self.flush()
        self._cache.clear()
        self._last_save.clear()
        await self._store.clear()

    # -- read --

    async def get_memory(
        self, agent_id: str, document_id: str, revision_id: str
    ) -> AgentMemory | None:
        key = (agent_id, document_id, revision_id)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return cached
        memory = await self._store.get_memory(agent_id, document_id, revision_id)
        if memory is not None:
            self._remember(key, memory)
        return memory

    async def read_context(
        self,
        agent_id: str,
        document_id: str,
        revision_id: str,
    ) -> str:
        memory = await self.get_memory(agent_id, document_id, revision_id)
        return render_context(
            memory,
            recent_statements=self._recent_statements,
            recent_highlights=self._recent_highlights,
        )

    async def read_topic(
        self,
        agent_id: str,
        document_id: str,
        revision_id: str,
        topic: str,
    ) -> list[MemoryItem]:
        memory = await self.get_memory(agent_id, document_id, revision_id)
        return query_by_topic(memory, topic) if memory else []

    async def read_revision(self, document_id: str, revision_id: str) -> list[AgentMemory]:
        """All agents' memories on a revision, with unsaved writes overlaid."""
        stored = {
            m.agent_id: m
            for m in await self._store.list_revision_memories(document_id, revision_id)
        }
        for (agent_id, doc, rev), memory in self._cache.items():
            if doc == document_id and rev == revision_id:
                stored[agent_id] = memory
        return [stored[agent_id] for agent_id in sorted(stored)]

    async def validate(
        self,
        proposed: str,
        agent_id: str,
        document_id: str,
        revision_id: str,
        topic: str,
    ) -> ConsistencyResult:
        """Check *proposed* against the agent's statements; consistent if unknown."""
        memory = await self.get_memory(agent_id, document_id, revision_id)
        if memory is None or self._checker is None:
            return ConsistencyResult(is_consistent=True)
        return await self._checker.validate(proposed, memory, topic)

    # -- internal --

    @asynccontextmanager
    async def _key_lock(self, key: MemoryKey) -> AsyncIterator[None]:
        lock, users = self._locks.get(key) or (asyncio.Lock(), 0)
        self._locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[key]
            if users == 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    def _remember(self, key: MemoryKey, memory: AgentMemory) -> None:
        self._cache[key] = memory
        self._cache.move_to_end(key)
        self._trim_cache()

    def _trim_cache(self) -> None:
        if len(self._cache) <= self._max_cached:
            return
        for candidate in list(self._cache):
            if len(self._cache) <= self._max_cached:
                break
            # Unsaved memories stay until their save lands.
            if candidate not in self._last_save:
                del self._cache[candidate]

    def _schedule_save(self, key: MemoryKey, memory: AgentMemory) -> None:
        # Saves for one key are chained so an older write never lands last.
        previous = self._last_save.get(key)
        task = asyncio.create_task(
            self._save(key, memory.model_copy(deep=True), previous)
        )
        self._last_save[key] = task
        self._pending.add(task)
        task.add_done_callback(lambda done: self._save_done(key, done))

    def _save_done(self, key: MemoryKey, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if self._last_save.get(key) is task:
            del self._last_save[key]
            self._trim_cache()

    def _publish(self, outcome: PersistenceOutcome) -> None:
        if self.outcomes.full():
            self.outcomes.get_nowait()
        self.outcomes.put_nowait(outcome)

    async def _save(
        self,
        key: MemoryKey,
        memory: AgentMemory,
        previous: asyncio.Task[None] | None,
    ) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        try:
            await self._store.save_memory(memory)
        except Exception as exc:
            logger.exception("memory persistence failed key=%s", ":".join(key))
            self._publish(PersistenceOutcome(key=key, ok=False, error=str(exc)))
            return
        self._publish(PersistenceOutcome(key=key, ok=True))
