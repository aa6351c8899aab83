"""Agent memory persistence.

``RedisMemoryStore`` keeps each agent memory as a JSON string keyed by
``draftmind:memory:{document}:{revision}:{agent}``. A set
``draftmind:revision:{document}:{revision}`` indexes the agents that have
memory on a revision. Conversation summaries live under
``draftmind:summary:{conversation}``.

``InMemoryMemoryStore`` implements the same protocol with plain dicts for
single-process use and tests.

Both stores refuse a summary save that would lower
``covered_message_count``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol
from typing import runtime_checkable

from redis.asyncio import Redis  # type: ignore[import-untyped]

from draftmind.config import StoreConfig
from draftmind.memory.schemas import AgentMemory
from draftmind.memory.schemas import ConversationSummary

logger = logging.getLogger(__name__)

_CLEAR_BATCH_SIZE = 100


@runtime_checkable
class MemoryStore(Protocol):
    """Persistence interface for agent memories and conversation summaries."""

    async def get_memory(
        self, agent_id: str, document_id: str, revision_id: str
    ) -> AgentMemory | None: ...

    async def save_memory(self, memory: AgentMemory) -> None: ...

    async def list_revision_memories(
        self, document_id: str, revision_id: str
    ) -> list[AgentMemory]: ...

    async def get_summary(self, conversation_id: str) -> ConversationSummary | None: ...

    async def save_summary(
        self, conversation_id: str, summary: ConversationSummary
    ) -> bool: ...

    async def clear(self) -> None: ...


def _summary_regresses(
    existing: ConversationSummary | None, summary: ConversationSummary
) -> bool:
    return (
        existing is not None
        and summary.covered_message_count < existing.covered_message_count
    )


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


class RedisMemoryStore:
    """Redis-backed memory store with optional TTL."""

    def __init__(self, redis: Redis, config: StoreConfig | None = None) -> None:
        self._redis = redis
        self._config = config or StoreConfig()
        prefix = self._config.key_prefix
        self._prefix = prefix
        self._memory_key = f"{prefix}:memory"
        self._revision_key = f"{prefix}:revision"
        self._summary_key = f"{prefix}:summary"
        self._summary_lock = asyncio.Lock()

    def _key(self, agent_id: str, document_id: str, revision_id: str) -> str:
        return f"{self._memory_key}:{document_id}:{revision_id}:{agent_id}"

    # -- memories --

    async def get_memory(
        self, agent_id: str, document_id: str, revision_id: str
    ) -> AgentMemory | None:
        data = await self._redis.get(self._key(agent_id, document_id, revision_id))
        if data is None:
            return None
        return AgentMemory.model_validate_json(data)

    async def save_memory(self, memory: AgentMemory) -> None:
        """Write *memory* and index its agent under the revision."""
        key = self._key(memory.agent_id, memory.document_id, memory.revision_id)
        index_key = f"{self._revision_key}:{memory.document_id}:{memory.revision_id}"
        ttl = self._config.ttl_seconds

        pipe = self._redis.pipeline()
        pipe.set(key, memory.model_dump_json(), ex=ttl)
        pipe.sadd(index_key, memory.agent_id)
        if ttl:
            pipe.expire(index_key, ttl)
        await pipe.execute()

    async def list_revision_memories(
        self, document_id: str, revision_id: str
    ) -> list[AgentMemory]:
        """Return every agent's memory on a revision, ordered by agent id."""
        index_key = f"{self._revision_key}:{document_id}:{revision_id}"
        raw_ids = await self._redis.smembers(index_key)
        if not raw_ids:
            return []

        agent_ids = sorted(
            raw.decode() if isinstance(raw, bytes) else raw for raw in raw_ids
        )
        pipe = self._redis.pipeline()
        for agent_id in agent_ids:
            pipe.get(self._key(agent_id, document_id, revision_id))
        raw_results = await pipe.execute()

        stale_ids: list[str] = []
        results: list[AgentMemory] = []
        for agent_id, raw in zip(agent_ids, raw_results):
            if raw is None:
                stale_ids.append(agent_id)
            else:
                results.append(AgentMemory.model_validate_json(raw))

        # Expired memories leave dangling index entries
        if stale_ids:
            await self._redis.srem(index_key, *stale_ids)
        return results

    # -- summaries --

    async def get_summary(self, conversation_id: str) -> ConversationSummary | None:
        data = await self._redis.get(f"{self._summary_key}:{conversation_id}")
        if data is None:
            return None
        return ConversationSummary.model_validate_json(data)

    async def save_summary(
        self, conversation_id: str, summary: ConversationSummary
    ) -> bool:
        """Persist *summary* unless it covers fewer messages than the stored one."""
        async with self._summary_lock:
            existing = await self.get_summary(conversation_id)
            if _summary_regresses(existing, summary):
                logger.warning(
                    "summary save refused conversation=%s covered=%d stored=%d",
                    conversation_id,
                    summary.covered_message_count,
                    existing.covered_message_count if existing else 0,
                )
                return False
            await self._redis.set(
                f"{self._summary_key}:{conversation_id}",
                summary.model_dump_json(),
                ex=self._config.ttl_seconds,
            )
            return True

    async def clear(self) -> None:
        """Remove every key under the store prefix, in batches."""
        batch: list = []
        async for key in self._redis.scan_iter(match=f"{self._prefix}:*"):
            batch.append(key)
            if len(batch) >= _CLEAR_BATCH_SIZE:
                await self._redis.delete(*batch)
                batch.clear()
        if batch:
            await self._redis.delete(*batch)


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryMemoryStore:
    """Dict-backed memory store. Values are copied in and out."""

    def __init__(self) -> None:
        self._memories: dict[tuple[str, str, str], AgentMemory] = {}
        self._summaries: dict[str, ConversationSummary] = {}

    async def get_memory(
        self, agent_id: str, document_id: str, revision_id: str
    ) -> AgentMemory | None:
        memory = self._memories.get((document_id, revision_id, agent_id))
        return memory.model_copy(deep=True) if memory else None

    async def save_memory(self, memory: AgentMemory) -> None:
        key = (memory.document_id, memory.revision_id, memory.agent_id)
        self._memories[key] = memory.model_copy(deep=True)

    async def list_revision_memories(
        self, document_id: str, revision_id: str
    ) -> list[AgentMemory]:
        return [
            memory.model_copy(deep=True)
            for (doc, rev, _agent), memory in sorted(self._memories.items())
            if doc == document_id and rev == revision_id
        ]

    async def get_summary(self, conversation_id: str) -> ConversationSummary | None:
        summary = self._summaries.get(conversation_id)
        return summary.model_copy() if summary else None

    async def save_summary(
        self, conversation_id: str, summary: ConversationSummary
    ) -> bool:
        existing = self._summaries.get(conversation_id)
        if _summary_regresses(existing, summary):
            logger.warning(
                "summary save refused conversation=%s covered=%d stored=%d",
                conversation_id,
                summary.covered_message_count,
                existing.covered_message_count if existing else 0,
            )
            return False
        self._summaries[conversation_id] = summary.model_copy()
        return True

    async def clear(self) -> None:
        self._memories.clear()
        self._summaries.clear()
