"""RedisMemoryStore and the MCP server against a real Redis container."""

from __future__ import annotations

import json

import pytest
from fastmcp import Client

from draftmind.config import StoreConfig
from draftmind.engine.completion import Completion
from draftmind.memory.schemas import AgentMemory
from draftmind.memory.schemas import ConversationSummary
from draftmind.memory.schemas import DiscussionStatement
from draftmind.memory.store import MemoryStore
from draftmind.memory.store import RedisMemoryStore
from draftmind.server import configure
from draftmind.server import mcp
from draftmind.server import shutdown


def _parse(result) -> dict:
    return json.loads(result.content[0].text)


def _memory(agent_id: str, revision_id: str = "v1") -> AgentMemory:
    return AgentMemory(
        agent_id=agent_id,
        document_id="doc",
        revision_id=revision_id,
        narrative_summary=f"{agent_id} thinks the draft is promising.",
        discussion_statements=[
            DiscussionStatement(statement="the hook lands", topic="premise", timestamp=1.0)
        ],
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class TestRedisMemoryStore:
    async def test_satisfies_protocol(self, redis_client):
        assert isinstance(RedisMemoryStore(redis_client), MemoryStore)

    async def test_roundtrip(self, redis_client):
        store = RedisMemoryStore(redis_client)
        memory = _memory("a")

        await store.save_memory(memory)

        assert await store.get_memory("a", "doc", "v1") == memory
        assert await store.get_memory("a", "doc", "v2") is None
        assert await redis_client.exists("draftmind:memory:doc:v1:a") == 1

    async def test_list_revision_memories(self, redis_client):
        store = RedisMemoryStore(redis_client)
        await store.save_memory(_memory("b"))
        await store.save_memory(_memory("a"))
        await store.save_memory(_memory("c", revision_id="v2"))

        memories = await store.list_revision_memories("doc", "v1")

        assert sorted(m.agent_id for m in memories) == ["a", "b"]

    async def test_stale_index_entries_are_pruned(self, redis_client):
        store = RedisMemoryStore(redis_client)
        await store.save_memory(_memory("a"))
        await store.save_memory(_memory("b"))
        await redis_client.delete("draftmind:memory:doc:v1:b")

        memories = await store.list_revision_memories("doc", "v1")

        assert [m.agent_id for m in memories] == ["a"]
        members = await redis_client.smembers("draftmind:revision:doc:v1")
        assert members == {b"a"}

    async def test_ttl_applies_to_memory_and_index(self, redis_client):
        store = RedisMemoryStore(redis_client, StoreConfig(ttl_seconds=120))
        await store.save_memory(_memory("a"))

        assert 0 < await redis_client.ttl("draftmind:memory:doc:v1:a") <= 120
        assert 0 < await redis_client.ttl("draftmind:revision:doc:v1") <= 120

    async def test_summary_coverage_never_decreases(self, redis_client):
        store = RedisMemoryStore(redis_client)

        assert await store.save_summary("conv", ConversationSummary(text="s1", covered_message_count=8))
        assert not await store.save_summary("conv", ConversationSummary(text="s0", covered_message_count=2))

        summary = await store.get_summary("conv")
        assert summary == ConversationSummary(text="s1", covered_message_count=8)

    async def test_clear_only_touches_prefix(self, redis_client):
        store = RedisMemoryStore(redis_client, StoreConfig(key_prefix="dm-test"))
        await store.save_memory(_memory("a"))
        await store.save_summary("conv", ConversationSummary(text="s", covered_message_count=1))
        await redis_client.set("unrelated", "keep")

        await store.clear()

        assert await store.get_memory("a", "doc", "v1") is None
        assert await store.get_summary("conv") is None
        assert await redis_client.get("unrelated") == b"keep"


# ---------------------------------------------------------------------------
# Server over Redis
# ---------------------------------------------------------------------------


class _PlainCompletionService:
    async def complete(self, system_instruction, prompt, max_output_tokens):
        if "memory item extractor" in system_instruction:
            return Completion(text=json.dumps([{"content": "The ending feels earned", "topic": "structure"}]))
        return Completion(text=json.dumps({"narrativeSummary": "I like where this is going."}))


@pytest.fixture()
async def redis_server(redis_container, redis_client):
    await configure(redis_url=redis_container, completion_service=_PlainCompletionService())
    yield redis_client
    await shutdown()


class TestServerOverRedis:
    async def test_write_is_persisted_and_survives_reconfigure(self, redis_server, redis_container):
        async with Client(mcp) as client:
            write = _parse(
                await client.call_tool(
                    "memory_write",
                    {
                        "agent_id": "reader-1",
                        "document_id": "doc-1",
                        "revision_id": "rev-1",
                        "event_type": "discussion",
                        "content": "The ending feels earned.",
                    },
                )
            )
        assert write["status"] == "ok"

        # shutdown() flushes background saves; a fresh server reads from Redis.
        await shutdown()
        await configure(redis_url=redis_container, completion_service=_PlainCompletionService())

        async with Client(mcp) as client:
            data = _parse(
                await client.call_tool(
                    "memory_read_all", {"document_id": "doc-1", "revision_id": "rev-1"}
                )
            )

        [agent] = data["agents"]
        assert agent["agent_id"] == "reader-1"
        assert "The ending feels earned" in agent["context"]
