"""Memory domain: per-agent memory across document revisions."""

from draftmind.memory.consistency import ConsistencyChecker
from draftmind.memory.consistency import ConsistencyResult
from draftmind.memory.reader import query_by_topic
from draftmind.memory.reader import render_context
from draftmind.memory.schemas import AgentMemory
from draftmind.memory.schemas import ConversationSummary
from draftmind.memory.schemas import CoverageEvent
from draftmind.memory.schemas import DirectChatEvent
from draftmind.memory.schemas import DiscussionEvent
from draftmind.memory.schemas import MemoryEvent
from draftmind.memory.service import MemoryService
from draftmind.memory.service import PersistenceOutcome
from draftmind.memory.store import InMemoryMemoryStore
from draftmind.memory.store import MemoryStore
from draftmind.memory.store import RedisMemoryStore
from draftmind.memory.writer import MemoryWritePipeline

__all__ = [
    "AgentMemory",
    "ConsistencyChecker",
    "ConsistencyResult",
    "ConversationSummary",
    "CoverageEvent",
    "DirectChatEvent",
    "DiscussionEvent",
    "InMemoryMemoryStore",
    "MemoryEvent",
    "MemoryService",
    "MemoryStore",
    "MemoryWritePipeline",
    "PersistenceOutcome",
    "RedisMemoryStore",
    "query_by_topic",
    "render_context",
]
