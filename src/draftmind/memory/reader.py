"""Read-side rendering of agent memory into prompt-ready text."""

from __future__ import annotations

from draftmind.memory.schemas import AgentMemory
from draftmind.memory.schemas import DiscussionStatement
from draftmind.memory.schemas import EventType
from draftmind.memory.schemas import Importance
from draftmind.memory.schemas import MemoryItem


def _statement_line(statement: DiscussionStatement) -> str:
    line = f'- [{statement.topic}] "{statement.statement}"'
    if statement.referenced_concern:
        line += f" (concern: {statement.referenced_concern})"
    return line


def render_context(
    memory: AgentMemory | None,
    *,
    recent_statements: int = 5,
    recent_highlights: int = 3,
) -> str:
    """Flatten *memory* into a text block for prompt injection.

    Pure and deterministic: the same memory always renders the same text.
    Sections with nothing to show are omitted.
    """
    if memory is None:
        return ""

    sections = [
        "YOUR MEMORY OF THIS DOCUMENT:",
        f"NARRATIVE SUMMARY:\n{memory.narrative_summary}",
    ]
    if memory.evolution_notes:
        sections.append(f"EVOLUTION FROM PRIOR REVISION:\n{memory.evolution_notes}")

    statements = memory.discussion_statements[-recent_statements:] if recent_statements > 0 else []
    if statements:
        lines = "\n".join(_statement_line(s) for s in statements)
        sections.append(f"RECENT DISCUSSION STATEMENTS:\n{lines}")

    highlights = memory.chat_highlights[-recent_highlights:] if recent_highlights > 0 else []
    if highlights:
        lines = "\n".join(f"- [{h.topic}] {h.exchange}" for h in highlights)
        sections.append(f"RECENT CHAT HIGHLIGHTS:\n{lines}")

    if memory.score_deltas:
        lines = "\n".join(
            f"- {d.dimension}: {d.previous_label} -> {d.current_label}"
            + (f" ({d.reason})" if d.reason else "")
            for d in memory.score_deltas
        )
        sections.append(f"SCORE CHANGES FROM PRIOR REVISION:\n{lines}")

    return "\n\n".join(sections) + "\n"


def query_by_topic(memory: AgentMemory, topic: str) -> list[MemoryItem]:
    """Return discussion statements, then chat highlights, on *topic*."""
    items: list[MemoryItem] = []
    for statement in memory.discussion_statements:
        if statement.topic == topic:
            items.append(
                MemoryItem(
                    id=f"discussion-{len(items)}",
                    content=statement.statement,
                    topic=statement.topic,
                    source_event_type=EventType.discussion,
                    importance=Importance.medium,
                    timestamp=statement.timestamp,
                )
            )
    for highlight in memory.chat_highlights:
        if highlight.topic == topic:
            items.append(
                MemoryItem(
                    id=f"chat-{len(items)}",
                    content=highlight.exchange,
                    topic=highlight.topic,
                    source_event_type=EventType.direct_chat,
                    importance=highlight.importance,
                    timestamp=highlight.timestamp,
                )
            )
    return items
