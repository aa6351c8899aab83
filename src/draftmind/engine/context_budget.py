"""Context budget assembly.

Packs the layers of an agent prompt (system instruction, primary
document, agent memory, supplementary highlights and chat history) into
one prompt under a hard token ceiling. Every layer has a fixed quota and
a deterministic truncation rule; tokens are estimated as
``ceil(characters / chars_per_token)``.

When chat history overflows, the dropped turns are compressed into a
conversation summary. An existing summary is reused until enough newly
dropped turns accumulate to justify regenerating it, and a failed
summarization never aborts assembly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field

from draftmind.config import ContextBudgetConfig
from draftmind.engine.completion import complete_recorded
from draftmind.engine.completion import CompletionError
from draftmind.engine.completion import TextCompletionService
from draftmind.engine.prompt_builder import build_summary_prompt
from draftmind.memory.schemas import ConversationSummary

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n[...truncated...]\n\n"
EARLIER_HISTORY_MARKER = "[earlier history truncated]"

# ---------------------------------------------------------------------------
# Input / output
# ---------------------------------------------------------------------------


@dataclass
class ContextBudgetInput:
    """Raw candidate content for one prompt."""

    system_instruction: str
    document_text: str = ""
    chat_history: list[str] = field(default_factory=list)
    agent_memory: str = ""
    highlights: str = ""
    existing_summary: ConversationSummary | None = None


@dataclass
class LayerTokens:
    """Estimated tokens per layer after truncation."""

    system: int = 0
    document: int = 0
    summary: int = 0
    chat: int = 0
    memory: int = 0
    highlights: int = 0

    @property
    def total(self) -> int:
        return (
            self.system
            + self.document
            + self.summary
            + self.chat
            + self.memory
            + self.highlights
        )


@dataclass
class ContextBudgetMetadata:
    """Truncation and summary bookkeeping for one assembled prompt."""

    layers: LayerTokens
    total_estimated_tokens: int
    truncated: bool
    document_truncated: bool = False
    chat_truncated: bool = False
    dropped_message_count: int = 0
    new_summary: ConversationSummary | None = None


@dataclass
class ContextBudgetResult:
    prompt: str
    metadata: ContextBudgetMetadata


@dataclass
class ChatTruncation:
    """Split of chat history into a kept suffix and a dropped prefix."""

    kept: list[str]
    dropped: list[str]


# ---------------------------------------------------------------------------
# Truncation helpers
# ---------------------------------------------------------------------------


def estimate_tokens(text: str, chars_per_token: int = 4) -> int:
    """Approximate token count of *text*."""
    return -(-len(text) // chars_per_token)


def truncate_document(text: str, config: ContextBudgetConfig) -> str:
    """Keep a fixed head and tail of an over-quota document.

    Documents within quota are returned unchanged, so re-truncating an
    already-truncated document is a no-op.
    """
    max_chars = config.document_tokens * config.chars_per_token
    if len(text) <= max_chars:
        return text
    head = text[: config.document_head_chars]
    tail = text[-config.document_tail_chars :] if config.document_tail_chars else ""
    return f"{head}{TRUNCATION_MARKER}{tail}"


def truncate_chat_history(
    messages: list[str],
    max_tokens: int,
    chars_per_token: int = 4,
) -> ChatTruncation:
    """Keep the longest suffix of *messages* that fits *max_tokens*.

    Walks from the most recent turn backward and stops at the first turn
    that would overflow; that turn and everything older is dropped.
    """
    used = 0
    cutoff = len(messages)
    for index in range(len(messages) - 1, -1, -1):
        cost = estimate_tokens(messages[index], chars_per_token)
        if used + cost > max_tokens:
            break
        used += cost
        cutoff = index
    return ChatTruncation(kept=messages[cutoff:], dropped=messages[:cutoff])


def _head(text: str, max_chars: int) -> str:
    return text if len(text) <= max_chars else text[:max_chars]


# ---------------------------------------------------------------------------
# Assembler
# ---------------------------------------------------------------------------


class ContextBudgetAssembler:
    """Assemble bounded prompts; optionally summarizes overflowed chat."""

    def __init__(
        self,
        config: ContextBudgetConfig | None = None,
        completion_service: TextCompletionService | None = None,
    ) -> None:
        self._config = config or ContextBudgetConfig()
        self._service = completion_service

    async def assemble(self, data: ContextBudgetInput) -> ContextBudgetResult:
        cfg = self._config
        cpt = cfg.chars_per_token

        system_text = _head(data.system_instruction, cfg.system_tokens * cpt)
        document = truncate_document(data.document_text, cfg)
        document_truncated = document != data.document_text

        chat = truncate_chat_history(data.chat_history, cfg.chat_tokens, cpt)
        chat_truncated = bool(chat.dropped)

        summary_text = ""
        new_summary: ConversationSummary | None = None
        if chat_truncated:
            summary_text, new_summary = await self._resolve_summary(
                chat.dropped, data.existing_summary
            )
            summary_text = _head(summary_text, cfg.summary_tokens * cpt)

        memory_text = _head(data.agent_memory, cfg.memory_tokens * cpt)
        highlights_text = _head(data.highlights, cfg.highlights_tokens * cpt)

        layers = LayerTokens(
            system=estimate_tokens(system_text, cpt),
            document=estimate_tokens(document, cpt),
            summary=estimate_tokens(summary_text, cpt),
            chat=sum(estimate_tokens(turn, cpt) for turn in chat.kept),
            memory=estimate_tokens(memory_text, cpt),
            highlights=estimate_tokens(highlights_text, cpt),
        )
        total = layers.total
        truncated = document_truncated or chat_truncated or total > cfg.total_tokens
        if total > cfg.total_tokens:
            logger.warning(
                "context budget exceeded total_tokens=%d ceiling=%d",
                total,
                cfg.total_tokens,
            )

        parts = [system_text]
        if document:
            parts.append(f"\n\n## DOCUMENT\n\n{document}")
        if memory_text:
            parts.append(f"\n\n## AGENT MEMORY\n\n{memory_text}")
        if highlights_text:
            parts.append(f"\n\n## HIGHLIGHTS\n\n{highlights_text}")
        chat_section = self._chat_section(chat, summary_text)
        if chat_section:
            parts.append(f"\n\n## CONVERSATION HISTORY\n\n{chat_section}")

        return ContextBudgetResult(
            prompt="".join(parts),
            metadata=ContextBudgetMetadata(
                layers=layers,
                total_estimated_tokens=total,
                truncated=truncated,
                document_truncated=document_truncated,
                chat_truncated=chat_truncated,
                dropped_message_count=len(chat.dropped),
                new_summary=new_summary,
            ),
        )

    # -- internal --

    @staticmethod
    def _chat_section(chat: ChatTruncation, summary_text: str) -> str:
        recent = "\n\n".join(chat.kept)
        if not chat.dropped:
            return recent
        if summary_text:
            section = f"## EARLIER CONVERSATION SUMMARY\n\n{summary_text}"
            if recent:
                section += f"\n\n## RECENT CONVERSATION\n\n{recent}"
            return section
        if recent:
            return f"{EARLIER_HISTORY_MARKER}\n\n{recent}"
        return EARLIER_HISTORY_MARKER

    def _cap_summary_input(self, turns: list[str]) -> list[str]:
        """Newest *turns* that fit ``summary_input_tokens``."""
        cfg = self._config
        capped = truncate_chat_history(turns, cfg.summary_input_tokens, cfg.chars_per_token)
        if capped.dropped:
            logger.info(
                "summary input capped: skipping %d oldest of %d turns",
                len(capped.dropped),
                len(turns),
            )
        if capped.kept or not turns:
            return capped.kept
        # A single newest turn over the cap is cut to its head.
        return [_head(turns[-1], cfg.summary_input_tokens * cfg.chars_per_token)]

    async def _resolve_summary(
        self,
        dropped: list[str],
        existing: ConversationSummary | None,
    ) -> tuple[str, ConversationSummary | None]:
        """Return ``(summary_text, new_summary_or_None)`` for *dropped* turns."""
        dropped_count = len(dropped)
        covered = existing.covered_message_count if existing else 0
        newly_dropped = dropped_count - covered

        if existing and newly_dropped < self._config.summary_regen_threshold:
            return existing.text, None
        if self._service is None:
            return (existing.text if existing else ""), None

        # Turns the previous summary already covers are not re-sent.
        if existing and 0 <= covered <= dropped_count:
            to_summarize = dropped[covered:]
        else:
            to_summarize = dropped

        to_summarize = self._cap_summary_input(to_summarize)

        system, prompt = build_summary_prompt(
            to_summarize,
            previous_summary=existing.text if existing else None,
        )
        try:
            completion = await complete_recorded(
                self._service,
                operation="context.summarize",
                system_instruction=system,
                prompt=prompt,
                max_output_tokens=self._config.summary_max_output_tokens,
            )
        except CompletionError as exc:
            logger.warning("conversation summary failed, using fallback: %s", exc)
            return (existing.text if existing else ""), None

        text = completion.text.strip()
        if not text:
            logger.warning("conversation summary came back empty, using fallback")
            return (existing.text if existing else ""), None
        return text, ConversationSummary(text=text, covered_message_count=dropped_count)
