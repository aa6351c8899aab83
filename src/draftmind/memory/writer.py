"""Memory write pipeline.

``memorize`` turns one interaction event into updated agent memory in
three stages:

1. Extract atomic items from the event's free text (completion call).
2. Merge the items into structured memory, with one merge function per
   event variant.
3. Evolve the first-person narrative (completion call).

Extraction and evolution failures are recovered locally (empty items,
unchanged narrative). Only when every completion stage that ran failed
at the service level, and the event carried nothing to merge without the
model (an assessment or a resource reference), is
``AnalysisUnavailableError`` raised.
"""

from __future__ import annotations

import logging
import re
import time
from typing import assert_never

from draftmind.config import MemoryConfig
from draftmind.engine.completion import AnalysisUnavailableError
from draftmind.engine.completion import complete_recorded
from draftmind.engine.completion import CompletionError
from draftmind.engine.completion import TextCompletionService
from draftmind.engine.parsing import parse_json_array
from draftmind.engine.parsing import parse_json_object
from draftmind.engine.parsing import ParseError
from draftmind.engine.prompt_builder import build_extraction_prompt
from draftmind.engine.prompt_builder import build_narrative_prompt
from draftmind.engine.schemas import ExtractedItem
from draftmind.engine.schemas import NarrativeUpdate
from draftmind.memory.schemas import AgentMemory
from draftmind.memory.schemas import ChatHighlight
from draftmind.memory.schemas import CoverageEvent
from draftmind.memory.schemas import DIMENSIONS
from draftmind.memory.schemas import DirectChatEvent
from draftmind.memory.schemas import DiscussionEvent
from draftmind.memory.schemas import DiscussionStatement
from draftmind.memory.schemas import EventType
from draftmind.memory.schemas import Importance
from draftmind.memory.schemas import MemoryItem
from draftmind.memory.schemas import ResourceReference
from draftmind.memory.schemas import ScoreDelta
from draftmind.memory.schemas import Scores
from draftmind.memory.schemas import Sentiment

logger = logging.getLogger(__name__)

_NO_NARRATIVE = "No narrative available."

# ---------------------------------------------------------------------------
# Keyword heuristics
# ---------------------------------------------------------------------------

_POSITIVE_WORDS = (
    "excellent",
    "strong",
    "compelling",
    "effective",
    "praise",
    "works",
    "good",
    "love",
    "brilliant",
)
_NEGATIVE_WORDS = (
    "weak",
    "problem",
    "issue",
    "concern",
    "fails",
    "doesn't work",
    "bad",
    "worried",
    "unclear",
)

_TOPIC_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("character", ("character", "protagonist", "arc")),
    ("structure", ("structure", "act", "pacing")),
    ("dialogue", ("dialogue", "voice", "subtext")),
    ("premise", ("premise", "concept", "logline")),
    ("commerciality", ("market", "commercial", "audience")),
)

_CONCERN_PATTERNS = (
    re.compile(
        r"(?:my (?:main )?concern is|worried about|the (?:issue|problem) (?:is|with)) (.+?)(?:\.|$)",
        re.IGNORECASE,
    ),
    re.compile(r"(?:doesn't|does not) (?:work|land) (.+?)(?:\.|$)", re.IGNORECASE),
)
_CONCERN_MAX_CHARS = 200


def infer_sentiment(text: str) -> Sentiment:
    """Classify *text* by lexicon hits; ties are neutral."""
    lowered = text.lower()
    positive = sum(1 for word in _POSITIVE_WORDS if word in lowered)
    negative = sum(1 for word in _NEGATIVE_WORDS if word in lowered)
    if positive > negative:
        return Sentiment.positive
    if negative > positive:
        return Sentiment.negative
    return Sentiment.neutral


def infer_topic(text: str) -> str:
    """Best-effort topic for text the extractor left untagged."""
    lowered = text.lower()
    for topic, keywords in _TOPIC_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return topic
    return "general"


def extract_concern(text: str) -> str | None:
    """Pull the concern a statement voices ('my concern is X'), if any."""
    for pattern in _CONCERN_PATTERNS:
        match = pattern.search(text)
        if match and match.group(1).strip():
            return match.group(1).strip()[:_CONCERN_MAX_CHARS]
    return None


# ---------------------------------------------------------------------------
# Merge functions (one per event variant)
# ---------------------------------------------------------------------------


def _append_unique(existing: list[str], new: list[str]) -> list[str]:
    merged = list(existing)
    seen = set(existing)
    for value in new:
        if value not in seen:
            merged.append(value)
            seen.add(value)
    return merged


def compute_score_deltas(
    previous: Scores,
    current: Scores,
    reasons: dict[str, str] | None = None,
) -> list[ScoreDelta]:
    """Deltas for every dimension whose numeric score changed."""
    reasons = reasons or {}
    deltas: list[ScoreDelta] = []
    for dimension in DIMENSIONS:
        before = previous.get(dimension)
        after = current.get(dimension)
        if before.numeric == after.numeric:
            continue
        deltas.append(
            ScoreDelta(
                dimension=dimension,
                previous_numeric=before.numeric,
                current_numeric=after.numeric,
                previous_label=before.rating.value,
                current_label=after.rating.value,
                reason=reasons.get(dimension, ""),
            )
        )
    return deltas


def merge_coverage(memory: AgentMemory, event: CoverageEvent, items: list[MemoryItem]) -> None:
    """Apply the caller's pre-computed assessment; items are not scored here."""
    del items
    assessment = event.assessment
    if assessment is None:
        return
    memory.scores = assessment.scores.model_copy(deep=True)
    memory.recommendation = assessment.recommendation
    memory.key_strengths = _append_unique(memory.key_strengths, assessment.key_strengths)
    memory.key_concerns = _append_unique(memory.key_concerns, assessment.key_concerns)
    if assessment.evidence_strength is not None:
        memory.evidence_strength = assessment.evidence_strength
    if memory.prior_revision is not None:
        memory.score_deltas = compute_score_deltas(
            memory.prior_revision.scores,
            memory.scores,
            assessment.score_reasons,
        )


def merge_discussion(
    memory: AgentMemory, event: DiscussionEvent, items: list[MemoryItem]
) -> None:
    del event
    memory.discussion_statements = memory.discussion_statements + [
        DiscussionStatement(
            statement=item.content,
            topic=item.topic,
            sentiment=infer_sentiment(item.content),
            referenced_concern=extract_concern(item.content),
            timestamp=item.timestamp,
        )
        for item in items
    ]


def merge_direct_chat(
    memory: AgentMemory, event: DirectChatEvent, items: list[MemoryItem]
) -> None:
    del event
    memory.chat_highlights = memory.chat_highlights + [
        ChatHighlight(
            exchange=item.content,
            topic=item.topic,
            importance=item.importance,
            timestamp=item.timestamp,
        )
        for item in items
        if item.importance in (Importance.high, Importance.medium)
    ]


def merge_event(
    memory: AgentMemory,
    event: CoverageEvent | DiscussionEvent | DirectChatEvent,
    items: list[MemoryItem],
) -> None:
    """Route *items* into *memory* according to the event variant."""
    if isinstance(event, CoverageEvent):
        merge_coverage(memory, event, items)
    elif isinstance(event, DiscussionEvent):
        merge_discussion(memory, event, items)
    elif isinstance(event, DirectChatEvent):
        merge_direct_chat(memory, event, items)
    else:
        assert_never(event)

    if event.resource_id:
        memory.resources = memory.resources + [
            ResourceReference(
                resource_id=event.resource_id,
                event_type=EventType(event.type),
                event_id=event.id,
            )
        ]


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class MemoryWritePipeline:
    """Extract, merge and evolve agent memory for one event at a time.

    Not safe for concurrent calls on the same (agent, revision) pair: the
    caller serializes those (see ``MemoryService``).
    """

    def __init__(
        self,
        completion_service: TextCompletionService,
        config: MemoryConfig | None = None,
    ) -> None:
        self._service = completion_service
        self._config = config or MemoryConfig()

    async def memorize(
        self,
        agent_id: str,
        document_id: str,
        revision_id: str,
        event: CoverageEvent | DiscussionEvent | DirectChatEvent,
        existing_memory: AgentMemory | None = None,
    ) -> AgentMemory:
        """Process *event* and return the updated memory for the pair.

        When *existing_memory* belongs to another revision, a fresh memory
        is started for *revision_id* and the existing one becomes its
        ``prior_revision``.
        """
        new_revision = (
            existing_memory is not None and existing_memory.revision_id != revision_id
        )
        if existing_memory is None or new_revision:
            base = AgentMemory(
                agent_id=agent_id,
                document_id=document_id,
                revision_id=revision_id,
                prior_revision=(
                    existing_memory.model_copy(update={"prior_revision": None}, deep=True)
                    if existing_memory is not None
                    else None
                ),
            )
            current_narrative: str | None = None
            current_notes: str | None = None
        else:
            base = existing_memory.model_copy(deep=True)
            current_narrative = existing_memory.narrative_summary
            current_notes = existing_memory.evolution_notes
        prior_narrative = (
            base.prior_revision.narrative_summary if base.prior_revision else None
        )

        service_failures = 0
        stages_run = 1

        # --- 1. Extract ---
        try:
            items = await self.extract_items(event)
        except CompletionError as exc:
            logger.warning("memory extraction failed agent=%s event=%s: %s", agent_id, event.id, exc)
            service_failures += 1
            items = []

        # --- 2. Merge ---
        merge_event(base, event, items)

        # --- 3. Evolve ---
        narrative, notes = current_narrative, current_notes
        if items or current_narrative is None:
            stages_run += 1
            try:
                update = await self.evolve_narrative(
                    agent_id,
                    existing_narrative=current_narrative,
                    prior_revision_narrative=prior_narrative,
                    items=items,
                )
            except CompletionError as exc:
                logger.warning("narrative evolution failed agent=%s: %s", agent_id, exc)
                service_failures += 1
                update = None
            if update is not None:
                narrative, notes = update.narrative_summary, update.evolution_notes

        # Assessments and resource references merge without a model call.
        carries_data = event.resource_id is not None or (
            isinstance(event, CoverageEvent) and event.assessment is not None
        )
        if service_failures == stages_run and not carries_data:
            raise AnalysisUnavailableError()

        base.narrative_summary = narrative or _NO_NARRATIVE
        base.evolution_notes = notes
        previous_update = existing_memory.last_updated if existing_memory else 0.0
        base.last_updated = max(time.time(), previous_update)
        return base

    # -- stages --

    async def extract_items(
        self, event: CoverageEvent | DiscussionEvent | DirectChatEvent
    ) -> list[MemoryItem]:
        """Extract atomic items; unparseable output yields ``[]``.

        ``CompletionError`` propagates so the caller can tell an outage
        from an empty result.
        """
        content = event.content[: self._config.extraction_content_chars]
        system, prompt = build_extraction_prompt(
            event.type,
            content,
            max_items=self._config.max_items_per_event,
        )
        completion = await complete_recorded(
            self._service,
            operation="memory.extract",
            system_instruction=system,
            prompt=prompt,
            max_output_tokens=self._config.extraction_max_output_tokens,
        )
        parsed = parse_json_array(completion.text, ExtractedItem)
        if isinstance(parsed, ParseError):
            logger.warning("memory extraction unparseable event=%s: %s", event.id, parsed.reason)
            return []

        extracted = parsed.value[: self._config.max_items_per_event]
        return [
            MemoryItem(
                id=f"{event.id}-{index}",
                content=item.content,
                topic=item.topic or infer_topic(item.content),
                source_event_type=EventType(event.type),
                importance=Importance(item.importance),
                timestamp=event.timestamp,
            )
            for index, item in enumerate(extracted)
        ]

    async def evolve_narrative(
        self,
        agent_id: str,
        *,
        existing_narrative: str | None,
        prior_revision_narrative: str | None,
        items: list[MemoryItem],
    ) -> NarrativeUpdate | None:
        """Ask for an evolved narrative; ``None`` when the response is unusable."""
        system, prompt = build_narrative_prompt(
            agent_id,
            existing_narrative=existing_narrative,
            prior_revision_narrative=prior_revision_narrative,
            items=[(item.topic, item.content) for item in items],
        )
        completion = await complete_recorded(
            self._service,
            operation="memory.evolve",
            system_instruction=system,
            prompt=prompt,
            max_output_tokens=self._config.narrative_max_output_tokens,
        )
        parsed = parse_json_object(completion.text, NarrativeUpdate)
        if isinstance(parsed, ParseError):
            logger.warning("narrative unparseable agent=%s: %s", agent_id, parsed.reason)
            return None
        return parsed.value
