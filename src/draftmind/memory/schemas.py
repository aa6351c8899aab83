"""Memory domain data models.

Three layers per (agent, document, revision):

- L3 narrative: ``narrative_summary`` and ``evolution_notes``.
- L2 items: scores, recommendation, strengths/concerns, discussion
  statements, chat highlights and score deltas.
- L1 resources: opaque references to full raw artifacts.
"""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Annotated
from typing import Any
from typing import Literal

from pydantic import BaseModel
from pydantic import Field

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Rating(str, Enum):
    """Qualitative rating of one scored dimension."""

    excellent = "excellent"
    very_good = "very_good"
    good = "good"
    so_so = "so_so"
    not_good = "not_good"


RATING_VALUES: dict[Rating, int] = {
    Rating.excellent: 95,
    Rating.very_good: 80,
    Rating.good: 65,
    Rating.so_so: 50,
    Rating.not_good: 35,
}


class Recommendation(str, Enum):
    """Overall verdict an agent gives the document."""

    recommend = "recommend"
    consider = "consider"
    low_consider = "low_consider"
    pass_ = "pass"


class Importance(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


class Sentiment(str, Enum):
    positive = "positive"
    negative = "negative"
    neutral = "neutral"


class EventType(str, Enum):
    """Kind of interaction a memory event records."""

    coverage = "coverage"
    discussion = "discussion"
    direct_chat = "direct_chat"


DIMENSIONS: tuple[str, ...] = (
    "premise",
    "character",
    "dialogue",
    "structure",
    "commerciality",
    "overall",
)

# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------


class DimensionScore(BaseModel):
    """A rating together with its numeric (0-100) equivalent."""

    rating: Rating = Rating.good
    numeric: int = Field(default=RATING_VALUES[Rating.good], ge=0, le=100)

    @classmethod
    def from_rating(cls, rating: Rating) -> DimensionScore:
        return cls(rating=rating, numeric=RATING_VALUES[rating])


class Scores(BaseModel):
    """Per-dimension scores; defaults to ``good`` everywhere."""

    premise: DimensionScore = Field(default_factory=DimensionScore)
    character: DimensionScore = Field(default_factory=DimensionScore)
    dialogue: DimensionScore = Field(default_factory=DimensionScore)
    structure: DimensionScore = Field(default_factory=DimensionScore)
    commerciality: DimensionScore = Field(default_factory=DimensionScore)
    overall: DimensionScore = Field(default_factory=DimensionScore)

    def get(self, dimension: str) -> DimensionScore:
        if dimension not in DIMENSIONS:
            raise KeyError(dimension)
        return getattr(self, dimension)


# ---------------------------------------------------------------------------
# L2 items
# ---------------------------------------------------------------------------


class MemoryItem(BaseModel):
    """An atomic fact produced by extraction."""

    id: str
    content: str
    topic: str = "general"
    source_event_type: EventType
    importance: Importance = Importance.medium
    timestamp: float


class DiscussionStatement(BaseModel):
    """Something the agent said during a group discussion."""

    statement: str
    topic: str
    sentiment: Sentiment = Sentiment.neutral
    referenced_concern: str | None = Field(
        default=None,
        description="Concern the statement voices, when one was detected.",
    )
    timestamp: float


class ChatHighlight(BaseModel):
    """A salient exchange from a direct chat with the agent."""

    exchange: str
    topic: str
    importance: Importance
    timestamp: float


class ScoreDelta(BaseModel):
    """Change in one scored dimension between two revisions."""

    dimension: str
    previous_numeric: int
    current_numeric: int
    previous_label: str
    current_label: str
    reason: str = ""


class ResourceReference(BaseModel):
    """L1 pointer to a full raw artifact (e.g. a transcript)."""

    resource_id: str
    event_type: EventType
    event_id: str


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class CoverageAssessment(BaseModel):
    """Scores and labels computed out of band for a coverage event."""

    scores: Scores
    recommendation: Recommendation
    key_strengths: list[str] = Field(default_factory=list)
    key_concerns: list[str] = Field(default_factory=list)
    evidence_strength: int | None = Field(default=None, ge=0, le=100)
    score_reasons: dict[str, str] = Field(
        default_factory=dict,
        description="Optional per-dimension reason for a score change.",
    )


class _EventBase(BaseModel):
    id: str = Field(default_factory=lambda: f"evt_{uuid.uuid4().hex}")
    content: str
    timestamp: float = Field(default_factory=time.time)
    metadata: dict[str, Any] = Field(default_factory=dict)
    resource_id: str | None = Field(
        default=None,
        description="L1 reference to the full artifact backing this event.",
    )


class CoverageEvent(_EventBase):
    type: Literal["coverage"] = "coverage"
    assessment: CoverageAssessment | None = None


class DiscussionEvent(_EventBase):
    type: Literal["discussion"] = "discussion"


class DirectChatEvent(_EventBase):
    type: Literal["direct_chat"] = "direct_chat"


MemoryEvent = Annotated[
    CoverageEvent | DiscussionEvent | DirectChatEvent,
    Field(discriminator="type"),
]

# ---------------------------------------------------------------------------
# Agent memory
# ---------------------------------------------------------------------------


class AgentMemory(BaseModel):
    """Durable state for one agent on one document revision."""

    agent_id: str
    document_id: str
    revision_id: str

    # L3
    narrative_summary: str = "No narrative available."
    evolution_notes: str | None = None

    # L2
    scores: Scores = Field(default_factory=Scores)
    recommendation: Recommendation = Recommendation.consider
    key_strengths: list[str] = Field(default_factory=list)
    key_concerns: list[str] = Field(default_factory=list)
    evidence_strength: int = Field(default=50, ge=0, le=100)
    discussion_statements: list[DiscussionStatement] = Field(default_factory=list)
    chat_highlights: list[ChatHighlight] = Field(default_factory=list)
    score_deltas: list[ScoreDelta] = Field(default_factory=list)

    # L1
    resources: list[ResourceReference] = Field(default_factory=list)

    prior_revision: AgentMemory | None = Field(
        default=None,
        description="Read-only link to this agent's memory on the prior revision.",
    )
    last_updated: float = Field(default_factory=time.time)


class ConversationSummary(BaseModel):
    """Lossy compression of chat turns dropped by budget truncation."""

    text: str
    covered_message_count: int = Field(ge=0)
