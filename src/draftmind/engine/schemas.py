"""Model-output schemas.

Pydantic shapes for what the extraction, narrative-evolution and
consistency prompts ask the model to return. Field aliases match the
camelCase keys used in the prompts; coercion is lenient where a small
deviation should not discard an otherwise useful response.
"""

from __future__ import annotations

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator

_IMPORTANCE_LEVELS = ("high", "medium", "low")


class ExtractedItem(BaseModel):
    """One atomic fact returned by the extraction prompt."""

    content: str = Field(min_length=1, description="The fact or observation.")
    topic: str | None = Field(
        default=None,
        description="Dimension the fact concerns (character, structure, ...).",
    )
    importance: str = Field(
        default="medium",
        description="high, medium or low.",
    )

    @field_validator("topic", mode="before")
    @classmethod
    def _normalize_topic(cls, value: object) -> str | None:
        if value is None:
            return None
        topic = str(value).strip().lower()
        return topic or None

    @field_validator("importance", mode="before")
    @classmethod
    def _normalize_importance(cls, value: object) -> str:
        level = str(value or "").strip().lower()
        return level if level in _IMPORTANCE_LEVELS else "medium"


class NarrativeUpdate(BaseModel):
    """Evolved first-person narrative returned by the synthesis prompt."""

    model_config = ConfigDict(populate_by_name=True)

    narrative_summary: str = Field(alias="narrativeSummary", min_length=1)
    evolution_notes: str | None = Field(default=None, alias="evolutionNotes")

    @field_validator("evolution_notes", mode="before")
    @classmethod
    def _blank_notes_are_absent(cls, value: object) -> str | None:
        if value is None:
            return None
        notes = str(value).strip()
        return notes or None


class ConsistencyVerdict(BaseModel):
    """Contradiction judgement returned by the consistency prompt."""

    model_config = ConfigDict(populate_by_name=True)

    contradicts: bool
    acknowledges_change: bool = Field(default=False, alias="acknowledgesChange")
    reframed_content: str | None = Field(default=None, alias="reframedContent")
