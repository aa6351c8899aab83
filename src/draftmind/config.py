"""Application configuration dataclasses.

Frozen dataclasses with sensible defaults for each subsystem.
No env-var loading or YAML parsing, only plain defaults that can
be overridden at construction time.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LLMConfig:
    """Completion provider settings shared by every core stage."""

    provider: str = "openai"
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    temperature: float = 0.2
    max_tokens: int = 4096
    timeout_seconds: float = 60.0


@dataclass(frozen=True)
class AdmissionConfig:
    """Provider quotas enforced by the sliding-window admission controller."""

    requests_per_minute: int = 50
    input_tokens_per_minute: int = 30_000
    # Soft limit: tracked and warned on, never gating.
    output_tokens_per_minute: int = 8_000
    window_seconds: float = 60.0
    initial_backoff_seconds: float = 0.5
    max_backoff_seconds: float = 15.0
    output_warning_ratio: float = 0.8
    # Longest a completion waits for admission; None waits indefinitely.
    acquire_timeout_seconds: float | None = 120.0


@dataclass(frozen=True)
class ContextBudgetConfig:
    """Per-layer token quotas for prompt assembly."""

    system_tokens: int = 4_000
    document_tokens: int = 80_000
    summary_tokens: int = 3_000
    chat_tokens: int = 47_000
    memory_tokens: int = 20_000
    highlights_tokens: int = 10_000
    # Leaves 36K of a 200K window for the response and tool use.
    total_tokens: int = 164_000
    chars_per_token: int = 4
    document_head_chars: int = 40_000
    document_tail_chars: int = 20_000
    summary_regen_threshold: int = 5
    # Newest dropped turns sent for summarization; older ones are skipped.
    summary_input_tokens: int = 20_000
    summary_max_output_tokens: int = 1_024


@dataclass(frozen=True)
class MemoryConfig:
    """Tuneable parameters for the memory write/read/consistency stages."""

    extraction_max_output_tokens: int = 2_048
    narrative_max_output_tokens: int = 1_024
    consistency_max_output_tokens: int = 1_024
    extraction_content_chars: int = 4_000
    max_items_per_event: int = 15
    recent_statements: int = 5
    recent_highlights: int = 3
    # In-process bounds for MemoryService.
    max_cached_memories: int = 1_024
    max_outcomes: int = 1_000


@dataclass(frozen=True)
class StoreConfig:
    """Settings for the Redis-backed memory store."""

    key_prefix: str = "draftmind"
    ttl_seconds: int | None = None
