"""Pydantic models for the MCP interface.

Output models shape tool responses; FastMCP v2 serializes them
automatically. Tools never raise on bad input: they return a result with
``status`` set to ``rejected`` (caller error) or ``error`` (backend
failure) and a machine-readable ``error_code``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel
from pydantic import Field

from draftmind.memory.schemas import MemoryItem
from draftmind.memory.schemas import Recommendation

Status = Literal["ok", "rejected", "error"]


class _ToolResult(BaseModel):
    status: Status = "ok"
    error_code: str | None = Field(
        default=None,
        description="Machine-readable reason when status is not ok.",
    )
    message: str | None = None


class MemoryWriteResult(_ToolResult):
    """Result of memory_write."""

    agent_id: str
    document_id: str
    revision_id: str
    event_id: str = ""
    narrative_summary: str = ""
    statement_count: int = 0
    highlight_count: int = 0
    resource_count: int = 0
    has_prior_revision: bool = False


class MemoryReadResult(_ToolResult):
    """Result of memory_read."""

    agent_id: str
    document_id: str
    revision_id: str
    found: bool = False
    context: str = Field(default="", description="Rendered memory for prompt injection.")
    items: list[MemoryItem] = Field(
        default_factory=list,
        description="Topic matches, when a topic filter was given.",
    )
    prior_revision_context: str | None = Field(
        default=None,
        description="Rendered memory from the prior revision, when requested.",
    )


class AgentContext(BaseModel):
    agent_id: str
    recommendation: Recommendation
    overall_numeric: int
    context: str


class MemoryReadAllResult(_ToolResult):
    """Result of memory_read_all."""

    document_id: str
    revision_id: str
    agents: list[AgentContext] = Field(default_factory=list)


class ConsistencyCheckResult(_ToolResult):
    """Result of check_consistency."""

    is_consistent: bool = True
    reframed_statement: str | None = None


class AssembleContextResult(_ToolResult):
    """Result of assemble_context."""

    prompt: str = ""
    total_estimated_tokens: int = 0
    truncated: bool = False
    document_truncated: bool = False
    chat_truncated: bool = False
    dropped_message_count: int = 0
    summary_updated: bool = False


class AdmissionUsageResult(_ToolResult):
    """Result of admission_usage."""

    requests: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    requests_per_minute: int = 0
    input_tokens_per_minute: int = 0
    output_tokens_per_minute: int = 0
