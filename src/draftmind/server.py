"""draftmind: FastMCP v2 server exposing agent memory and prompt budgeting.

Tools delegate to a ``MemoryService`` (memory write/read/consistency), a
``ContextBudgetAssembler`` and the shared ``AdmissionController``. Call
``configure()`` before using the server and ``shutdown()`` to release the
Redis connection.
"""

from __future__ import annotations

from collections.abc import Awaitable
from collections.abc import Callable
from time import perf_counter

from fastmcp import FastMCP
from pydantic import TypeAdapter
from pydantic import ValidationError
from redis.asyncio import Redis  # type: ignore[import-untyped]

from draftmind.config import AdmissionConfig
from draftmind.config import ContextBudgetConfig
from draftmind.config import LLMConfig
from draftmind.config import MemoryConfig
from draftmind.config import StoreConfig
from draftmind.engine import AdmissionController
from draftmind.engine import AdmittedCompletionService
from draftmind.engine import AnalysisUnavailableError
from draftmind.engine import build_completion_service
from draftmind.engine import ContextBudgetAssembler
from draftmind.engine import ContextBudgetInput
from draftmind.engine import TextCompletionService
from draftmind.memory import ConsistencyChecker
from draftmind.memory import InMemoryMemoryStore
from draftmind.memory import MemoryEvent
from draftmind.memory import MemoryService
from draftmind.memory import MemoryStore
from draftmind.memory import MemoryWritePipeline
from draftmind.memory import RedisMemoryStore
from draftmind.memory import render_context
from draftmind.observability import record_call
from draftmind.schemas import AdmissionUsageResult
from draftmind.schemas import AgentContext
from draftmind.schemas import AssembleContextResult
from draftmind.schemas import ConsistencyCheckResult
from draftmind.schemas import MemoryReadAllResult
from draftmind.schemas import MemoryReadResult
from draftmind.schemas import MemoryWriteResult


mcp = FastMCP("draftmind")

# ---------------------------------------------------------------------------
# Backend instances (set via configure())
# ---------------------------------------------------------------------------

_redis: Redis | None = None
_controller: AdmissionController | None = None
_service: MemoryService | None = None
_assembler: ContextBudgetAssembler | None = None

_EVENT_ADAPTER: TypeAdapter = TypeAdapter(MemoryEvent)


async def configure(
    redis_url: str | None = None,
    *,
    llm_config: LLMConfig | None = None,
    completion_service: TextCompletionService | None = None,
    admission_config: AdmissionConfig | None = None,
    context_budget_config: ContextBudgetConfig | None = None,
    memory_config: MemoryConfig | None = None,
    store_config: StoreConfig | None = None,
    clock: Callable[[], float] | None = None,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> None:
    """Build the backend graph.

    Without *redis_url* memories live in process memory only. Without a
    *completion_service* one is built from *llm_config* (``noop`` when
    neither is given). Every completion passes through one shared
    admission controller.
    """
    global _redis, _controller, _service, _assembler
    if _redis is not None:
        try:
            await _redis.aclose()
        except RuntimeError:
            # Tests may reconfigure across event loops.
            pass
        _redis = None

    budget_cfg = context_budget_config or ContextBudgetConfig()
    memory_cfg = memory_config or MemoryConfig()

    base_service = completion_service or build_completion_service(
        llm_config or LLMConfig(provider="noop")
    )
    _controller = AdmissionController(admission_config, clock=clock, sleep=sleep)
    admitted = AdmittedCompletionService(
        base_service,
        _controller,
        chars_per_token=budget_cfg.chars_per_token,
    )

    store: MemoryStore
    if redis_url is None:
        store = InMemoryMemoryStore()
    else:
        _redis = Redis.from_url(redis_url)
        store = RedisMemoryStore(_redis, store_config)

    _service = MemoryService(
        MemoryWritePipeline(admitted, memory_cfg),
        store,
        ConsistencyChecker(admitted, memory_cfg),
        recent_statements=memory_cfg.recent_statements,
        recent_highlights=memory_cfg.recent_highlights,
        max_cached=memory_cfg.max_cached_memories,
        max_outcomes=memory_cfg.max_outcomes,
    )
    _assembler = ContextBudgetAssembler(budget_cfg, admitted)


async def shutdown() -> None:
    """Flush pending writes, close backend clients and release resources."""
    global _redis, _controller, _service, _assembler
    if _service is not None:
        await _service.flush()
    if _redis is not None:
        await _redis.aclose()
        _redis = None
    _controller = None
    _service = None
    _assembler = None


async def _reset_memory() -> None:
    """Clear stored memories and summaries (test cleanup)."""
    if _service is not None:
        await _service.clear()


def _get_service() -> MemoryService:
    """Return the memory service or raise."""
    if _service is None:
        raise RuntimeError("Memory service not configured. Call configure() first.")
    return _service


def _get_controller() -> AdmissionController:
    if _controller is None:
        raise RuntimeError("Admission controller not configured. Call configure() first.")
    return _controller


def _get_assembler() -> ContextBudgetAssembler:
    if _assembler is None:
        raise RuntimeError("Context assembler not configured. Call configure() first.")
    return _assembler


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


def _validation_message(exc: ValidationError) -> str:
    err = exc.errors()[0] if exc.errors() else {}
    return str(err.get("msg", "Invalid input"))


def _write_rejected(
    agent_id: str,
    document_id: str,
    revision_id: str,
    *,
    status: str = "rejected",
    error_code: str,
    message: str,
) -> MemoryWriteResult:
    return MemoryWriteResult(
        status=status,  # type: ignore[arg-type]
        error_code=error_code,
        message=message,
        agent_id=agent_id,
        document_id=document_id,
        revision_id=revision_id,
    )


@mcp.tool
async def memory_write(
    agent_id: str,
    document_id: str,
    revision_id: str,
    event_type: str,
    content: str,
    prior_revision_id: str | None = None,
    resource_id: str | None = None,
    assessment: dict | None = None,
    metadata: dict | None = None,
) -> MemoryWriteResult:
    """Record an interaction event in an agent's memory.

    Args:
        agent_id: Reader agent the event belongs to.
        document_id: Document under review.
        revision_id: Revision the event concerns.
        event_type: coverage, discussion or direct_chat.
        content: Free text of the event (coverage report, statements, chat).
        prior_revision_id: Revision to link back to when this is the
            agent's first event on ``revision_id``.
        resource_id: Reference to the full raw artifact.
        assessment: Coverage scores and labels (coverage events only).
        metadata: Free-form event metadata.
    """
    start = perf_counter()
    ok = False
    try:
        service = _get_service()
        if not agent_id or not document_id or not revision_id:
            return _write_rejected(
                agent_id,
                document_id,
                revision_id,
                error_code="validation_error",
                message="agent_id, document_id and revision_id are required.",
            )

        payload: dict = {
            "type": event_type,
            "content": content,
            "resource_id": resource_id,
            "metadata": metadata or {},
        }
        if assessment is not None:
            if event_type != "coverage":
                return _write_rejected(
                    agent_id,
                    document_id,
                    revision_id,
                    error_code="unexpected_assessment",
                    message="assessment is only accepted on coverage events.",
                )
            payload["assessment"] = assessment

        try:
            event = _EVENT_ADAPTER.validate_python(payload)
        except ValidationError as exc:
            return _write_rejected(
                agent_id,
                document_id,
                revision_id,
                error_code="validation_error",
                message=_validation_message(exc),
            )

        try:
            memory = await service.memorize(
                agent_id,
                document_id,
                revision_id,
                event,
                prior_revision_id=prior_revision_id,
            )
        except AnalysisUnavailableError as exc:
            return _write_rejected(
                agent_id,
                document_id,
                revision_id,
                status="error",
                error_code="analysis_unavailable",
                message=str(exc),
            )

        ok = True
        return MemoryWriteResult(
            agent_id=agent_id,
            document_id=document_id,
            revision_id=revision_id,
            event_id=event.id,
            narrative_summary=memory.narrative_summary,
            statement_count=len(memory.discussion_statements),
            highlight_count=len(memory.chat_highlights),
            resource_count=len(memory.resources),
            has_prior_revision=memory.prior_revision is not None,
        )
    finally:
        record_call(
            operation="mcp.memory_write",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def memory_read(
    agent_id: str,
    document_id: str,
    revision_id: str,
    topic: str | None = None,
    include_prior_revision: bool = False,
) -> MemoryReadResult:
    """Render an agent's memory of a revision for prompt injection.

    Args:
        agent_id: Reader agent to read.
        document_id: Document under review.
        revision_id: Revision to read.
        topic: Optional topic filter; matching statements and highlights
            are returned as items.
        include_prior_revision: Also render the prior revision's memory.
    """
    start = perf_counter()
    ok = False
    try:
        service = _get_service()
        memory = await service.get_memory(agent_id, document_id, revision_id)
        result = MemoryReadResult(
            agent_id=agent_id,
            document_id=document_id,
            revision_id=revision_id,
        )
        ok = True
        if memory is None:
            return result

        result.found = True
        result.context = await service.read_context(agent_id, document_id, revision_id)
        if topic:
            result.items = await service.read_topic(
                agent_id, document_id, revision_id, topic.strip().lower()
            )
        if include_prior_revision and memory.prior_revision is not None:
            result.prior_revision_context = render_context(memory.prior_revision)
        return result
    finally:
        record_call(
            operation="mcp.memory_read",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def memory_read_all(document_id: str, revision_id: str) -> MemoryReadAllResult:
    """Render every agent's memory of one revision.

    Args:
        document_id: Document under review.
        revision_id: Revision to read.
    """
    start = perf_counter()
    ok = False
    try:
        service = _get_service()
        memories = await service.read_revision(document_id, revision_id)
        ok = True
        return MemoryReadAllResult(
            document_id=document_id,
            revision_id=revision_id,
            agents=[
                AgentContext(
                    agent_id=memory.agent_id,
                    recommendation=memory.recommendation,
                    overall_numeric=memory.scores.overall.numeric,
                    context=render_context(memory),
                )
                for memory in memories
            ],
        )
    finally:
        record_call(
            operation="mcp.memory_read_all",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def check_consistency(
    agent_id: str,
    document_id: str,
    revision_id: str,
    topic: str,
    proposed: str,
) -> ConsistencyCheckResult:
    """Check a proposed statement against the agent's prior statements.

    Args:
        agent_id: Reader agent about to speak.
        document_id: Document under review.
        revision_id: Revision under discussion.
        topic: Topic of the proposed statement.
        proposed: The statement the agent is about to make.
    """
    start = perf_counter()
    ok = False
    try:
        service = _get_service()
        if not proposed.strip():
            return ConsistencyCheckResult(
                status="rejected",
                error_code="validation_error",
                message="proposed must not be empty.",
            )
        result = await service.validate(
            proposed,
            agent_id,
            document_id,
            revision_id,
            topic.strip().lower(),
        )
        ok = True
        return ConsistencyCheckResult(
            is_consistent=result.is_consistent,
            reframed_statement=result.reframed_statement,
        )
    finally:
        record_call(
            operation="mcp.check_consistency",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def assemble_context(
    system_instruction: str,
    document_text: str = "",
    chat_history: list[str] | None = None,
    highlights: str = "",
    conversation_id: str | None = None,
    agent_id: str | None = None,
    document_id: str | None = None,
    revision_id: str | None = None,
) -> AssembleContextResult:
    """Assemble a budgeted prompt from the layers of an agent turn.

    Args:
        system_instruction: Persona and task instructions.
        document_text: Full primary document text.
        chat_history: Chat turns, oldest first.
        highlights: Supplementary highlights text.
        conversation_id: Conversation whose summary is reused and updated.
        agent_id: Agent whose memory is injected (with document/revision).
        document_id: Document under review.
        revision_id: Revision under review.
    """
    start = perf_counter()
    ok = False
    try:
        service = _get_service()
        assembler = _get_assembler()

        memory_text = ""
        if agent_id and document_id and revision_id:
            memory_text = await service.read_context(agent_id, document_id, revision_id)

        existing_summary = None
        if conversation_id:
            existing_summary = await service.store.get_summary(conversation_id)

        result = await assembler.assemble(
            ContextBudgetInput(
                system_instruction=system_instruction,
                document_text=document_text,
                chat_history=list(chat_history or []),
                agent_memory=memory_text,
                highlights=highlights,
                existing_summary=existing_summary,
            )
        )
        metadata = result.metadata

        summary_updated = False
        if conversation_id and metadata.new_summary is not None:
            summary_updated = await service.store.save_summary(
                conversation_id, metadata.new_summary
            )

        ok = True
        return AssembleContextResult(
            prompt=result.prompt,
            total_estimated_tokens=metadata.total_estimated_tokens,
            truncated=metadata.truncated,
            document_truncated=metadata.document_truncated,
            chat_truncated=metadata.chat_truncated,
            dropped_message_count=metadata.dropped_message_count,
            summary_updated=summary_updated,
        )
    finally:
        record_call(
            operation="mcp.assemble_context",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def admission_usage() -> AdmissionUsageResult:
    """Report provider usage in the current admission window."""
    controller = _get_controller()
    usage = controller.usage()
    cfg = controller.config
    return AdmissionUsageResult(
        requests=usage.requests,
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        requests_per_minute=cfg.requests_per_minute,
        input_tokens_per_minute=cfg.input_tokens_per_minute,
        output_tokens_per_minute=cfg.output_tokens_per_minute,
    )
