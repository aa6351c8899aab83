"""Text-completion boundary.

Every core stage talks to the language-model provider through the
``TextCompletionService`` protocol. Concrete providers live in
``llm_adapters``; tests use hand-written doubles.
"""

from __future__ import annotations

from time import perf_counter
from typing import Protocol
from typing import runtime_checkable

from pydantic import BaseModel
from pydantic import Field

from draftmind.observability import record_call

# ---------------------------------------------------------------------------
# Protocol and result
# ---------------------------------------------------------------------------


class Completion(BaseModel):
    """Generated text plus the token counts the provider reported."""

    text: str = Field(default="", description="Generated text.")
    input_tokens: int = Field(default=0, ge=0, description="Prompt tokens consumed.")
    output_tokens: int = Field(default=0, ge=0, description="Tokens generated.")


@runtime_checkable
class TextCompletionService(Protocol):
    """Protocol for completion providers.

    Implementations must raise ``CompletionError`` (and nothing else) on
    transport failures, provider errors, and timeouts.
    """

    async def complete(
        self,
        system_instruction: str,
        prompt: str,
        max_output_tokens: int,
    ) -> Completion: ...


class CompletionError(Exception):
    """Raised by completion services when a call fails or times out."""


class AnalysisUnavailableError(Exception):
    """Raised when every completion stage of an operation failed.

    This is the only failure the core surfaces upward; partial failures are
    recovered locally with documented fallbacks.
    """

    def __init__(self, message: str = "analysis temporarily unavailable") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Instrumented call
# ---------------------------------------------------------------------------


async def complete_recorded(
    service: TextCompletionService,
    *,
    operation: str,
    system_instruction: str,
    prompt: str,
    max_output_tokens: int,
) -> Completion:
    """Call *service* and record latency and token usage under *operation*.

    ``CompletionError`` propagates to the caller after the sample is recorded.
    """
    start = perf_counter()
    ok = False
    completion: Completion | None = None
    try:
        completion = await service.complete(
            system_instruction, prompt, max_output_tokens
        )
        ok = True
        return completion
    finally:
        record_call(
            operation=operation,
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
            input_tokens=completion.input_tokens if completion else 0,
            output_tokens=completion.output_tokens if completion else 0,
        )
