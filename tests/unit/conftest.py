"""Unit test fixtures: a scripted completion service and a FastMCP client.

The server is configured with the in-memory store, so no containers are
needed for unit tests.
"""

from __future__ import annotations

import json

import pytest
from fastmcp import Client

from draftmind.engine.completion import Completion
from draftmind.engine.completion import CompletionError


class ScriptedCompletionService:
    """Test double for TextCompletionService.

    Answers each prompt kind with a canned response; setting a kind's
    response to ``None`` makes that kind raise ``CompletionError``.
    """

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.responses: dict[str, str | None] = {
            "extract": json.dumps(
                [{"content": "The second act drags", "topic": "structure", "importance": "high"}]
            ),
            "narrative": json.dumps(
                {"narrativeSummary": "I think the draft needs a tighter middle.", "evolutionNotes": None}
            ),
            "consistency": json.dumps(
                {
                    "contradicts": True,
                    "acknowledgesChange": False,
                    "reframedContent": "I used to think the second act drags; now it moves briskly.",
                }
            ),
            "summary": "The user asked for notes on pacing.",
        }

    @staticmethod
    def _kind(system_instruction: str) -> str:
        if "memory item extractor" in system_instruction:
            return "extract"
        if "narrative synthesizer" in system_instruction:
            return "narrative"
        if "consistency checker" in system_instruction:
            return "consistency"
        return "summary"

    async def complete(self, system_instruction, prompt, max_output_tokens):
        kind = self._kind(system_instruction)
        self.calls.append({"kind": kind, "prompt": prompt})
        response = self.responses[kind]
        if response is None:
            raise CompletionError(f"{kind} unavailable")
        return Completion(text=response, input_tokens=len(prompt) // 4, output_tokens=10)


@pytest.fixture()
def scripted_service() -> ScriptedCompletionService:
    return ScriptedCompletionService()


@pytest.fixture()
async def mcp_client(scripted_service):
    """Yield a FastMCP Client wired to the draftmind server."""
    from draftmind.server import configure
    from draftmind.server import mcp
    from draftmind.server import shutdown

    await configure(completion_service=scripted_service)

    async with Client(mcp) as client:
        yield client

    await shutdown()
