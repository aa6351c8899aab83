"""Unit tests for the consistency checker."""

from __future__ import annotations

import json

from draftmind.engine.completion import Completion
from draftmind.engine.completion import CompletionError
from draftmind.memory.consistency import acknowledges_change
from draftmind.memory.consistency import ConsistencyChecker
from draftmind.memory.consistency import ConsistencyResult
from draftmind.memory.schemas import AgentMemory
from draftmind.memory.schemas import DiscussionStatement
from draftmind.observability import call_metrics_snapshot


# ---------------------------------------------------------------------------
# Mock completion services
# ---------------------------------------------------------------------------


class MockVerdictService:
    """Returns a canned verdict and records prompts."""

    def __init__(self, verdict: dict | str) -> None:
        self.calls: list[str] = []
        self._text = verdict if isinstance(verdict, str) else json.dumps(verdict)

    async def complete(self, system_instruction, prompt, max_output_tokens):
        self.calls.append(prompt)
        return Completion(text=self._text)


class FailingVerdictService:
    async def complete(self, system_instruction, prompt, max_output_tokens):
        raise CompletionError("provider down")


def _memory_with(*statements: tuple[str, str]) -> AgentMemory:
    return AgentMemory(
        agent_id="reader-1",
        document_id="doc-1",
        revision_id="rev-1",
        discussion_statements=[
            DiscussionStatement(statement=text, topic=topic, timestamp=float(i))
            for i, (text, topic) in enumerate(statements)
        ],
    )


_CONTRADICTION = {
    "contradicts": True,
    "acknowledgesChange": False,
    "reframedContent": "I said the second act drags, but now I think it moves briskly.",
}


class TestConsistencyChecker:
    async def test_no_prior_statements_is_trivially_consistent(self):
        service = MockVerdictService(_CONTRADICTION)
        checker = ConsistencyChecker(service)

        result = await checker.validate(
            "the second act moves briskly",
            _memory_with(("the dialogue sings", "dialogue")),
            "structure",
        )

        assert result == ConsistencyResult(is_consistent=True)
        assert service.calls == []

    async def test_unacknowledged_contradiction_is_reframed(self):
        service = MockVerdictService(_CONTRADICTION)
        checker = ConsistencyChecker(service)

        result = await checker.validate(
            "the second act moves briskly",
            _memory_with(("the second act drags", "structure")),
            "structure",
        )

        assert result.is_consistent is False
        assert result.reframed_statement == _CONTRADICTION["reframedContent"]
        assert '- "the second act drags"' in service.calls[0]
        assert call_metrics_snapshot()["memory.consistency"]["count"] == 1

    async def test_acknowledged_change_is_consistent(self):
        service = MockVerdictService(_CONTRADICTION)
        checker = ConsistencyChecker(service)

        result = await checker.validate(
            "unlike my earlier read, I now think the second act moves briskly",
            _memory_with(("the second act drags", "structure")),
            "structure",
        )

        assert result.is_consistent is True
        assert result.reframed_statement is None

    async def test_model_reported_acknowledgment_is_consistent(self):
        service = MockVerdictService({"contradicts": True, "acknowledgesChange": True})
        checker = ConsistencyChecker(service)

        result = await checker.validate(
            "the new draft fixed the second act",
            _memory_with(("the second act drags", "structure")),
            "structure",
        )

        assert result.is_consistent is True

    async def test_empty_reframe_gets_deterministic_prefix(self):
        service = MockVerdictService({"contradicts": True, "acknowledgesChange": False, "reframedContent": ""})
        checker = ConsistencyChecker(service)

        result = await checker.validate(
            "the second act moves briskly",
            _memory_with(("the second act drags", "structure")),
            "structure",
        )

        assert result.is_consistent is False
        assert result.reframed_statement
        assert result.reframed_statement.endswith("the second act moves briskly")
        assert acknowledges_change(result.reframed_statement)

    async def test_non_contradiction_is_consistent(self):
        service = MockVerdictService({"contradicts": False})
        result = await ConsistencyChecker(service).validate(
            "the second act is still slow",
            _memory_with(("the second act drags", "structure")),
            "structure",
        )
        assert result.is_consistent is True

    async def test_service_failure_fails_open(self):
        result = await ConsistencyChecker(FailingVerdictService()).validate(
            "the second act moves briskly",
            _memory_with(("the second act drags", "structure")),
            "structure",
        )
        assert result == ConsistencyResult(is_consistent=True)

    async def test_unparseable_verdict_fails_open(self):
        result = await ConsistencyChecker(MockVerdictService("I am not sure.")).validate(
            "the second act moves briskly",
            _memory_with(("the second act drags", "structure")),
            "structure",
        )
        assert result == ConsistencyResult(is_consistent=True)
