"""Consistency checking of proposed agent statements.

An agent may change its mind, but it must say so. A proposed statement
that contradicts the agent's own prior statements on the same topic,
without acknowledging the change, is reported as inconsistent together
with a reframed version that does acknowledge it.

Fails open: if the completion service or the response parse fails, the
statement is treated as consistent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from draftmind.config import MemoryConfig
from draftmind.engine.completion import complete_recorded
from draftmind.engine.completion import CompletionError
from draftmind.engine.completion import TextCompletionService
from draftmind.engine.parsing import parse_json_object
from draftmind.engine.parsing import ParseError
from draftmind.engine.prompt_builder import build_consistency_prompt
from draftmind.engine.schemas import ConsistencyVerdict
from draftmind.memory.schemas import AgentMemory

logger = logging.getLogger(__name__)

# Phrases that already signal a change of position.
_ACKNOWLEDGMENT_MARKERS = (
    "unlike my earlier",
    "i now think",
    "i've changed my mind",
    "i have changed my mind",
    "changed my view",
    "on reflection",
    "i've come around",
    "contrary to what i said",
)


@dataclass(frozen=True)
class ConsistencyResult:
    is_consistent: bool
    reframed_statement: str | None = None


def acknowledges_change(statement: str) -> bool:
    """True if *statement* explicitly signals a change of position."""
    lowered = statement.lower()
    return any(marker in lowered for marker in _ACKNOWLEDGMENT_MARKERS)


def acknowledgment_reframe(statement: str, topic: str) -> str:
    """Deterministic reframe used when the model supplies none."""
    return f"I've come around on the {topic} since I last spoke about it: {statement}"


class ConsistencyChecker:
    """Validate statements against an agent's same-topic history."""

    def __init__(
        self,
        completion_service: TextCompletionService,
        config: MemoryConfig | None = None,
    ) -> None:
        self._service = completion_service
        self._config = config or MemoryConfig()

    async def validate(
        self,
        proposed: str,
        memory: AgentMemory,
        topic: str,
    ) -> ConsistencyResult:
        prior = [s.statement for s in memory.discussion_statements if s.topic == topic]
        if not prior:
            return ConsistencyResult(is_consistent=True)
        if acknowledges_change(proposed):
            return ConsistencyResult(is_consistent=True)

        system, prompt = build_consistency_prompt(topic, prior, proposed)
        try:
            completion = await complete_recorded(
                self._service,
                operation="memory.consistency",
                system_instruction=system,
                prompt=prompt,
                max_output_tokens=self._config.consistency_max_output_tokens,
            )
        except CompletionError as exc:
            logger.warning(
                "consistency check failed open agent=%s topic=%s: %s",
                memory.agent_id,
                topic,
                exc,
            )
            return ConsistencyResult(is_consistent=True)

        parsed = parse_json_object(completion.text, ConsistencyVerdict)
        if isinstance(parsed, ParseError):
            logger.warning(
                "consistency verdict unparseable agent=%s: %s", memory.agent_id, parsed.reason
            )
            return ConsistencyResult(is_consistent=True)

        verdict = parsed.value
        if not verdict.contradicts or verdict.acknowledges_change:
            return ConsistencyResult(is_consistent=True)

        reframed = (verdict.reframed_content or "").strip()
        return ConsistencyResult(
            is_consistent=False,
            reframed_statement=reframed or acknowledgment_reframe(proposed, topic),
        )
