"""Prompt construction for every completion the core issues.

Each builder returns a ``(system_instruction, prompt)`` pair. Kept in a
separate module because the wording evolves independently of the
parsing and merge logic that consumes the responses.
"""

from __future__ import annotations

TOPICS = [
    "character",
    "structure",
    "dialogue",
    "premise",
    "commerciality",
    "general",
]

_EXTRACTION_SYSTEM = (
    "You are a memory item extractor. Extract atomic facts from the "
    "provided content.\n\n"
    "Return a JSON array of items:\n"
    "[\n"
    '  {"content": "the specific fact or observation", '
    f'"topic": one of {", ".join(TOPICS)}, '
    '"importance": "high" | "medium" | "low"}\n'
    "]\n\n"
    "Rules:\n"
    "- Each item must be self-contained and understandable in isolation.\n"
    "- Mark as high importance anything that is a key strength, a key "
    "concern, or justifies a score.\n"
    "- Include page references when available.\n"
    "- Return at most {max_items} items and no other text.\n"
)

_NARRATIVE_SYSTEM = (
    "You are a memory narrative synthesizer. Update the reader's narrative "
    "based on new information.\n\n"
    "Rules:\n"
    "1. UPDATE: if new items conflict with the existing narrative, overwrite "
    "the old facts.\n"
    "2. EVOLVE: if prior-revision context is given, acknowledge what changed "
    "from the prior position.\n"
    "3. ADD: weave genuinely new items into the narrative logically.\n"
    "4. VOICE: keep it personal and in the first person.\n\n"
    "Return a JSON object:\n"
    '{"narrativeSummary": "2-4 sentences on the reader\'s current '
    'perspective", "evolutionNotes": "only if the position changed versus '
    'the prior revision, otherwise null"}\n'
)

_CONSISTENCY_SYSTEM = (
    "You are a consistency checker. Decide whether a proposed statement "
    "contradicts the speaker's prior statements on the same topic, and "
    "whether the proposed statement already acknowledges a change of "
    "position.\n\n"
    "Return a JSON object:\n"
    '{"contradicts": true | false, "acknowledgesChange": true | false, '
    '"reframedContent": "if it contradicts without acknowledging, the '
    'statement rewritten to acknowledge the change; otherwise null"}\n'
)

_SUMMARY_SYSTEM = (
    "You compress conversation history that no longer fits in a prompt. "
    "Write 2-3 concise paragraphs in the third person and past tense. "
    "Retain key decisions and preferences, evaluation results (scores, "
    "recommendations, reader positions), standing instructions or focus "
    "areas, and specific numbers and names. No filler and no commentary "
    "about summarization.\n"
)


def build_extraction_prompt(
    event_type: str,
    content: str,
    *,
    max_items: int,
) -> tuple[str, str]:
    """Prompt that turns one event's free text into atomic memory items."""
    system = _EXTRACTION_SYSTEM.replace("{max_items}", str(max_items))
    label = event_type.replace("_", " ")
    prompt = f"Extract memory items from this {label} event:\n\n{content}"
    return system, prompt


def build_narrative_prompt(
    agent_id: str,
    *,
    existing_narrative: str | None,
    prior_revision_narrative: str | None,
    items: list[tuple[str, str]],
) -> tuple[str, str]:
    """Prompt that evolves an agent's narrative with ``(topic, content)`` items."""
    sections = [
        f"Evolve the narrative for reader {agent_id}.",
        f"EXISTING NARRATIVE:\n{existing_narrative or 'No existing narrative.'}",
    ]
    if prior_revision_narrative:
        sections.append(f"PRIOR REVISION CONTEXT:\n{prior_revision_narrative}")
    new_information = "\n".join(f"- [{topic}] {content}" for topic, content in items)
    sections.append(f"NEW INFORMATION:\n{new_information or '- (none)'}")
    sections.append("Return JSON only.")
    return _NARRATIVE_SYSTEM, "\n\n".join(sections)


def build_consistency_prompt(
    topic: str,
    prior_statements: list[str],
    proposed: str,
) -> tuple[str, str]:
    """Prompt that judges *proposed* against same-topic prior statements."""
    prior = "\n".join(f'- "{statement}"' for statement in prior_statements)
    prompt = (
        f'PRIOR STATEMENTS ON "{topic}":\n{prior}\n\n'
        f'PROPOSED NEW STATEMENT:\n"{proposed}"\n\n'
        "Check for consistency and return JSON."
    )
    return _CONSISTENCY_SYSTEM, prompt


def build_summary_prompt(
    messages: list[str],
    *,
    previous_summary: str | None,
) -> tuple[str, str]:
    """Prompt that folds newly dropped chat turns into a running summary."""
    joined = "\n\n".join(messages)
    if previous_summary:
        prefix = (
            f"Previous conversation summary:\n{previous_summary}\n\n"
            "New messages to incorporate:\n"
        )
    else:
        prefix = "Messages to summarize:\n"
    return _SUMMARY_SYSTEM, f"{prefix}{joined}"
