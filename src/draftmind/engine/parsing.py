"""Schema-validated parsing of structured data from model output.

Model responses often wrap the JSON payload in prose or code fences. The
helpers here locate the first bracketed JSON value, validate it against a
pydantic type, and return a tagged result: ``ParseOk`` or ``ParseError``.
Callers apply their own fallback on ``ParseError``; nothing here raises.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any
from typing import Generic
from typing import TypeVar

from pydantic import TypeAdapter
from pydantic import ValidationError

T = TypeVar("T")

# Regex to strip Markdown code fences wrapping JSON output
_CODE_FENCE_RE = re.compile(
    r"```(?:json)?\s*\n?(.*?)\n?\s*```",
    re.DOTALL,
)


@dataclass(frozen=True)
class ParseOk(Generic[T]):
    """Successfully parsed and validated value."""

    value: T


@dataclass(frozen=True)
class ParseError:
    """Why a response could not be turned into the expected shape."""

    reason: str


def _find_json_span(text: str, opener: str) -> str | None:
    """Return the first balanced ``opener``...closer span in *text*.

    String literals are skipped so brackets inside quoted text do not
    unbalance the scan.
    """
    closer = "]" if opener == "[" else "}"
    start = text.find(opener)
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == opener:
                depth += 1
            elif char == closer:
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        start = text.find(opener, start + 1)
    return None


def _parse(raw: str, opener: str, adapter: TypeAdapter[T]) -> ParseOk[T] | ParseError:
    text = raw.strip()
    if not text:
        return ParseError("empty response")

    match = _CODE_FENCE_RE.search(text)
    if match:
        text = match.group(1).strip()

    span = _find_json_span(text, opener)
    if span is None:
        kind = "array" if opener == "[" else "object"
        return ParseError(f"no JSON {kind} found in response")

    try:
        data: Any = json.loads(span)
    except (json.JSONDecodeError, ValueError) as exc:
        return ParseError(f"invalid JSON: {exc}")

    try:
        return ParseOk(adapter.validate_python(data))
    except ValidationError as exc:
        return ParseError(f"schema validation failed: {exc.error_count()} error(s)")


def parse_json_array(raw: str, item_type: type[T]) -> ParseOk[list[T]] | ParseError:
    """Parse the first JSON array in *raw* as ``list[item_type]``."""
    return _parse(raw, "[", TypeAdapter(list[item_type]))  # type: ignore[valid-type]


def parse_json_object(raw: str, model: type[T]) -> ParseOk[T] | ParseError:
    """Parse the first JSON object in *raw* as *model*."""
    return _parse(raw, "{", TypeAdapter(model))
