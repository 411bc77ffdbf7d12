"""
Parsing of JSON objects embedded in generated text.
"""

import json
from dataclasses import dataclass
from typing import Any, Optional, Union


@dataclass(frozen=True)
class Parsed:
    """A JSON object recovered from generated text."""

    data: dict[str, Any]


@dataclass(frozen=True)
class Malformed:
    """Generated text did not contain a usable JSON object."""

    reason: str


ParseResult = Union[Parsed, Malformed]

# Opening braces tried before giving up; each try scans to the end of the text
MAX_CANDIDATES = 32


def _find_balanced_object(text: str, start: int) -> Optional[str]:
    """Return the ``{...}`` span opening at ``start``, ignoring braces in strings."""
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
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def extract_json_object(text: Optional[str]) -> ParseResult:
    """
    Extract the first balanced JSON object from free text.

    Models often wrap JSON in prose or code fences. Each ``{`` is tried in
    turn until a span decodes to a JSON object, up to ``MAX_CANDIDATES``
    opening braces.
    """
    if not text or not text.strip():
        return Malformed("empty response")

    start = text.find("{")
    if start == -1:
        return Malformed("no JSON object found")

    last_error = "unbalanced braces"
    for _ in range(MAX_CANDIDATES):
        if start == -1:
            break
        candidate = _find_balanced_object(text, start)
        if candidate is not None:
            try:
                data = json.loads(candidate)
            except json.JSONDecodeError as e:
                last_error = f"invalid JSON: {e.msg}"
            else:
                if isinstance(data, dict):
                    return Parsed(data)
                last_error = "JSON value is not an object"
        start = text.find("{", start + 1)

    if start != -1:
        last_error = f"{last_error} (gave up after {MAX_CANDIDATES} candidates)"

    return Malformed(last_error)
