"""
Model response parsing.

Two stages, each returning a tagged ParseResult instead of raising:
`parse_strict` decodes the whole trimmed response, `parse_lenient` decodes
the first balanced `{...}` block found inside surrounding prose.
"""

import json
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ParseResult:
    """Outcome of a parse attempt: `payload` when ok, `error` otherwise."""

    ok: bool
    payload: Any = None
    error: str | None = None
    stage: str = "strict"

    @classmethod
    def success(cls, payload: Any, stage: str) -> "ParseResult":
        return cls(ok=True, payload=payload, stage=stage)

    @classmethod
    def failure(cls, error: str, stage: str) -> "ParseResult":
        return cls(ok=False, error=error, stage=stage)


def parse_strict(text: str) -> ParseResult:
    try:
        return ParseResult.success(json.loads(text.strip()), "strict")
    except (json.JSONDecodeError, TypeError) as e:
        return ParseResult.failure(f"response is not JSON: {e}", "strict")


def parse_lenient(text: str, opener: str = "{", closer: str = "}") -> ParseResult:
    block = extract_balanced_block(text, opener, closer)
    if block is None:
        return ParseResult.failure(f"no balanced {opener}...{closer} block found", "lenient")
    try:
        return ParseResult.success(json.loads(block), "lenient")
    except json.JSONDecodeError as e:
        return ParseResult.failure(f"embedded block is not JSON: {e}", "lenient")


def parse_json_object(text: str) -> ParseResult:
    """Strict then lenient; succeeds only when the payload is a JSON object."""
    result = parse_strict(text)
    if result.ok and isinstance(result.payload, dict):
        return result
    result = parse_lenient(text)
    if result.ok and not isinstance(result.payload, dict):
        return ParseResult.failure("decoded JSON is not an object", "lenient")
    return result


def extract_balanced_block(text: str, opener: str = "{", closer: str = "}") -> str | None:
    """
    Return the first balanced block delimited by `opener`/`closer`.

    Delimiters inside JSON string literals are ignored. Returns None when the
    first opener is never closed.
    """
    start = text.find(opener)
    if start == -1:
        return None

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
    return None
