"""
Heuristic repair of free-text model responses into JSON.

The inference backend gives no structured-output guarantee, so every
response goes through the same ordered fallback chain:

1. Strip surrounding code-fence markers (```json ... ```).
2. Scan for the first balanced ``[...]`` or ``{...}`` block that parses,
   retrying each block once with trailing commas removed.
3. Parse the whole (fence-stripped) text.

If every step fails a ``MalformedResponse`` carrying the raw text is raised.
"""

import json
import logging
import re
from collections.abc import Iterator
from typing import Any

from .exceptions import MalformedResponse

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```[ \t]*(?:json|JSON)?[ \t]*\r?\n?(.*?)```", re.DOTALL)
_TRAILING_COMMA = re.compile(r",\s*([\]}])")

# Candidate blocks tried before giving up on the bracket scan
MAX_CANDIDATES = 25


def strip_code_fences(text: str) -> str:
    """Return the content of the first fenced block, or the stripped text."""
    match = _FENCED_BLOCK.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def _matching_close(text: str, start: int) -> int | None:
    """
    Index of the bracket closing the one at ``start``, ignoring brackets in strings.

    Returns ``None`` on a mismatched closer and ``len(text)`` when the text
    ends before the bracket closes.
    """
    expected: list[str] = []
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
            expected.append("}")
        elif char == "[":
            expected.append("]")
        elif char in "}]":
            if not expected or expected.pop() != char:
                return None
            if not expected:
                return index
    return len(text)


def iter_balanced_blocks(text: str) -> Iterator[str]:
    """
    Yield balanced bracket blocks in order of their opening position.

    Scanning stops at the first bracket left open at the end of the text;
    blocks nested inside a cut-off value are never yielded.
    """
    for start, char in enumerate(text):
        if char not in "[{":
            continue
        end = _matching_close(text, start)
        if end == len(text):
            return
        if end is not None:
            yield text[start : end + 1]


def _loads_lenient(candidate: str) -> Any:
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        repaired = _TRAILING_COMMA.sub(r"\1", candidate)
        if repaired == candidate:
            raise
        return json.loads(repaired)


def parse_json_response(text: str | None) -> Any:
    """
    Extract the first JSON value embedded in a model response.

    Args:
        text: Raw response text.

    Returns:
        The parsed JSON value (usually a dict or list).

    Raises:
        MalformedResponse: If no JSON value can be recovered.
    """
    if not text or not text.strip():
        raise MalformedResponse("Empty response from inference backend", raw_text=text or "")

    stripped = strip_code_fences(text)

    for tried, candidate in enumerate(iter_balanced_blocks(stripped)):
        if tried >= MAX_CANDIDATES:
            break
        try:
            return _loads_lenient(candidate)
        except json.JSONDecodeError:
            continue

    try:
        return _loads_lenient(stripped)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse model response: %s", text[:500])
        raise MalformedResponse(f"No JSON found in model response: {e}", raw_text=text) from e


def unwrap_list(value: Any, *keys: str) -> list[Any] | None:
    """
    Return ``value`` if it is a list, else the first list found under ``keys``.

    Models often wrap an expected array in an object (``{"fields": [...]}``).
    """
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        for key in keys:
            inner = value.get(key)
            if isinstance(inner, list):
                return inner
    return None
