"""Recover structured tool calls from free-form model output.

Two strategies run in a fixed order:

1. Fenced code blocks (optionally tagged ``json``) whose body parses as a
   JSON object with a string ``tool`` field.
2. A brace-counting scan from the ``{`` preceding a ``"tool": "..."`` key,
   which recovers a complete object embedded in prose.

When neither yields a valid object the response is a direct answer.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterator, Optional

from ..models.tools import ToolCall

logger = logging.getLogger(__name__)

FENCED_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")
TOOL_KEY_PATTERN = re.compile(r'"tool"\s*:\s*"[^"]+"')


def _to_tool_call(parsed: Any) -> Optional[ToolCall]:
    if not isinstance(parsed, dict):
        return None
    tool = parsed.get("tool")
    if not isinstance(tool, str) or not tool.strip():
        return None
    params = parsed.get("params")
    reasoning = parsed.get("reasoning")
    return ToolCall(
        tool=tool.strip(),
        params=params if isinstance(params, dict) else {},
        reasoning=reasoning if isinstance(reasoning, str) else None,
    )


def _from_fenced_blocks(text: str) -> Optional[ToolCall]:
    for match in FENCED_BLOCK_PATTERN.finditer(text):
        body = match.group(1).strip()
        try:
            call = _to_tool_call(json.loads(body))
        except json.JSONDecodeError as e:
            logger.debug(f"Failed to parse fenced block as JSON: {e}")
            continue
        if call:
            return call
    return None


def balanced_object_end(text: str, start: int) -> Optional[int]:
    """Index just past the ``}`` closing the object opened at ``start``.

    Braces inside JSON string literals are ignored.
    """
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
                return index + 1
    return None


def _candidate_starts(text: str, anchor: int) -> Iterator[int]:
    start = text.rfind("{", 0, anchor)
    while start != -1:
        yield start
        start = text.rfind("{", 0, start)


def _from_inline_object(text: str) -> Optional[ToolCall]:
    for anchor in TOOL_KEY_PATTERN.finditer(text):
        for start in _candidate_starts(text, anchor.start()):
            end = balanced_object_end(text, start)
            if end is None or end <= anchor.start():
                continue
            try:
                call = _to_tool_call(json.loads(text[start:end]))
            except json.JSONDecodeError:
                continue
            if call:
                return call
    return None


def extract_tool_call(response: str) -> Optional[ToolCall]:
    """Return the tool call in ``response``, or None for a direct answer."""
    if not response:
        return None
    call = _from_fenced_blocks(response) or _from_inline_object(response)
    if call:
        logger.debug(f"Extracted tool call: {call.tool}")
    return call


__all__ = ["balanced_object_end", "extract_tool_call"]
