"""JSON extraction utilities for structured generation."""

from __future__ import annotations

import re
from typing import Optional

_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def extract_json(content: str) -> Optional[str]:
    """Extract a JSON object from content that may contain other text.

    Handles JSON wrapped in markdown code blocks or mixed with explanatory
    text.

    Args:
        content: Raw content that may contain JSON

    Returns:
        Extracted JSON string or None if not found
    """
    for match in _CODE_BLOCK_RE.findall(content):
        match = match.strip()
        if match.startswith("{"):
            return match

    brace_start = content.find("{")
    if brace_start == -1:
        return None

    # Find the matching closing brace, skipping braces inside JSON strings.
    depth = 0
    in_string = False
    escape = False
    for i, char in enumerate(content[brace_start:], brace_start):
        if escape:
            escape = False
            continue
        if char == "\\" and in_string:
            escape = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return content[brace_start : i + 1]

    return None
