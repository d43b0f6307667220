"""
Best-effort parsing of structured oracle responses.

Models wrap JSON in markdown fences, prepend chatter, or stop mid-object
when they hit the token limit. Parsing tries, in order:

1. The response with fences stripped, cut to the outermost braces
2. The same text with unmatched braces/brackets closed
3. Gives up and returns None (treated as an absent response)
"""

import json
import re
from typing import Any

from casebinder.logging_config import debug_log

_FENCE = re.compile(r'```(?:json)?\s*', re.IGNORECASE)


def clean_json_string(text: str) -> str:
    """Strip markdown fences and conversational text around a JSON object."""
    cleaned = _FENCE.sub('', text or '').strip()
    first = cleaned.find('{')
    last = cleaned.rfind('}')
    if first != -1 and last > first:
        return cleaned[first:last + 1]
    if first != -1:
        # Truncated response: keep everything after the opening brace
        return cleaned[first:]
    return cleaned


def balance_brackets(text: str) -> str:
    """
    Close any braces/brackets left open, ignoring those inside strings.

    A dangling string literal is closed first and a trailing comma removed,
    so '{"summary": ["a", "b' becomes '{"summary": ["a", "b"]}'.
    """
    stack = []
    in_string = False
    escape_next = False

    for char in text:
        if escape_next:
            escape_next = False
            continue
        if char == '\\' and in_string:
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char in '{[':
            stack.append('}' if char == '{' else ']')
        elif char in '}]' and stack and stack[-1] == char:
            stack.pop()

    repaired = text
    if in_string:
        repaired += '"'
    repaired = re.sub(r'[,:]\s*$', '', repaired.rstrip())
    return repaired + ''.join(reversed(stack))


def parse_possibly_truncated_json(text: str) -> Any | None:
    """
    Parse a JSON object from an oracle response, repairing it if needed.

    Args:
        text: Raw response text.

    Returns:
        Parsed JSON value, or None when no strategy succeeds.
    """
    if not text or not text.strip():
        return None

    cleaned = clean_json_string(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    repaired = balance_brackets(cleaned)
    try:
        parsed = json.loads(repaired)
        debug_log(f"[ORACLE] Repaired truncated JSON response ({len(text)} chars)")
        return parsed
    except json.JSONDecodeError:
        debug_log(f"[ORACLE] All JSON parsing strategies failed for: {text[:100]}...")
        return None
