"""
Lenient JSON extraction for oracle output.

Oracles often wrap JSON in prose or markdown fences, or answer with Python
literals. parse_json_response() tries a strict parse first, then a cheap
heuristic repair, before giving up.
"""

import json
import re
from typing import Any


def _heuristic_repair(text: str) -> Any | None:
    """
    Attempt to repair JSON without another LLM call.

    Handles common errors:
    - Markdown code blocks
    - Prose around the JSON payload
    - Python booleans/None (True -> true)
    - Single quotes instead of double quotes
    """
    text = re.sub(r"^```(?:json)?\s*", "", text, flags=re.MULTILINE)
    text = re.sub(r"\s*```$", "", text, flags=re.MULTILINE)
    text = text.strip()

    # Outermost JSON-like structure (greedy match)
    match = re.search(r"(\{.*\}|\[.*\])", text, re.DOTALL)
    if not match:
        return None

    candidate = match.group(1)
    candidate = re.sub(r"\bTrue\b", "true", candidate)
    candidate = re.sub(r"\bFalse\b", "false", candidate)
    candidate = re.sub(r"\bNone\b", "null", candidate)

    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    if "'" in candidate and '"' not in candidate:
        try:
            return json.loads(candidate.replace("'", '"'))
        except json.JSONDecodeError:
            pass

    return None


def parse_json_response(text: str) -> Any | None:
    """Parse ``text`` as JSON, repairing it if needed. Returns None on failure."""
    if not isinstance(text, str) or not text.strip():
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return _heuristic_repair(text)
