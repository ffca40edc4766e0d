"""
JSON parsing utilities for extracting structured data from LLM responses.

Handles JSON embedded in markdown code blocks or surrounded by prose. Truncated
or malformed JSON is reported as unparseable rather than patched up: a partial
extraction must fail loudly instead of silently dropping events.
"""

import json
import re
from typing import Any


def extract_json_from_llm_response(text: str | None) -> Any | None:
    """
    Extract JSON from text that may contain markdown and other content.

    Returns the decoded value, or None when no complete JSON document can be
    located.
    """
    if not text or not text.strip():
        return None

    # Extract content between ```json ... ``` or ``` ... ```
    match = re.search(r"```(?:json)?\s*([\s\S]+?)\s*```", text)
    json_str = match.group(1).strip() if match else text.strip()

    try:
        return json.loads(json_str)
    except json.JSONDecodeError:
        pass

    # Drop leading prose before the first '{' or '['
    starts = [i for i in (json_str.find("{"), json_str.find("[")) if i != -1]
    if not starts:
        return None
    json_str = json_str[min(starts) :]

    # Drop trailing prose after the last '}' or ']'
    end_index = max(json_str.rfind("}"), json_str.rfind("]"))
    if end_index == -1:
        return None
    json_str = json_str[: end_index + 1]

    try:
        return json.loads(json_str)
    except json.JSONDecodeError:
        return None


def extract_json_object(text: str | None) -> dict[str, Any] | None:
    """Like extract_json_from_llm_response, but only accepts a top-level object."""
    parsed = extract_json_from_llm_response(text)
    return parsed if isinstance(parsed, dict) else None
