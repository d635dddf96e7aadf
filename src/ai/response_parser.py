"""
Structured Response Parsing Module for the AI structural model generator.

LLM output is not guaranteed to be pure JSON: models wrap it in Markdown
fences or surround it with prose. This module extracts the first JSON object
from such text and decodes it.

Usage:
    from src.ai.response_parser import parse_model_response

    response = provider.chat(messages, policy)
    data = parse_model_response(response.content)
    result = validate_node_references(data)
"""

from typing import Any, Dict, Optional
import json
import logging

logger = logging.getLogger(__name__)


class ResponseParseError(ValueError):
    """Raised when no JSON object can be extracted from an LLM response."""
    pass


def extract_json_from_markdown(response_text: str) -> str:
    """Extract JSON from markdown code blocks.

    Some LLMs wrap JSON in markdown code blocks like:
    ```json
    {"key": "value"}
    ```

    Args:
        response_text: Response text that may contain markdown

    Returns:
        Extracted JSON string or original text if no code block found
    """
    if "```json" in response_text:
        start = response_text.find("```json") + 7
        end = response_text.find("```", start)
        if end > start:
            return response_text[start:end].strip()

    if "```" in response_text:
        start = response_text.find("```") + 3
        end = response_text.find("```", start)
        if end > start:
            content = response_text[start:end].strip()
            if content.startswith("{") or content.startswith("["):
                return content

    return response_text.strip()


def _balanced_object(text: str) -> Optional[str]:
    """First ``{...}`` in ``text`` found by depth counting, skipping string contents."""
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        char = text[pos]
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
                return text[start:pos + 1]
    return None


def extract_json_object(response_text: str) -> str:
    """Return the JSON object text contained in an LLM response.

    Code fences are stripped first; if prose still surrounds the JSON, the
    first balanced-brace object is taken.

    Raises:
        ResponseParseError: If the text contains no complete object
    """
    if not response_text:
        raise ResponseParseError("Empty response")

    candidate = extract_json_from_markdown(response_text)
    if candidate.startswith("{") and candidate.endswith("}"):
        return candidate

    obj = _balanced_object(candidate)
    if obj is None:
        raise ResponseParseError(f"No JSON object found in response: {response_text[:100]}")
    return obj


def parse_model_response(response_text: str) -> Dict[str, Any]:
    """Decode the model JSON contained in an LLM response.

    Raises:
        ResponseParseError: If no JSON object can be extracted or decoded
    """
    text = extract_json_object(response_text)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Invalid JSON response: {e}")

    if not isinstance(data, dict):
        raise ResponseParseError(f"Expected a JSON object, got {type(data).__name__}")
    if "nodes" not in data or "members" not in data:
        raise ResponseParseError("Response JSON has no 'nodes' or 'members'")

    logger.debug(
        f"Parsed model response: {len(data.get('nodes') or [])} nodes, "
        f"{len(data.get('members') or [])} members"
    )
    return data
