"""Pulls the JSON object out of a model answer that may wrap it in prose or code fences."""
import json

from palmjob.services.exceptions import ResponseParseError


def find_json_span(text: str) -> str | None:
    """
    Returns the first balanced {...} span, or None.
    Braces inside JSON string literals do not count.
    """
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def extract_json_object(text: str) -> dict[str, object]:
    """Parses the first balanced JSON object in `text`. Anything short of that is a hard failure."""
    span = find_json_span(text or "")
    if span is None:
        raise ResponseParseError("No JSON object found in response")
    try:
        parsed = json.loads(span)
    except json.JSONDecodeError as exc:
        raise ResponseParseError(f"Invalid JSON in response: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ResponseParseError("JSON response must be an object")
    return parsed
