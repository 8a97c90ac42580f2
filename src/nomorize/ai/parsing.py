"""Best-effort parsing of structured data out of model text."""

import json
import re
from datetime import datetime
from typing import Any

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


class MalformedOutput(ValueError):
    """Model text could not be coerced into the expected structure."""


def extract_json_object(text: str) -> dict[str, Any]:
    """Extract a JSON object from free model text.

    Markdown fences are removed, then the substring between the first
    '{' and the last '}' is parsed. Without braces the whole trimmed
    text is parsed.

    Raises:
        MalformedOutput: If no JSON object can be parsed.
    """
    cleaned = _FENCE.sub("", text or "").strip()

    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first != -1 and last > first:
        cleaned = cleaned[first:last + 1]

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedOutput(f"Invalid JSON in model output: {e}") from e

    if not isinstance(data, dict):
        raise MalformedOutput(f"Expected a JSON object, got {type(data).__name__}")
    return data


def string_list(value: Any) -> tuple[str, ...]:
    """Keep the non-empty string entries of a list, deduplicated."""
    if not isinstance(value, list):
        return ()
    items = (item.strip() for item in value if isinstance(item, str))
    return tuple(dict.fromkeys(item for item in items if item))


def parse_instant(value: Any) -> datetime | None:
    """Parse an ISO 8601 date/time, None when absent or unparseable.

    Instants with an offset are converted to naive local time so they
    compare with the rest of the stored timestamps.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        instant = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if instant.tzinfo is not None:
        instant = instant.astimezone().replace(tzinfo=None)
    return instant
