"""
Recover a JSON payload from free-form model output.

Model responses are often wrapped in markdown fences, prose or citation noise.
Two tiers are tried in order:

1. strip a leading/trailing code fence and parse the rest directly;
2. slice from the first ``{`` or ``[`` (whichever comes first) to the *last*
   matching closer and parse that.

The boundary search is greedy, not balanced: an unrelated closer inside a
trailing string value can still defeat it.
"""
from __future__ import annotations

import json
import re
from typing import Any

from listing_studio.errors import MalformedResponse

_LEADING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"```\s*$")


def strip_code_fences(text: str) -> str:
    s = text.strip()
    s = _LEADING_FENCE.sub("", s)
    s = _TRAILING_FENCE.sub("", s)
    return s.strip()


def _parse_structured(text: str) -> dict[str, Any] | list[Any] | None:
    try:
        value = json.loads(text)
    except ValueError:
        return None
    # Bare scalars are not a payload.
    if isinstance(value, (dict, list)):
        return value
    return None


def _boundary_slice(text: str) -> str | None:
    first_brace = text.find("{")
    first_bracket = text.find("[")

    if first_brace != -1 and (first_bracket == -1 or first_brace < first_bracket):
        start, end = first_brace, text.rfind("}")
    elif first_bracket != -1:
        start, end = first_bracket, text.rfind("]")
    else:
        return None

    if end <= start:
        return None
    return text[start : end + 1]


def decode(raw_text: str | None) -> dict[str, Any] | list[Any]:
    """Return the JSON object or array carried by ``raw_text``."""
    if not raw_text or not raw_text.strip():
        raise MalformedResponse("The AI response was empty.", raw_text)

    cleaned = strip_code_fences(raw_text)
    parsed = _parse_structured(cleaned)
    if parsed is not None:
        return parsed

    block = _boundary_slice(cleaned)
    if block is not None:
        parsed = _parse_structured(block)
        if parsed is not None:
            return parsed

    raise MalformedResponse("The AI response was not in a valid format. Please try again.", raw_text)
