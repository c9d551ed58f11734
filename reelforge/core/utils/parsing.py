"""
Parsing helpers for model responses.
"""

import json
import re
from typing import Any, Dict

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if present."""
    return _FENCE_RE.sub("", text.strip()).strip()


def parse_json_text(text: str) -> Dict[str, Any]:
    """
    Decode a JSON object from model output.

    Raises:
        ValueError: If the text is empty, not JSON, or not a JSON object.
    """
    if not text or not text.strip():
        raise ValueError("Empty response")
    data = json.loads(strip_code_fences(text))
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data
