"""Helpers for pulling JSON out of model replies."""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def strip_code_fence(content: str) -> str:
    """Return the body of the first fenced block, or the content unchanged."""
    match = _FENCE_RE.search(content)
    return match.group(1) if match else content


def parse_json_object(content: str) -> dict[str, Any]:
    """Parse a reply as a JSON object; raises ValueError for anything else."""
    data = json.loads(strip_code_fence(content).strip())
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data
