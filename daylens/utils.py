from __future__ import annotations

import base64
import json
import re
from pathlib import Path
from typing import Any

_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def ensure_directory(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def strip_code_fence(text: str) -> str:
    """Remove a surrounding Markdown code fence (```json ... ```) from a model reply."""
    cleaned = (text or "").strip()
    cleaned = _FENCE_OPEN.sub("", cleaned)
    cleaned = _FENCE_CLOSE.sub("", cleaned)
    return cleaned.strip()


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse a fenced or bare JSON object; raise ``ValueError`` for anything else."""
    cleaned = strip_code_fence(text)
    if not cleaned:
        raise ValueError("Empty response")
    if not (cleaned.startswith("{") and cleaned.endswith("}")):
        raise ValueError("Response does not look like a JSON object")
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Response JSON is not an object")
    return payload


def png_data_url(raw: bytes) -> str:
    encoded = base64.b64encode(raw).decode("ascii")
    return f"data:image/png;base64,{encoded}"
