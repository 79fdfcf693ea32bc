"""Decode raw model text into a parsed JSON object.

Models wrap JSON in markdown fences, prepend chatter, or refuse outright.
``decode_response`` never raises: callers get either ``Parsed`` or
``Unparseable`` and decide what a failure means for the task.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Union

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*(.*?)\s*```$", re.DOTALL)

# Spanish keys the vision model sometimes slips into, mapped to the English schema.
_KEY_FIXES = {
    "recomendaciones": "recommendations",
}


@dataclass(frozen=True)
class Parsed:
    data: Dict[str, Any]


@dataclass(frozen=True)
class Unparseable:
    reason: str
    excerpt: str = ""


DecodeResult = Union[Parsed, Unparseable]


def strip_code_fences(raw: str) -> str:
    cleaned = raw.strip()
    match = _FENCE_RE.match(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def decode_response(raw: str) -> DecodeResult:
    if raw is None or not raw.strip():
        return Unparseable("empty response")

    cleaned = strip_code_fences(raw)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        data = _extract_embedded_object(cleaned)
        if data is None:
            return Unparseable(f"not valid JSON: {exc.msg}", cleaned[:120])
    except RecursionError:
        return Unparseable("JSON nested too deeply", cleaned[:120])

    if not isinstance(data, dict):
        return Unparseable(f"expected a JSON object, got {type(data).__name__}", cleaned[:120])
    try:
        return Parsed(_fix_keys(data))
    except RecursionError:
        return Unparseable("JSON nested too deeply", cleaned[:120])


def _extract_embedded_object(text: str):
    """Last resort: the outermost {...} span, for replies with a prose preamble."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        return json.loads(text[start:end + 1])
    except (json.JSONDecodeError, RecursionError):
        return None


def _fix_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {_KEY_FIXES.get(k, k): _fix_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_fix_keys(v) for v in value]
    return value
