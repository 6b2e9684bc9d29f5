"""Helpers to parse Responses API outputs."""

import json
import re
from typing import Any, Dict, Optional

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def _field(item: Any, name: str, default: Any = None) -> Any:
    """Read `name` from an SDK object or a plain dict."""
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def extract_text(response: Any) -> str:
    """Extract the first output_text entry from the response."""
    for item in _field(response, "output", None) or []:
        if _field(item, "type") != "message":
            continue
        for content in _field(item, "content", None) or []:
            if _field(content, "type") == "output_text":
                return _field(content, "text", "") or ""
    return _field(response, "output_text", "") or ""


def parse_function_call(response: Any, *, tool_name: str) -> Dict[str, Any]:
    """Extract the function call arguments for the specified tool name.

    Raises:
        ValueError: If no matching call exists or its arguments are not a JSON object.
    """
    for item in _field(response, "output", None) or []:
        if _field(item, "type") == "function_call" and _field(item, "name") == tool_name:
            try:
                args = json.loads(_field(item, "arguments", "{}") or "{}")
            except json.JSONDecodeError as exc:
                raise ValueError(f"Arguments for '{tool_name}' are not valid JSON.") from exc
            if not isinstance(args, dict):
                raise ValueError(f"Arguments for '{tool_name}' are not a JSON object.")
            return args
    raise ValueError(f"No function_call output for '{tool_name}' found in Responses API output.")


def parse_json_payload(text: str) -> Any:
    """Decode JSON text produced by a model, tolerating Markdown code fences.

    Raises:
        ValueError: If the text does not contain valid JSON.
    """
    cleaned = _FENCE_RE.sub("", (text or "").strip()).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ValueError("Model output is not valid JSON.") from exc


def extract_usage(response: Any) -> Dict[str, Optional[int]]:
    """Return token usage information from the response, if present."""
    usage = _field(response, "usage", None)
    return {
        "input_tokens": _field(usage, "input_tokens", None) if usage else None,
        "output_tokens": _field(usage, "output_tokens", None) if usage else None,
    }
