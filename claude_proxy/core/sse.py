"""SSE (Server-Sent Events) parsing, formatting and error detection."""

import json
from typing import Any, Mapping, Optional

SSE_DONE = "[DONE]"


def parse_sse_line(line: str) -> Optional[Any]:
    """
    Parse one line of an upstream SSE stream.

    Returns the decoded JSON payload of a `data:` line, the string
    SSE_DONE for the `[DONE]` sentinel, or None for anything else
    (blank lines, comments, `event:` lines, unparsable payloads).
    """
    line = line.strip()
    if not line.startswith("data:"):
        return None

    data_str = line[5:].strip()
    if not data_str:
        return None
    if data_str == SSE_DONE:
        return SSE_DONE

    try:
        return json.loads(data_str)
    except json.JSONDecodeError:
        return None


def detect_stream_error(payload: Any) -> Optional[str]:
    """
    Check a parsed SSE payload for an in-band error.

    Returns an error message if an error is detected, None otherwise.

    Detects patterns like:
    - MiniMax: {"type":"error","error":{...}}
    - Generic: {"error":{...}} or {"error":"..."}
    """
    if not isinstance(payload, Mapping):
        return None

    error_obj = payload.get("error")

    if payload.get("type") == "error":
        if isinstance(error_obj, Mapping):
            error_msg = error_obj.get("message") or str(dict(error_obj))
            http_code = error_obj.get("http_code", "unknown")
        else:
            error_msg = str(error_obj) if error_obj else "unknown error"
            http_code = "unknown"
        return f"SSE stream error: {error_msg} (http_code={http_code})"

    if isinstance(error_obj, Mapping):
        error_msg = error_obj.get("message") or str(dict(error_obj))
        error_type = error_obj.get("type", "unknown")
        return f"SSE stream error: {error_msg} (type={error_type})"

    if isinstance(error_obj, str) and error_obj:
        return f"SSE stream error: {error_obj}"

    return None


def format_sse_event(event_type: str, data: Mapping[str, Any]) -> bytes:
    """Render one named SSE event."""
    json_str = json.dumps(data, ensure_ascii=False)
    return f"event: {event_type}\ndata: {json_str}\n\n".encode("utf-8")
