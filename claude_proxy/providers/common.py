"""Messages <-> chat completions translation shared by every adapter.

All functions here are pure and never raise: missing or malformed optional
fields fall back to defaults so that a sloppy backend cannot crash a request.

Key mappings:
- Messages content blocks -> one newline-joined string per turn (text only)
- finish_reason -> stop_reason via a fixed table
- prompt_tokens/completion_tokens -> input_tokens/output_tokens
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping, Optional

from ..types import (
    InboundRequest,
    InboundResponse,
    InboundStreamEvent,
    InboundUsage,
    OutboundMessage,
    OutboundRequest,
    StopReason,
)

logger = logging.getLogger("claude-proxy")

STOP_REASONS: Mapping[str, StopReason] = {
    "length": "max_tokens",
    "max_tokens": "max_tokens",
    "stop": "end_turn",
}
DEFAULT_STOP_REASON: StopReason = "end_turn"


def map_model_name(model: str, model_mapping: Mapping[str, str]) -> str:
    """Return the backend name for `model`, or `model` itself when unmapped."""
    mapped = model_mapping.get(model)
    return mapped if mapped else model


def map_stop_reason(finish_reason: Any) -> StopReason:
    if not isinstance(finish_reason, str):
        return DEFAULT_STOP_REASON
    return STOP_REASONS.get(finish_reason, DEFAULT_STOP_REASON)


def generate_message_id() -> str:
    return f"msg_{uuid.uuid4().hex[:24]}"


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return 0


def convert_usage(usage: Any) -> InboundUsage:
    """Convert chat completions usage counters; absent counters become 0."""
    if not isinstance(usage, Mapping):
        usage = {}
    return {
        "input_tokens": _as_int(usage.get("prompt_tokens")),
        "output_tokens": _as_int(usage.get("completion_tokens")),
    }


def flatten_content(content: Any) -> str:
    """Join the text blocks of one message with newlines.

    Non-text blocks (images, documents, tool calls) are dropped.
    """
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""

    parts: list[str] = []
    for block in content:
        if not isinstance(block, Mapping):
            continue
        block_type = block.get("type")
        if block_type != "text":
            logger.debug(f"Dropping {block_type} block during flattening")
            continue
        text = block.get("text")
        if isinstance(text, str):
            parts.append(text)
    return "\n".join(parts)


def convert_messages(messages: Any) -> list[OutboundMessage]:
    if not isinstance(messages, list):
        return []
    converted: list[OutboundMessage] = []
    for msg in messages:
        if not isinstance(msg, Mapping):
            continue
        converted.append({
            "role": str(msg.get("role") or "user"),
            "content": flatten_content(msg.get("content")),
        })
    return converted


def build_outbound_request(
    request: InboundRequest,
    *,
    model_mapping: Mapping[str, str],
    default_model: str,
    accepts_system: bool,
) -> OutboundRequest:
    """Translate a Messages request into a chat completions request."""
    model = request.get("model")
    model = model if isinstance(model, str) else ""

    outbound: OutboundRequest = {
        "model": map_model_name(model, model_mapping) or default_model,
        "messages": convert_messages(request.get("messages")),
        "temperature": request.get("temperature"),
        "max_tokens": request.get("max_tokens"),
        "stream": bool(request.get("stream", False)),
    }
    if accepts_system:
        outbound["system"] = request.get("system")
    return outbound


def _first_choice(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return {}
    choice = choices[0]
    return choice if isinstance(choice, Mapping) else {}


def build_inbound_response(response: Any, *, default_model: str) -> InboundResponse:
    """Translate a chat completion into a Messages response.

    Only choices[0] is used. The model falls back to `default_model` when the
    backend does not echo one.
    """
    if not isinstance(response, Mapping):
        response = {}

    choice = _first_choice(response)
    message = choice.get("message")
    content = message.get("content") if isinstance(message, Mapping) else None
    model = response.get("model")

    return {
        "id": generate_message_id(),
        "type": "message",
        "role": "assistant",
        "content": [{"type": "text", "text": content if isinstance(content, str) else ""}],
        "model": model if isinstance(model, str) and model else default_model,
        "stop_reason": map_stop_reason(choice.get("finish_reason")),
        "usage": convert_usage(response.get("usage")),
    }


def build_stream_event(chunk: Any) -> Optional[InboundStreamEvent]:
    """Translate one stream chunk into a Messages event, or None.

    Text wins over finish_reason when a chunk carries both. Chunks with
    neither (role-only openers, trailing usage-only chunks) produce nothing.
    """
    if not isinstance(chunk, Mapping):
        return None
    choice = _first_choice(chunk)
    if not choice:
        return None

    delta = choice.get("delta")
    text = delta.get("content") if isinstance(delta, Mapping) else None
    if isinstance(text, str) and text:
        return {
            "type": "content_block_delta",
            "index": 0,
            "delta": {"type": "text_delta", "text": text},
        }

    finish_reason = choice.get("finish_reason")
    if finish_reason:
        event: InboundStreamEvent = {
            "type": "message_delta",
            "delta": {"stop_reason": map_stop_reason(finish_reason)},
        }
        usage = chunk.get("usage")
        if isinstance(usage, Mapping):
            event["usage"] = convert_usage(usage)
        return event

    return None


def build_request_body(request: OutboundRequest, *, stream: bool) -> dict[str, Any]:
    """JSON body for the upstream call; absent optional fields are omitted."""
    body = {key: value for key, value in request.items() if value is not None}
    body["stream"] = stream
    return body
