"""SSE framing of a translated stream for Messages API clients.

The translation engine only produces content_block_delta and message_delta
events. Standard Messages clients also expect the lifecycle envelope around
them:

    event: message_start
    event: content_block_start      (index 0, empty text block)
    event: content_block_delta      (one per translated text delta)
    event: content_block_stop
    event: message_delta            (only when the backend sent a finish_reason)
    event: message_stop

A StreamTerminationError ends the stream with an `error` event instead.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncGenerator, AsyncIterator

from ..core.exceptions import StreamTerminationError
from ..core.sse import format_sse_event
from ..types import InboundStreamEvent

logger = logging.getLogger("claude-proxy")


def message_start_event(message_id: str, model: str) -> dict[str, Any]:
    return {
        "type": "message_start",
        "message": {
            "id": message_id,
            "type": "message",
            "role": "assistant",
            "content": [],
            "model": model,
            "stop_reason": None,
            "stop_sequence": None,
            "usage": {"input_tokens": 0, "output_tokens": 0},
        },
    }


def error_event(message: str, error_type: str = "api_error") -> dict[str, Any]:
    return {"type": "error", "error": {"type": error_type, "message": message}}


async def frame_message_stream(
    events: AsyncGenerator[InboundStreamEvent, None],
    *,
    message_id: str,
    model: str,
) -> AsyncIterator[bytes]:
    """Render translated events as a complete Messages SSE stream."""
    block_open = True
    try:
        yield format_sse_event("message_start", message_start_event(message_id, model))
        yield format_sse_event(
            "content_block_start",
            {
                "type": "content_block_start",
                "index": 0,
                "content_block": {"type": "text", "text": ""},
            },
        )

        async for event in events:
            if event["type"] == "message_delta":
                if block_open:
                    yield format_sse_event(
                        "content_block_stop", {"type": "content_block_stop", "index": 0}
                    )
                    block_open = False
                payload = {
                    "type": "message_delta",
                    "delta": {**event["delta"], "stop_sequence": None},
                }
                if "usage" in event:
                    payload["usage"] = event["usage"]
                yield format_sse_event("message_delta", payload)
            else:
                yield format_sse_event(event["type"], event)
    except StreamTerminationError as exc:
        logger.warning(f"Terminating client stream {message_id}: {exc.message}")
        yield format_sse_event("error", error_event(exc.message))
        return
    finally:
        await events.aclose()

    if block_open:
        yield format_sse_event("content_block_stop", {"type": "content_block_stop", "index": 0})
    yield format_sse_event("message_stop", {"type": "message_stop"})
