"""Stream translation: backend chunks in, Messages stream events out."""

from __future__ import annotations

import logging
from enum import Enum
from typing import AsyncGenerator, AsyncIterator, Optional

from ..providers.base import ProviderAdapter
from ..providers.http import ChunkStream
from ..types import InboundStreamEvent

logger = logging.getLogger("claude-proxy")


class StreamState(str, Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class StreamTranslator:
    """Translates one upstream stream. Not reusable across streams.

    Events are yielded as soon as the chunk that produced them arrives, in
    arrival order. The first chunk carrying a finish_reason ends the stream
    once its message_delta has been yielded. The upstream source is closed
    however iteration ends: normally, on error, or because the consumer
    stopped reading.
    """

    def __init__(self, adapter: ProviderAdapter, source: ChunkStream) -> None:
        self.adapter = adapter
        self.source = source
        self.state = StreamState.OPEN
        self.saw_finish_reason = False
        self.chunks_received = 0
        self.events_emitted = 0

    async def events(self) -> AsyncGenerator[InboundStreamEvent, None]:
        if self.state is not StreamState.OPEN:
            raise RuntimeError("stream already consumed")
        try:
            async for chunk in self.source:
                self.chunks_received += 1
                if _has_finish_reason(chunk):
                    self.state = StreamState.CLOSING
                    self.saw_finish_reason = True

                event = self.adapter.transform_stream_chunk(chunk)
                if event is not None:
                    self.events_emitted += 1
                    yield event

                if self.state is StreamState.CLOSING:
                    if event is None or event["type"] != "message_delta":
                        # Text and finish_reason arrived in the same chunk.
                        stop_event = self.adapter.transform_stream_chunk(_without_text(chunk))
                        if stop_event is not None:
                            self.events_emitted += 1
                            yield stop_event
                    break

            if not self.saw_finish_reason:
                logger.warning(
                    f"{self.adapter.name} stream ended without a finish_reason "
                    f"after {self.chunks_received} chunks"
                )
        finally:
            self.state = StreamState.CLOSED
            await self.source.aclose()


def _has_finish_reason(chunk: object) -> bool:
    if not isinstance(chunk, dict):
        return False
    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return False
    return bool(choices[0].get("finish_reason"))


def _without_text(chunk: dict) -> dict:
    choice = dict(chunk["choices"][0])
    choice["delta"] = {}
    return {**chunk, "choices": [choice]}


def translate_stream(
    adapter: ProviderAdapter, source: ChunkStream
) -> AsyncGenerator[InboundStreamEvent, None]:
    """Convenience wrapper returning the translated event iterator."""
    return StreamTranslator(adapter, source).events()


async def collect_text(events: AsyncIterator[InboundStreamEvent]) -> tuple[str, Optional[str]]:
    """Drain a translated stream, returning (text, stop_reason)."""
    parts: list[str] = []
    stop_reason: Optional[str] = None
    async for event in events:
        if event["type"] == "content_block_delta":
            parts.append(event["delta"]["text"])
        elif event["type"] == "message_delta":
            stop_reason = event["delta"]["stop_reason"]
    return "".join(parts), stop_reason
