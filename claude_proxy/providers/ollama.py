"""Ollama backend, through its OpenAI-compatible /v1 endpoint."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import httpx

from ..core.exceptions import ConfigurationError
from ..types import (
    InboundRequest,
    InboundResponse,
    InboundStreamEvent,
    OutboundRequest,
    OutboundResponse,
    OutboundStreamChunk,
)
from .base import ProviderSettings
from .common import (
    build_inbound_response,
    build_outbound_request,
    build_request_body,
    build_stream_event,
)
from .http import ChunkStream, open_chat_stream, post_chat_completion


@dataclass(frozen=True)
class OllamaProvider:
    """Adapter for a local Ollama server. No credentials, no top-level system."""

    settings: ProviderSettings
    transport: Optional[httpx.AsyncBaseTransport] = field(
        default=None, repr=False, compare=False
    )

    name = "ollama"

    def __post_init__(self) -> None:
        if not self.settings.base_url:
            raise ConfigurationError("Ollama base URL is required")

    def transform_request(self, request: InboundRequest) -> OutboundRequest:
        return build_outbound_request(
            request,
            model_mapping=self.settings.model_mapping,
            default_model=self.settings.model,
            accepts_system=False,
        )

    def transform_response(self, response: OutboundResponse) -> InboundResponse:
        return build_inbound_response(response, default_model=self.settings.model)

    def transform_stream_chunk(
        self, chunk: OutboundStreamChunk
    ) -> Optional[InboundStreamEvent]:
        return build_stream_event(chunk)

    async def invoke(self, request: OutboundRequest) -> OutboundResponse:
        return await post_chat_completion(
            self.settings.chat_completions_url(),
            {"Content-Type": "application/json"},
            build_request_body(request, stream=False),
            timeout=self.settings.timeout,
            provider=self.name,
            transport=self.transport,
        )

    async def invoke_streaming(self, request: OutboundRequest) -> ChunkStream:
        return await open_chat_stream(
            self.settings.chat_completions_url(),
            {"Content-Type": "application/json", "Accept": "text/event-stream"},
            build_request_body(request, stream=True),
            timeout=self.settings.timeout,
            idle_timeout=self.settings.stream_idle_timeout,
            provider=self.name,
            transport=self.transport,
        )
