"""Zhipu GLM backend (z.ai chat completions API)."""

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
class GLMProvider:
    """Adapter for GLM models.

    Requires an API key, forwards the system prompt, and sends any extra
    headers from the provider configuration on every call.
    """

    settings: ProviderSettings
    transport: Optional[httpx.AsyncBaseTransport] = field(
        default=None, repr=False, compare=False
    )

    name = "glm"

    def __post_init__(self) -> None:
        if not self.settings.api_key:
            raise ConfigurationError("GLM API key is required")
        if not self.settings.base_url:
            raise ConfigurationError("GLM base URL is required")

    def _headers(self, *, stream: bool) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if stream else "application/json",
        }
        headers.update(self.settings.headers)
        return headers

    def transform_request(self, request: InboundRequest) -> OutboundRequest:
        return build_outbound_request(
            request,
            model_mapping=self.settings.model_mapping,
            default_model=self.settings.model,
            accepts_system=True,
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
            self._headers(stream=False),
            build_request_body(request, stream=False),
            timeout=self.settings.timeout,
            provider=self.name,
            transport=self.transport,
        )

    async def invoke_streaming(self, request: OutboundRequest) -> ChunkStream:
        return await open_chat_stream(
            self.settings.chat_completions_url(),
            self._headers(stream=True),
            build_request_body(request, stream=True),
            timeout=self.settings.timeout,
            idle_timeout=self.settings.stream_idle_timeout,
            provider=self.name,
            transport=self.transport,
        )
