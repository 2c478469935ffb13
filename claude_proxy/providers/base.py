"""Provider settings and the capability set every backend adapter implements."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Protocol, runtime_checkable

from ..types import (
    InboundRequest,
    InboundResponse,
    InboundStreamEvent,
    OutboundRequest,
    OutboundResponse,
    OutboundStreamChunk,
)
from .http import ChunkStream

DEFAULT_TIMEOUT = 120.0
DEFAULT_STREAM_IDLE_TIMEOUT = 300.0


@dataclass(frozen=True)
class ProviderSettings:
    """Static configuration for one backend, consumed at adapter construction."""

    name: str
    base_url: str
    model: str
    api_key: Optional[str] = None
    model_mapping: Mapping[str, str] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT
    stream_idle_timeout: Optional[float] = DEFAULT_STREAM_IDLE_TIMEOUT
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Read-only copies so a shared settings object cannot change under an adapter.
        object.__setattr__(self, "model_mapping", MappingProxyType(dict(self.model_mapping)))
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    def chat_completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"


@runtime_checkable
class ProviderAdapter(Protocol):
    """Translation and transport for one backend kind.

    Implementations are immutable after construction and hold no
    per-request state, so a single instance serves concurrent requests.
    """

    name: str
    settings: ProviderSettings

    def transform_request(self, request: InboundRequest) -> OutboundRequest:
        ...

    def transform_response(self, response: OutboundResponse) -> InboundResponse:
        ...

    def transform_stream_chunk(
        self, chunk: OutboundStreamChunk
    ) -> Optional[InboundStreamEvent]:
        ...

    async def invoke(self, request: OutboundRequest) -> OutboundResponse:
        ...

    async def invoke_streaming(self, request: OutboundRequest) -> ChunkStream:
        ...
