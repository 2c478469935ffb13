"""Testing utilities for in-process upstream simulations."""

from .stub_upstream import (
    StreamProbe,
    StubUpstream,
    build_chat_response,
    build_stream_chunks,
    encode_sse,
)

__all__ = [
    "StreamProbe",
    "StubUpstream",
    "build_chat_response",
    "build_stream_chunks",
    "encode_sse",
]
