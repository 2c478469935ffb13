"""Core module initialization."""

from .exceptions import (
    BackendError,
    ConfigurationError,
    InvalidRequestError,
    ProxyError,
    StreamTerminationError,
    UnsupportedProviderError,
)
from .sse import SSE_DONE, detect_stream_error, format_sse_event, parse_sse_line

__all__ = [
    "BackendError",
    "ConfigurationError",
    "InvalidRequestError",
    "ProxyError",
    "SSE_DONE",
    "StreamTerminationError",
    "UnsupportedProviderError",
    "detect_stream_error",
    "format_sse_event",
    "parse_sse_line",
]
