"""claude-proxy - Anthropic Messages front end for chat-completions backends

Accepts Anthropic Messages API requests and forwards them to an Ollama,
OpenAI, vLLM or GLM backend, translating the backend's response (single
response or live stream) back into the Messages format.

This module provides:
- ProviderRegistry: resolves a provider identifier to its adapter
- Provider adapters: request/response/stream-chunk translation and transport
- StreamTranslator: order-preserving, cancellable stream translation
- create_app: a FastAPI application exposing POST /v1/messages

Example:
    >>> from claude_proxy import create_app
    >>> import uvicorn
    >>> uvicorn.run(create_app(), host="127.0.0.1", port=3000)
"""

from .config_loader import build_provider_settings, load_config
from .core.exceptions import (
    BackendError,
    ConfigurationError,
    InvalidRequestError,
    ProxyError,
    StreamTerminationError,
    UnsupportedProviderError,
)
from .logging import logger, setup_logging
from .main import create_app
from .providers import (
    ProviderAdapter,
    ProviderKind,
    ProviderRegistry,
    ProviderSettings,
)
from .streaming import StreamState, StreamTranslator

__all__ = [
    "BackendError",
    "ConfigurationError",
    "InvalidRequestError",
    "ProviderAdapter",
    "ProviderKind",
    "ProviderRegistry",
    "ProviderSettings",
    "ProxyError",
    "StreamState",
    "StreamTerminationError",
    "StreamTranslator",
    "UnsupportedProviderError",
    "build_provider_settings",
    "create_app",
    "load_config",
    "logger",
    "setup_logging",
]
