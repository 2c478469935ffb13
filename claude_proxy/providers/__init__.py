"""Backend provider adapters and their registry."""

from .base import ProviderAdapter, ProviderSettings
from .glm import GLMProvider
from .http import ChunkStream
from .ollama import OllamaProvider
from .openai import OpenAIProvider
from .registry import (
    ProviderKind,
    ProviderRegistry,
    build_adapter,
    is_supported_provider,
    supported_providers,
)
from .vllm import VLLMProvider

__all__ = [
    "ChunkStream",
    "GLMProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "ProviderAdapter",
    "ProviderKind",
    "ProviderRegistry",
    "ProviderSettings",
    "VLLMProvider",
    "build_adapter",
    "is_supported_provider",
    "supported_providers",
]
