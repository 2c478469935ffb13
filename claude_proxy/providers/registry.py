"""Provider registry: maps a backend identifier to a constructed adapter.

Adapters are built once, when the registry is created, and shared by every
request afterwards. A provider whose configuration is incomplete is never
resolvable; the construction error is kept and re-raised on lookup.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Mapping, Optional

import httpx

from ..core.exceptions import ConfigurationError, UnsupportedProviderError
from .base import ProviderAdapter, ProviderSettings
from .glm import GLMProvider
from .ollama import OllamaProvider
from .openai import OpenAIProvider
from .vllm import VLLMProvider

logger = logging.getLogger("claude-proxy")


class ProviderKind(str, Enum):
    OLLAMA = "ollama"
    OPENAI = "openai"
    VLLM = "vllm"
    GLM = "glm"

    @classmethod
    def parse(cls, identifier: Any) -> Optional["ProviderKind"]:
        """Case-insensitive lookup; None for anything unknown."""
        if not isinstance(identifier, str):
            return None
        try:
            return cls(identifier.strip().lower())
        except ValueError:
            return None


AdapterFactory = Callable[..., ProviderAdapter]

PROVIDER_CLASSES: Mapping[ProviderKind, AdapterFactory] = {
    ProviderKind.OLLAMA: OllamaProvider,
    ProviderKind.OPENAI: OpenAIProvider,
    ProviderKind.VLLM: VLLMProvider,
    ProviderKind.GLM: GLMProvider,
}


def check_registrations(classes: Mapping[ProviderKind, AdapterFactory]) -> None:
    """Raise RuntimeError unless every provider kind has an adapter class."""
    missing = [kind.value for kind in ProviderKind if kind not in classes]
    if missing:
        raise RuntimeError(f"No adapter registered for provider kind(s): {', '.join(missing)}")


# Fails at import time if a kind is added without registering its adapter.
check_registrations(PROVIDER_CLASSES)


def supported_providers() -> tuple[str, ...]:
    return tuple(kind.value for kind in ProviderKind)


def is_supported_provider(identifier: Any) -> bool:
    return ProviderKind.parse(identifier) is not None


def build_adapter(
    kind: ProviderKind,
    settings: ProviderSettings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProviderAdapter:
    """Construct the adapter for `kind`. Raises ConfigurationError."""
    factory = PROVIDER_CLASSES[kind]
    return factory(settings, transport=transport)


class ProviderRegistry:
    """Holds one adapter per configured provider kind."""

    def __init__(
        self,
        settings: Mapping[str, ProviderSettings],
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        strict: bool = False,
    ) -> None:
        """Build every configured adapter.

        Args:
            settings: Provider settings keyed by provider identifier.
            transport: Optional httpx transport handed to every adapter
                (tests use it to stub upstreams).
            strict: Raise the first ConfigurationError instead of logging it
                and leaving that provider unresolvable.
        """
        self._adapters: dict[ProviderKind, ProviderAdapter] = {}
        self._errors: dict[ProviderKind, ConfigurationError] = {}

        for identifier, provider_settings in settings.items():
            kind = ProviderKind.parse(identifier)
            if kind is None:
                if strict:
                    raise ConfigurationError(
                        f"Unknown provider '{identifier}' in configuration"
                    )
                logger.warning(f"Ignoring unknown provider '{identifier}' in configuration")
                continue
            try:
                self._adapters[kind] = build_adapter(
                    kind, provider_settings, transport=transport
                )
            except ConfigurationError as exc:
                if strict:
                    raise
                logger.error(f"Provider '{kind.value}' is unavailable: {exc.message}")
                self._errors[kind] = exc
            else:
                logger.info(
                    f"Provider '{kind.value}' ready: {provider_settings.base_url} "
                    f"(default model {provider_settings.model})"
                )

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        strict: bool = False,
    ) -> "ProviderRegistry":
        from ..config_loader import build_provider_settings

        return cls(build_provider_settings(config), transport=transport, strict=strict)

    @staticmethod
    def supported() -> tuple[str, ...]:
        return supported_providers()

    @staticmethod
    def is_supported(identifier: Any) -> bool:
        return is_supported_provider(identifier)

    def configured(self) -> tuple[str, ...]:
        """Identifiers that resolve to a usable adapter."""
        return tuple(kind.value for kind in ProviderKind if kind in self._adapters)

    def resolve(self, identifier: Any) -> ProviderAdapter:
        kind = ProviderKind.parse(identifier)
        if kind is None:
            raise UnsupportedProviderError(str(identifier))

        adapter = self._adapters.get(kind)
        if adapter is not None:
            return adapter

        error = self._errors.get(kind)
        if error is not None:
            raise ConfigurationError(
                f"Provider '{kind.value}' is misconfigured: {error.message}"
            )
        raise ConfigurationError(f"Provider '{kind.value}' is not configured")
