"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

from typing import Any, Optional

import pytest

from claude_proxy.providers import ProviderSettings
from claude_proxy.testing import StubUpstream

# Environment variables the config layer reads; cleared so the developer's
# shell cannot leak into test expectations.
_PROXY_ENV_VARS = [
    "CLAUDE_PROXY_CONFIG",
    "DEFAULT_PROVIDER",
    "HOST",
    "PORT",
]
for _kind in ("OLLAMA", "OPENAI", "VLLM", "GLM"):
    _PROXY_ENV_VARS += [
        f"{_kind}_BASE_URL",
        f"{_kind}_MODEL",
        f"{_kind}_API_KEY",
        f"MODEL_MAPPING_{_kind}",
    ]


@pytest.fixture(autouse=True)
def clean_proxy_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _PROXY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def upstream() -> StubUpstream:
    """A fresh stub upstream; pass `upstream.transport` to adapters."""
    return StubUpstream()


# =============================================================================
# Settings Builders
# =============================================================================


def make_settings(
    name: str = "openai",
    *,
    base_url: str = "http://upstream.test/v1",
    model: str = "default-model",
    api_key: Optional[str] = "test-key",
    model_mapping: Optional[dict[str, str]] = None,
    **extra: Any,
) -> ProviderSettings:
    """Build provider settings pointing at the stub upstream host."""
    return ProviderSettings(
        name=name,
        base_url=base_url,
        model=model,
        api_key=api_key,
        model_mapping=model_mapping or {},
        **extra,
    )


def make_all_settings(**overrides: ProviderSettings) -> dict[str, ProviderSettings]:
    """Settings for every provider kind, all usable."""
    settings = {
        "ollama": make_settings("ollama", model="llama2", api_key=None),
        "openai": make_settings("openai", model="gpt-3.5-turbo"),
        "vllm": make_settings("vllm", model="default", api_key=None),
        "glm": make_settings("glm", model="GLM-4.6"),
    }
    settings.update(overrides)
    return settings


def user_request(text: str = "Hello", **fields: Any) -> dict[str, Any]:
    """A minimal Messages request with a single user turn."""
    request: dict[str, Any] = {
        "model": "claude-3-5-sonnet-20241022",
        "max_tokens": 128,
        "messages": [{"role": "user", "content": text}],
    }
    request.update(fields)
    return request
