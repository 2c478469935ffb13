"""FastAPI application for the claude proxy."""

import logging
from typing import Any, Mapping, Optional

import httpx
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .api.routes import list_providers, messages_endpoint
from .config_loader import get_default_provider, get_server_address, load_config
from .core.exceptions import ConfigurationError
from .providers import ProviderRegistry, is_supported_provider

logger = logging.getLogger("claude-proxy")


async def health() -> JSONResponse:
    return JSONResponse({"status": "ok"})


def create_app(
    config: Optional[Mapping[str, Any]] = None,
    *,
    registry: Optional[ProviderRegistry] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the application.

    Args:
        config: Parsed configuration. Loaded with load_config() when omitted.
        registry: Pre-built provider registry. Built from `config` when omitted.
        transport: httpx transport handed to every adapter when the registry
            is built here (tests use it to stub upstreams).

    Returns:
        The configured FastAPI application instance.
    """
    if config is None:
        config = load_config()

    default_provider = get_default_provider(config)
    if not is_supported_provider(default_provider):
        raise ConfigurationError(f"Unknown default provider '{default_provider}'")

    if registry is None:
        registry = ProviderRegistry.from_config(config, transport=transport)

    app = FastAPI(title="Claude Proxy")
    app.state.config = config
    app.state.registry = registry
    app.state.default_provider = default_provider

    app.post("/v1/messages")(messages_endpoint)
    app.get("/v1/providers")(list_providers)
    app.get("/health")(health)

    logger.info(
        f"Application created: default provider {default_provider}, "
        f"configured providers {list(registry.configured())}"
    )
    return app


def run(config_path: Optional[str] = None) -> None:
    """Load configuration and serve the application with uvicorn."""
    import uvicorn

    config = load_config(config_path)
    app = create_app(config)
    host, port = get_server_address(config)
    logger.info(f"Claude proxy listening on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="info")
