"""Provider listing endpoint."""

from fastapi import Request
from fastapi.responses import JSONResponse

from ...providers import ProviderRegistry


async def list_providers(request: Request) -> JSONResponse:
    """GET /v1/providers - known provider identifiers and which are usable."""
    registry: ProviderRegistry = request.app.state.registry
    return JSONResponse({
        "supported": list(registry.supported()),
        "configured": list(registry.configured()),
        "default": request.app.state.default_provider,
    })
