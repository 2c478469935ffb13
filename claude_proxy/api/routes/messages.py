"""Anthropic-compatible Messages API endpoint."""

import json
import logging
import time
import uuid
from typing import Any, Mapping, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask
from starlette.requests import ClientDisconnect

from ...core.exceptions import (
    BackendError,
    InvalidRequestError,
    ProxyError,
    UnsupportedProviderError,
)
from ...providers import ProviderAdapter, ProviderRegistry
from ...providers.common import generate_message_id
from ...streaming import StreamTranslator, frame_message_stream
from ...types import InboundRequest

logger = logging.getLogger("claude-proxy")

_STATUS_ERROR_TYPES = {
    400: "invalid_request_error",
    401: "authentication_error",
    403: "permission_error",
    404: "not_found_error",
    413: "request_too_large",
    429: "rate_limit_error",
    503: "overloaded_error",
    529: "overloaded_error",
}


def _anthropic_error_response(
    message: str,
    *,
    error_type: str = "invalid_request_error",
    status_code: int = 400,
    param: Optional[str] = None,
) -> JSONResponse:
    error: dict[str, Any] = {"type": error_type, "message": message}
    if param:
        error["param"] = param
    return JSONResponse({"type": "error", "error": error}, status_code=status_code)


def error_response_for(exc: ProxyError) -> JSONResponse:
    """Map a proxy error to its Messages API error response."""
    if isinstance(exc, InvalidRequestError):
        return _anthropic_error_response(exc.message, param=exc.param)
    if isinstance(exc, UnsupportedProviderError):
        return _anthropic_error_response(exc.message, param="model")
    if isinstance(exc, BackendError):
        status = exc.status_code if exc.status_code and exc.status_code >= 400 else 502
        return _anthropic_error_response(
            exc.message,
            error_type=_STATUS_ERROR_TYPES.get(status, "api_error"),
            status_code=status,
        )
    # ConfigurationError and anything else: the proxy itself is at fault.
    return _anthropic_error_response(exc.message, error_type="api_error", status_code=500)


def parse_inbound_request(payload: Any) -> InboundRequest:
    """Check the fields the proxy relies on; everything else passes through."""
    if not isinstance(payload, Mapping):
        raise InvalidRequestError("Request body must be a JSON object")

    model = payload.get("model")
    if not isinstance(model, str) or not model.strip():
        raise InvalidRequestError("You must provide a model parameter", param="model")

    messages = payload.get("messages")
    if not isinstance(messages, list):
        raise InvalidRequestError("messages must be a list", param="messages")

    max_tokens = payload.get("max_tokens")
    if max_tokens is not None and (isinstance(max_tokens, bool) or not isinstance(max_tokens, int)):
        raise InvalidRequestError("max_tokens must be an integer", param="max_tokens")

    temperature = payload.get("temperature")
    if temperature is not None and (
        isinstance(temperature, bool) or not isinstance(temperature, (int, float))
    ):
        raise InvalidRequestError("temperature must be a number", param="temperature")

    system = payload.get("system")
    if system is not None and not isinstance(system, str):
        raise InvalidRequestError("system must be a string", param="system")

    return dict(payload)


def split_model(model: str, default_provider: str) -> tuple[str, str]:
    """Split "provider/name" into its parts.

    Only the first '/' separates, so "vllm/meta-llama/Llama-3" selects vllm
    with model "meta-llama/Llama-3". A name without '/' goes to the default
    provider unchanged.
    """
    stripped = model.strip()
    if "/" not in stripped:
        return default_provider, stripped
    provider, name = stripped.split("/", 1)
    return provider.strip().lower(), name


async def messages_endpoint(request: Request) -> Response:
    """POST /v1/messages - Anthropic Messages API compatible endpoint."""
    req_id = uuid.uuid4().hex[:8]
    start_time = time.perf_counter()
    registry: ProviderRegistry = request.app.state.registry
    default_provider: str = request.app.state.default_provider

    try:
        body = await request.body()
        payload = json.loads(body or b"{}")
    except ClientDisconnect:
        logger.warning(f"[{req_id}] Client disconnected before the body was read")
        return Response(status_code=499)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _anthropic_error_response("Invalid JSON payload")

    try:
        inbound = parse_inbound_request(payload)
        provider_id, model_name = split_model(inbound["model"], default_provider)
        adapter = registry.resolve(provider_id)
    except ProxyError as exc:
        logger.info(f"[{req_id}] Rejected request: {exc.message}")
        return error_response_for(exc)

    inbound["model"] = model_name
    outbound = adapter.transform_request(inbound)
    is_stream = bool(inbound.get("stream"))

    logger.info(
        f"[{req_id}] Messages request -> provider={adapter.name}, "
        f"model={outbound['model']}, stream={is_stream}"
    )

    if is_stream:
        return await _stream_messages(req_id, adapter, outbound, start_time)

    try:
        upstream = await adapter.invoke(outbound)
    except BackendError as exc:
        elapsed = time.perf_counter() - start_time
        logger.error(f"[{req_id}] Backend error after {elapsed:.3f}s: {exc.message}")
        return error_response_for(exc)

    result = adapter.transform_response(upstream)
    elapsed = time.perf_counter() - start_time
    logger.info(
        f"[{req_id}] Completed in {elapsed:.3f}s: stop_reason={result['stop_reason']}, "
        f"usage={result['usage']}"
    )
    return JSONResponse(result)


async def _stream_messages(
    req_id: str,
    adapter: ProviderAdapter,
    outbound: Mapping[str, Any],
    start_time: float,
) -> Response:
    try:
        source = await adapter.invoke_streaming(outbound)
    except BackendError as exc:
        logger.error(f"[{req_id}] Backend stream error: {exc.message}")
        return error_response_for(exc)

    translator = StreamTranslator(adapter, source)
    message_id = generate_message_id()

    async def body_iterator():
        try:
            async for part in frame_message_stream(
                translator.events(), message_id=message_id, model=outbound["model"]
            ):
                yield part
        finally:
            # Covers a client that disconnects before the first upstream chunk.
            await source.aclose()
            elapsed = time.perf_counter() - start_time
            logger.info(
                f"[{req_id}] Stream closed after {elapsed:.3f}s: "
                f"state={translator.state.value}, chunks={translator.chunks_received}, "
                f"events={translator.events_emitted}"
            )

    return StreamingResponse(
        body_iterator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
        # Releases the upstream even if the body iterator never started.
        background=BackgroundTask(source.aclose),
    )
