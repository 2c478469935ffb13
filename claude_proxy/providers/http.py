"""HTTP transport to chat completions backends.

Every adapter goes through these two calls. They convert transport-level
failures into BackendError (before any data reached the client) or
StreamTerminationError (after a stream was opened), so callers never see
httpx exceptions.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping, Optional

import httpx

from ..core.exceptions import BackendError, StreamTerminationError
from ..core.sse import SSE_DONE, detect_stream_error, parse_sse_line
from ..types import OutboundResponse, OutboundStreamChunk

logger = logging.getLogger("claude-proxy")


def format_httpx_error(exc: Exception, url: Optional[str] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    request = None
    if isinstance(exc, httpx.RequestError):
        try:
            request = exc.request
        except RuntimeError:
            # .request raises when the error was constructed without one
            request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    return "; ".join(parts)


def extract_error_message(body: bytes) -> str:
    """Pull a human-readable message out of an upstream error body."""
    text = body.decode("utf-8", errors="replace").strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return text or "empty response body"

    if isinstance(data, Mapping):
        error = data.get("error")
        if isinstance(error, Mapping) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if data.get("message"):
            return str(data["message"])
    return text


async def post_chat_completion(
    url: str,
    headers: Mapping[str, str],
    body: Mapping[str, Any],
    *,
    timeout: float,
    provider: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> OutboundResponse:
    """Perform one non-streaming chat completion call."""
    logger.debug(f"Sending {provider} request to {url}")
    try:
        async with httpx.AsyncClient(
            timeout=timeout, transport=transport, follow_redirects=True
        ) as client:
            resp = await client.post(url, headers=dict(headers), json=dict(body))
    except httpx.TimeoutException as exc:
        logger.warning(f"{provider} request to {url} timed out after {timeout}s")
        raise BackendError(
            f"{provider} request timed out after {timeout}s",
            status_code=504,
            provider=provider,
        ) from exc
    except httpx.HTTPError as exc:
        detail = format_httpx_error(exc, url)
        logger.warning(f"{provider} request to {url} failed: {detail}")
        raise BackendError(
            f"{provider} request failed: {detail}", status_code=502, provider=provider
        ) from exc

    logger.debug(f"Received response from {url}: status {resp.status_code}")

    if not resp.is_success:
        message = extract_error_message(resp.content)
        logger.warning(f"{provider} returned status {resp.status_code}: {message}")
        raise BackendError(
            f"{provider} API error: {message}",
            status_code=resp.status_code,
            provider=provider,
        )

    try:
        data = resp.json()
    except ValueError as exc:
        raise BackendError(
            f"{provider} returned a non-JSON response", status_code=502, provider=provider
        ) from exc
    if not isinstance(data, dict):
        raise BackendError(
            f"{provider} returned an unexpected response shape",
            status_code=502,
            provider=provider,
        )
    return data


class ChunkStream:
    """Single-pass async iterator over the parsed chunks of an upstream stream.

    Owns the upstream response and its client; `aclose()` releases both and
    may be called any number of times. Iteration ends on `[DONE]` or when
    the upstream closes the connection.
    """

    def __init__(
        self,
        response: httpx.Response,
        client: httpx.AsyncClient,
        *,
        provider: str,
        url: str,
    ) -> None:
        self.provider = provider
        self.url = url
        self._response = response
        self._client = client
        self._lines = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "ChunkStream":
        return self

    async def __anext__(self) -> OutboundStreamChunk:
        if self._closed:
            raise StopAsyncIteration
        if self._lines is None:
            self._lines = self._response.aiter_lines()

        while True:
            try:
                line = await self._lines.__anext__()
            except StopAsyncIteration:
                await self.aclose()
                raise
            except httpx.TimeoutException as exc:
                await self.aclose()
                raise StreamTerminationError(
                    f"{self.provider} stream stalled: no data before idle timeout",
                    provider=self.provider,
                ) from exc
            except httpx.HTTPError as exc:
                await self.aclose()
                raise StreamTerminationError(
                    f"{self.provider} stream failed: {format_httpx_error(exc, self.url)}",
                    provider=self.provider,
                ) from exc

            payload = parse_sse_line(line)
            if payload is None:
                continue
            if payload == SSE_DONE:
                await self.aclose()
                raise StopAsyncIteration

            error = detect_stream_error(payload)
            if error:
                logger.warning(f"{self.provider} stream reported an error: {error}")
                await self.aclose()
                raise StreamTerminationError(error, provider=self.provider)

            if isinstance(payload, dict):
                return payload

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug(f"Closing {self.provider} stream for {self.url}")
        # Shielded: this usually runs while the consumer's task is being cancelled.
        await asyncio.shield(self._release())

    async def _release(self) -> None:
        try:
            await self._response.aclose()
        finally:
            await self._client.aclose()


async def open_chat_stream(
    url: str,
    headers: Mapping[str, str],
    body: Mapping[str, Any],
    *,
    timeout: float,
    idle_timeout: Optional[float],
    provider: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ChunkStream:
    """Open a streaming chat completion call.

    Connection failures and error statuses raise BackendError here; anything
    that goes wrong afterwards is raised from iterating the returned stream.
    """
    stream_timeout = httpx.Timeout(
        connect=timeout, read=idle_timeout, write=timeout, pool=timeout
    )
    client = httpx.AsyncClient(
        timeout=stream_timeout, transport=transport, follow_redirects=True
    )
    try:
        request = client.build_request("POST", url, headers=dict(headers), json=dict(body))
        logger.debug(f"Sending {provider} streaming request to {url}")
        resp = await client.send(request, stream=True)
    except httpx.TimeoutException as exc:
        await client.aclose()
        raise BackendError(
            f"{provider} stream request timed out after {timeout}s",
            status_code=504,
            provider=provider,
        ) from exc
    except httpx.HTTPError as exc:
        await client.aclose()
        detail = format_httpx_error(exc, url)
        logger.warning(f"{provider} stream request to {url} failed: {detail}")
        raise BackendError(
            f"{provider} stream request failed: {detail}",
            status_code=502,
            provider=provider,
        ) from exc
    except Exception:
        await client.aclose()
        raise

    if not resp.is_success:
        try:
            data = await resp.aread()
        except httpx.HTTPError:
            data = b""
        finally:
            await resp.aclose()
            await client.aclose()
        message = extract_error_message(data)
        logger.warning(
            f"{provider} stream request returned status {resp.status_code}: {message}"
        )
        raise BackendError(
            f"{provider} API stream error: {message}",
            status_code=resp.status_code,
            provider=provider,
        )

    return ChunkStream(resp, client, provider=provider, url=url)
