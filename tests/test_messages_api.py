"""End-to-end tests for the Messages API through the ASGI app.

Requests go through httpx.ASGITransport into the FastAPI app, and the
adapters talk to a StubUpstream via httpx.MockTransport, so no sockets are
opened.
"""

import json
import time

import httpx
import pytest

from claude_proxy.api.routes.messages import _stream_messages
from claude_proxy.core.exceptions import ConfigurationError
from claude_proxy.main import create_app
from claude_proxy.providers import OllamaProvider, ProviderRegistry
from claude_proxy.testing import build_chat_response, build_stream_chunks

from conftest import make_all_settings, make_settings, user_request


def parse_sse(raw: str) -> list[tuple[str, dict]]:
    events = []
    for block in raw.strip().split("\n\n"):
        lines = block.split("\n")
        events.append((lines[0][len("event: "):], json.loads(lines[1][len("data: "):])))
    return events


def _build_app(upstream, *, settings=None, config=None):
    registry = ProviderRegistry(settings or make_all_settings(), transport=upstream.transport)
    return create_app(config or {}, registry=registry)


@pytest.fixture
def ollama_mapping_settings():
    return make_all_settings(
        ollama=make_settings(
            "ollama",
            model="llama2",
            api_key=None,
            model_mapping={"claude-3-5-sonnet-20241022": "llama3"},
        )
    )


async def _post(app, payload, **kwargs):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://proxy") as client:
        return await client.post("/v1/messages", json=payload, **kwargs)


# =============================================================================
# Non-streaming
# =============================================================================


class TestMessagesNonStreaming:
    """Tests for single-shot Messages requests."""

    @pytest.mark.asyncio
    async def test_default_provider_with_mapping(self, upstream, ollama_mapping_settings):
        """Test a plain model name going to the default provider, mapped."""
        upstream.enqueue_json(build_chat_response("Hi!", prompt_tokens=10, completion_tokens=2, model="llama3"))
        app = _build_app(upstream, settings=ollama_mapping_settings)

        resp = await _post(app, user_request("Hello"))

        assert resp.status_code == 200
        data = resp.json()
        assert data["type"] == "message"
        assert data["role"] == "assistant"
        assert data["content"] == [{"type": "text", "text": "Hi!"}]
        assert data["stop_reason"] == "end_turn"
        assert data["usage"] == {"input_tokens": 10, "output_tokens": 2}
        assert data["id"].startswith("msg_")

        sent = upstream.json_body()
        assert sent["model"] == "llama3"
        assert sent["messages"] == [{"role": "user", "content": "Hello"}]
        assert sent["stream"] is False
        assert sent["max_tokens"] == 128

    @pytest.mark.asyncio
    async def test_provider_prefix_selects_backend(self, upstream):
        """Test that "vllm/<model>" routes to vLLM with the rest as model name."""
        upstream.enqueue_json(build_chat_response("ok"))
        app = _build_app(upstream)

        resp = await _post(app, user_request(model="vllm/meta-llama/Llama-3-8B", system="Be terse."))

        assert resp.status_code == 200
        sent = upstream.json_body()
        assert sent["model"] == "meta-llama/Llama-3-8B"
        assert sent["system"] == "Be terse."

    @pytest.mark.asyncio
    async def test_prefix_is_case_insensitive(self, upstream):
        """Test that the provider prefix is matched case-insensitively."""
        upstream.enqueue_json(build_chat_response("ok"))
        app = _build_app(upstream)

        resp = await _post(app, user_request(model="GLM/GLM-4.5-Air"))

        assert resp.status_code == 200
        assert upstream.requests[0].headers["authorization"] == "Bearer test-key"
        assert upstream.json_body()["model"] == "GLM-4.5-Air"

    @pytest.mark.asyncio
    async def test_unmapped_model_passes_through(self, upstream, ollama_mapping_settings):
        """Test that an unmapped model name reaches the backend verbatim."""
        upstream.enqueue_json(build_chat_response("ok"))
        app = _build_app(upstream, settings=ollama_mapping_settings)

        await _post(app, user_request(model="mistral:7b"))

        assert upstream.json_body()["model"] == "mistral:7b"

    @pytest.mark.asyncio
    async def test_content_blocks_flattened(self, upstream):
        """Test that multi-block content arrives as one newline-joined string."""
        upstream.enqueue_json(build_chat_response("ok"))
        app = _build_app(upstream)
        payload = user_request()
        payload["messages"] = [
            {"role": "user", "content": [{"type": "text", "text": "A"}, {"type": "text", "text": "B"}]},
        ]

        await _post(app, payload)

        assert upstream.json_body()["messages"] == [{"role": "user", "content": "A\nB"}]

    @pytest.mark.asyncio
    async def test_round_trip_through_echo_backend(self, upstream):
        """Test that text survives the request and response translation."""
        text = "Ünïcode, symbols <>&, and\nnewlines"
        upstream.enqueue_echo()
        app = _build_app(upstream)

        resp = await _post(app, user_request(text))

        assert resp.json()["content"][0]["text"] == text

    @pytest.mark.asyncio
    async def test_max_tokens_stop_reason(self, upstream):
        """Test that a length finish surfaces as max_tokens."""
        upstream.enqueue_json(build_chat_response("cut", finish_reason="length"))
        app = _build_app(upstream)

        resp = await _post(app, user_request())

        assert resp.json()["stop_reason"] == "max_tokens"


class TestReferenceExchange:
    """The reference single-shot exchange through a vLLM-prefixed model."""

    @pytest.mark.asyncio
    async def test_vllm_prefixed_request(self, upstream):
        """Test the exact response for a vllm/modelA request."""
        upstream.enqueue_json({
            "choices": [{"message": {"content": "Hi there"}, "finish_reason": "stop"}],
            "usage": {"prompt_tokens": 5, "completion_tokens": 3},
        })
        app = _build_app(upstream)

        resp = await _post(app, {
            "model": "vllm/modelA",
            "messages": [{"role": "user", "content": [{"type": "text", "text": "Hello"}]}],
            "max_tokens": 100,
        })

        data = resp.json()
        assert data["content"] == [{"type": "text", "text": "Hi there"}]
        assert data["stop_reason"] == "end_turn"
        assert data["usage"] == {"input_tokens": 5, "output_tokens": 3}
        assert upstream.json_body()["model"] == "modelA"
        assert upstream.json_body()["messages"] == [{"role": "user", "content": "Hello"}]


# =============================================================================
# Errors
# =============================================================================


class TestMessagesErrors:
    """Tests for error responses from the Messages endpoint."""

    @pytest.mark.asyncio
    async def test_unsupported_provider(self, upstream):
        """Test that an unknown provider prefix is a 400 without an upstream call."""
        app = _build_app(upstream)

        resp = await _post(app, user_request(model="anthropic/claude-3"))

        assert resp.status_code == 400
        body = resp.json()
        assert body["type"] == "error"
        assert body["error"]["type"] == "invalid_request_error"
        assert body["error"]["message"] == "Unsupported provider: anthropic"
        assert upstream.calls == 0

    @pytest.mark.asyncio
    async def test_unconfigured_provider(self, upstream):
        """Test that a provider without credentials fails with a configuration error."""
        settings = make_all_settings(openai=make_settings("openai", api_key=None))
        app = _build_app(upstream, settings=settings)

        resp = await _post(app, user_request(model="openai/gpt-4o"))

        assert resp.status_code == 500
        assert resp.json()["error"]["type"] == "api_error"
        assert "OpenAI API key is required" in resp.json()["error"]["message"]
        assert upstream.calls == 0

    @pytest.mark.asyncio
    async def test_invalid_json(self, upstream):
        """Test that a malformed body is rejected."""
        app = _build_app(upstream)

        resp = await _post(app, None, content=b"{not json", headers={"content-type": "application/json"})

        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Invalid JSON payload"

    @pytest.mark.asyncio
    async def test_non_utf8_body(self, upstream):
        """Test that a body that is not valid UTF-8 is rejected as invalid JSON."""
        app = _build_app(upstream)

        resp = await _post(app, None, content=b'{"model": "\xff"}', headers={"content-type": "application/json"})

        assert resp.status_code == 400
        assert resp.json()["error"] == {"type": "invalid_request_error", "message": "Invalid JSON payload"}
        assert upstream.calls == 0

    @pytest.mark.asyncio
    async def test_slash_in_name_without_provider_prefix(self, upstream):
        """Test that an unknown prefix is rejected rather than sent to the default provider."""
        app = _build_app(upstream)

        resp = await _post(app, user_request(model="meta-llama/Llama-3"))

        assert resp.status_code == 400
        assert resp.json()["error"] == {
            "type": "invalid_request_error",
            "message": "Unsupported provider: meta-llama",
            "param": "model",
        }
        assert upstream.calls == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload, param", [
        ({"messages": []}, "model"),
        ({"model": "  ", "messages": []}, "model"),
        ({"model": "m", "messages": "hi"}, "messages"),
        ({"model": "m", "messages": [], "max_tokens": "ten"}, "max_tokens"),
        ({"model": "m", "messages": [], "temperature": "hot"}, "temperature"),
        ({"model": "m", "messages": [], "system": [{"type": "text", "text": "x"}]}, "system"),
    ])
    async def test_invalid_fields(self, upstream, payload, param):
        """Test that invalid fields are rejected with the offending param."""
        app = _build_app(upstream)

        resp = await _post(app, payload)

        assert resp.status_code == 400
        assert resp.json()["error"]["param"] == param
        assert upstream.calls == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, error_type", [
        (401, "authentication_error"),
        (404, "not_found_error"),
        (429, "rate_limit_error"),
        (500, "api_error"),
        (503, "overloaded_error"),
    ])
    async def test_backend_status_mapped(self, upstream, status, error_type):
        """Test that upstream error statuses are passed through with a typed error."""
        upstream.enqueue_json({"error": {"message": "upstream says no"}}, status_code=status)
        app = _build_app(upstream)

        resp = await _post(app, user_request())

        assert resp.status_code == status
        assert resp.json()["error"] == {
            "type": error_type,
            "message": "ollama API error: upstream says no",
        }

    @pytest.mark.asyncio
    async def test_backend_unreachable(self, upstream):
        """Test that a connection failure is a 502."""
        upstream.enqueue_exception(httpx.ConnectError("connection refused"))
        app = _build_app(upstream)

        resp = await _post(app, user_request())

        assert resp.status_code == 502
        assert resp.json()["error"]["type"] == "api_error"

    @pytest.mark.asyncio
    async def test_backend_timeout(self, upstream):
        """Test that an upstream timeout is a 504."""
        upstream.enqueue_exception(httpx.ReadTimeout("read timed out"))
        app = _build_app(upstream)

        resp = await _post(app, user_request())

        assert resp.status_code == 504


# =============================================================================
# Streaming
# =============================================================================


class TestMessagesStreaming:
    """Tests for streamed Messages requests."""

    @pytest.mark.asyncio
    async def test_stream_event_sequence(self, upstream):
        """Test the SSE sequence for a streamed completion."""
        upstream.enqueue_stream(
            build_stream_chunks(["Hel", "lo"], usage={"prompt_tokens": 4, "completion_tokens": 2})
        )
        app = _build_app(upstream)

        resp = await _post(app, user_request(stream=True))

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        events = parse_sse(resp.text)
        assert [name for name, _ in events] == [
            "message_start",
            "content_block_start",
            "content_block_delta",
            "content_block_delta",
            "content_block_stop",
            "message_delta",
            "message_stop",
        ]
        assert [data["delta"]["text"] for name, data in events if name == "content_block_delta"] == ["Hel", "lo"]
        message_delta = events[5][1]
        assert message_delta["delta"]["stop_reason"] == "end_turn"
        assert message_delta["usage"] == {"input_tokens": 4, "output_tokens": 2}
        assert events[0][1]["message"]["model"] == "claude-3-5-sonnet-20241022"
        assert upstream.json_body()["stream"] is True

    @pytest.mark.asyncio
    async def test_stream_matches_non_stream(self, upstream):
        """Test that streamed text and stop reason equal the single-shot ones."""
        pieces = ["Once ", "upon ", "a time"]
        upstream.enqueue_stream(build_stream_chunks(pieces, finish_reason="length"))
        upstream.enqueue_json(build_chat_response("".join(pieces), finish_reason="length"))
        app = _build_app(upstream)

        streamed = parse_sse((await _post(app, user_request(stream=True))).text)
        single = (await _post(app, user_request())).json()

        text = "".join(data["delta"]["text"] for name, data in streamed if name == "content_block_delta")
        stop = next(data["delta"]["stop_reason"] for name, data in streamed if name == "message_delta")
        assert text == single["content"][0]["text"]
        assert stop == single["stop_reason"]

    @pytest.mark.asyncio
    async def test_stream_backend_error_before_first_byte(self, upstream):
        """Test that an upstream error status is a JSON error, not a stream."""
        upstream.enqueue_json({"error": {"message": "quota exceeded"}}, status_code=429)
        app = _build_app(upstream)

        resp = await _post(app, user_request(stream=True))

        assert resp.status_code == 429
        assert resp.json()["error"]["type"] == "rate_limit_error"

    @pytest.mark.asyncio
    async def test_mid_stream_failure_emits_error_event(self, upstream):
        """Test that a dropped upstream ends the client stream with an error event."""
        upstream.enqueue_stream(build_stream_chunks(["a", "b", "c"]), fail_after=2)
        app = _build_app(upstream)

        resp = await _post(app, user_request(stream=True))

        events = parse_sse(resp.text)
        assert [name for name, _ in events] == [
            "message_start",
            "content_block_start",
            "content_block_delta",
            "error",
        ]
        assert events[-1][1]["error"]["type"] == "api_error"
        assert "ReadError" in events[-1][1]["error"]["message"]

    @pytest.mark.asyncio
    async def test_truncated_stream_closes_cleanly(self, upstream):
        """Test that a stream without finish_reason still ends with message_stop."""
        upstream.enqueue_stream(build_stream_chunks(["partial"], finish_reason=None), done=False)
        app = _build_app(upstream)

        events = parse_sse((await _post(app, user_request(stream=True))).text)

        names = [name for name, _ in events]
        assert "message_delta" not in names
        assert names[-2:] == ["content_block_stop", "message_stop"]

    @pytest.mark.asyncio
    async def test_upstream_released_when_body_never_runs(self, upstream):
        """Test that the response background task closes an unread upstream stream."""
        upstream.enqueue_stream(build_stream_chunks(["a", "b"]))
        adapter = OllamaProvider(make_settings("ollama", api_key=None), transport=upstream.transport)
        outbound = adapter.transform_request(user_request(stream=True))

        response = await _stream_messages("req00000", adapter, outbound, time.perf_counter())
        source = response.background.func.__self__
        assert not source.closed

        await response.background()

        assert source.closed


# =============================================================================
# Other endpoints
# =============================================================================


class TestAppEndpoints:
    """Tests for the provider listing and health endpoints."""

    @pytest.mark.asyncio
    async def test_list_providers(self, upstream):
        """Test that supported, configured and default providers are listed."""
        settings = make_all_settings(glm=make_settings("glm", api_key=None))
        app = _build_app(upstream, settings=settings, config={"proxy_settings": {"default_provider": "vllm"}})

        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://proxy") as client:
            resp = await client.get("/v1/providers")

        assert resp.json() == {
            "supported": ["ollama", "openai", "vllm", "glm"],
            "configured": ["ollama", "openai", "vllm"],
            "default": "vllm",
        }

    @pytest.mark.asyncio
    async def test_health(self, upstream):
        """Test the health endpoint."""
        app = _build_app(upstream)

        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://proxy") as client:
            resp = await client.get("/health")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_unknown_default_provider_rejected(self, upstream):
        """Test that the app refuses an unknown default provider."""
        with pytest.raises(ConfigurationError, match="Unknown default provider 'bedrock'"):
            _build_app(upstream, config={"proxy_settings": {"default_provider": "bedrock"}})
