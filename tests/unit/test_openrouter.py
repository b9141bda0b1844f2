"""Tests for the OpenRouter client."""
import io
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest
from rich.console import Console

from storyintake.api.errors import RateLimitError, SchemaValidationError, TransportError
from storyintake.api.openrouter import OpenRouterClient, parse_retry_after

from .helpers import Item, fake_response


def completion_payload(content: str):
    return {
        "choices": [{"message": {"content": content}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
        "model": "test/model",
    }


@pytest.fixture
def client():
    client = OpenRouterClient(api_key="sk-or-test-key-123", console=Console(file=io.StringIO()))
    client._session = MagicMock()
    client._session.post = AsyncMock()
    return client


class TestParseRetryAfter:
    """Test reading wait durations from rate-limit headers."""

    def test_milliseconds_header(self):
        assert parse_retry_after({"retry-after-ms": "500"}) == 500

    def test_seconds(self):
        assert parse_retry_after({"Retry-After": "2"}) == 2000
        assert parse_retry_after({"retry-after": "1.5"}) == 1500

    def test_http_date(self):
        when = datetime.now(timezone.utc) + timedelta(seconds=10)
        wait = parse_retry_after({"retry-after": format_datetime(when, usegmt=True)})
        assert 8000 <= wait <= 10000

    def test_past_date(self):
        when = datetime.now(timezone.utc) - timedelta(seconds=10)
        assert parse_retry_after({"retry-after": format_datetime(when, usegmt=True)}) == 0

    def test_unusable(self):
        assert parse_retry_after({}) is None
        assert parse_retry_after({"retry-after": "soon"}) is None

    def test_invalid_ms_falls_back(self):
        assert parse_retry_after({"retry-after-ms": "abc", "retry-after": "1"}) == 1000


class TestClientSetup:
    def test_invalid_key(self):
        with pytest.raises(ValueError, match="Invalid OpenRouter API key"):
            OpenRouterClient(api_key="bad-key")

    def test_headers(self, client):
        headers = client._get_headers()
        assert headers["Authorization"] == "Bearer sk-or-test-key-123"
        assert headers["X-Title"] == "StoryIntake"

    def test_messages(self):
        assert OpenRouterClient._build_messages("hi") == [{"role": "user", "content": "hi"}]
        assert OpenRouterClient._build_messages("hi", "sys")[0] == {"role": "system", "content": "sys"}


class TestPost:
    """Test HTTP error mapping and transport retries."""

    @pytest.mark.asyncio
    async def test_rate_limit_not_retried(self, client):
        client._session.post.return_value = fake_response(429, text="slow down", headers={"retry-after": "1"})

        with pytest.raises(RateLimitError) as exc_info:
            await client._post({"model": "m"}, max_retries=3)

        assert exc_info.value.retry_after_ms == 1000
        assert client._session.post.await_count == 1

    @pytest.mark.asyncio
    async def test_rate_limit_without_header(self, client):
        client._session.post.return_value = fake_response(429, text="slow down")

        with pytest.raises(RateLimitError) as exc_info:
            await client._post({"model": "m"})

        assert exc_info.value.retry_after_ms is None

    @pytest.mark.asyncio
    async def test_server_error_retried(self, client):
        ok = fake_response(200)
        client._session.post.side_effect = [fake_response(503, text="busy"), ok]

        with patch.object(client, '_backoff', new_callable=AsyncMock) as backoff:
            response = await client._post({"model": "m"}, max_retries=1)

        assert response is ok
        backoff.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_server_error_exhausted(self, client):
        client._session.post.return_value = fake_response(500, text="boom")

        with pytest.raises(TransportError) as exc_info:
            await client._post({"model": "m"}, max_retries=0)

        assert exc_info.value.status == 500
        assert exc_info.value.body == "boom"

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, client):
        client._session.post.return_value = fake_response(400, text="bad request")

        with patch.object(client, '_backoff', new_callable=AsyncMock) as backoff:
            with pytest.raises(TransportError):
                await client._post({"model": "m"}, max_retries=3)

        backoff.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connection_error(self, client):
        client._session.post.side_effect = aiohttp.ClientConnectionError("reset")

        with patch.object(client, '_backoff', new_callable=AsyncMock) as backoff:
            with pytest.raises(TransportError, match="Connection to OpenRouter failed"):
                await client._post({"model": "m"}, max_retries=2)

        assert backoff.await_count == 2
        assert client._session.post.await_count == 3


class TestGeneration:
    """Test completion, object and stream generation."""

    @pytest.mark.asyncio
    async def test_completion(self, client):
        client._session.post.return_value = fake_response(200, completion_payload("Hello"))

        assert await client.completion("m", "hi") == "Hello"
        assert client.get_usage_summary()["total_tokens"] == 15

    @pytest.mark.asyncio
    async def test_usage_accumulates_until_reset(self, client):
        client._session.post.side_effect = [
            fake_response(200, completion_payload("one")),
            fake_response(200, completion_payload("two")),
        ]
        await client.completion("m", "hi")
        await client.completion("m", "again")

        summary = client.get_usage_summary()
        assert summary["total_tokens"] == 30
        assert summary["request_count"] == 2

        client.reset_usage()

        assert client.get_usage_summary() == {
            "prompt_tokens": 0,
            "completion_tokens": 0,
            "total_tokens": 0,
            "request_count": 0,
            "avg_tokens_per_request": 0,
        }

    @pytest.mark.asyncio
    async def test_generate_object(self, client):
        client._session.post.return_value = fake_response(200, completion_payload('{"name": "Ada"}'))

        result = await client.generate_object("m", Item, "sys", "prompt", max_tokens=100)

        assert result == Item(name="Ada")
        body = client._session.post.await_args.kwargs["json"]
        assert body["response_format"]["json_schema"]["name"] == "Item"
        assert body["max_tokens"] == 100
        assert body["stream"] is False

    @pytest.mark.asyncio
    async def test_generate_object_invalid(self, client):
        client._session.post.return_value = fake_response(200, completion_payload('{"name": 5}'))

        with pytest.raises(SchemaValidationError) as exc_info:
            await client.generate_object("m", Item, None, "prompt")

        assert exc_info.value.raw_text == '{"name": 5}'

    @pytest.mark.asyncio
    async def test_unexpected_shape(self, client):
        client._session.post.return_value = fake_response(200, {"error": "nope"})

        with pytest.raises(TransportError, match="Unexpected response shape"):
            await client.completion("m", "hi")

    @pytest.mark.asyncio
    async def test_stream_object(self, client):
        response = fake_response(200, lines=[
            b'data: {"choices": [{"delta": {"content": "{\\"name\\": "}}]}\n',
            b'data: {"choices": [{"delta": {"content": "\\"Ada\\"}"}, "finish_reason": "stop"}]}\n',
            b'data: [DONE]\n',
        ])
        client._session.post.return_value = response

        stream = await client.stream_object("m", Item, None, "prompt")
        partials = [p async for p in stream.partials]

        assert partials[-1] == {"name": "Ada"}
        assert await stream.result() == Item(name="Ada")
        response.release.assert_called_once()

    @pytest.mark.asyncio
    async def test_stream_rate_limit_event_after_partials(self, client):
        """A 429 error event cut into a 200 stream is a rate limit, not bad output."""
        response = fake_response(200, lines=[
            b'data: {"choices": [{"delta": {"content": "{\\"name\\": \\"A"}}]}\n',
            b'data: {"error": {"code": 429, "message": "Provider overloaded"}}\n',
            b'data: [DONE]\n',
        ])
        client._session.post.return_value = response

        stream = await client.stream_object("m", Item, None, "prompt")
        seen = []
        with pytest.raises(RateLimitError) as exc_info:
            async for partial in stream.partials:
                seen.append(partial)

        assert seen == [{"name": "A"}]
        assert "Provider overloaded" in str(exc_info.value)
        assert exc_info.value.retry_after_ms is None
        assert not stream.done
        response.release.assert_called_once()

    @pytest.mark.asyncio
    async def test_stream_rate_limit_event_with_wait(self, client):
        client._session.post.return_value = fake_response(200, lines=[
            b'data: {"error": {"code": 429, "message": "slow down", "metadata": {"headers": {"retry-after-ms": "300"}}}}\n',
        ])

        stream = await client.stream_object("m", Item, None, "prompt")
        with pytest.raises(RateLimitError) as exc_info:
            await stream.drain()

        assert exc_info.value.retry_after_ms == 300

    @pytest.mark.asyncio
    async def test_stream_server_error_event(self, client):
        client._session.post.return_value = fake_response(200, lines=[
            b'data: {"choices": [{"delta": {"content": "{\\"na"}}]}\n',
            b'data: {"error": {"code": 502, "message": "Upstream failed"}, "choices": [{"finish_reason": "error"}]}\n',
        ])

        stream = await client.stream_object("m", Item, None, "prompt")
        with pytest.raises(TransportError) as exc_info:
            await stream.drain()

        assert not isinstance(exc_info.value, SchemaValidationError)
        assert exc_info.value.status == 502

    @pytest.mark.asyncio
    async def test_stream_error_event_with_text_code(self, client):
        client._session.post.return_value = fake_response(200, lines=[
            b'data: {"error": {"code": "server_error", "message": "boom"}}\n',
        ])

        stream = await client.stream_object("m", Item, None, "prompt")
        with pytest.raises(TransportError) as exc_info:
            await stream.drain()

        assert exc_info.value.status is None
        assert "boom" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_stream_rate_limited_before_partials(self, client):
        client._session.post.return_value = fake_response(429, headers={"retry-after-ms": "250"})

        with pytest.raises(RateLimitError) as exc_info:
            await client.stream_object("m", Item, None, "prompt")

        assert exc_info.value.retry_after_ms == 250

    @pytest.mark.asyncio
    async def test_context_manager_closes_session(self):
        async with OpenRouterClient(api_key="sk-or-test-key-123") as client:
            assert client._session is not None
        assert client._session is None
