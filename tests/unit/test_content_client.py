"""
Unit tests for content_client module.
"""

import json

import httpx
import pytest
from tenacity import wait_none

from src.models.config import ContentServiceConfig, SystemParams
from src.utils.content_client import (
    JSON_ONLY_INSTRUCTION,
    ContentServiceClient,
    ContentServiceError,
    EnvelopeFormatError,
    TransportError,
    decode_envelope,
    with_json_only_instruction,
)

ENDPOINT = "https://content.test/v1/messages"


def make_client(handler, **kwargs) -> ContentServiceClient:
    """Client wired to an httpx MockTransport with retry waits disabled."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = ContentServiceClient(
        config=ContentServiceConfig(endpoint_url=ENDPOINT),
        http_client=http_client,
        **kwargs,
    )
    client.retry_wait = wait_none()
    return client


class TestDecodeEnvelope:
    """Test cases for decode_envelope()."""

    def test_content_blocks_shape(self):
        """Shape A uses the first content block's text."""
        # Act
        decoded = decode_envelope({"content": [{"type": "text", "text": "[1]"}, {"text": "x"}]})

        # Assert
        assert decoded.shape == "content_blocks"
        assert decoded.text == "[1]"

    def test_completion_shape(self):
        """Shape B uses the completion field."""
        # Act
        decoded = decode_envelope({"completion": '{"a": 1}'})

        # Assert
        assert decoded.shape == "completion"
        assert decoded.text == '{"a": 1}'

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"content": []},
            {"content": [{"type": "image"}]},
            {"content": [{"text": ""}]},
            {"completion": 42},
            {"error": {"message": "overloaded"}},
            ["not", "an", "object"],
            "plain string",
        ],
    )
    def test_unrecognized_shape_raises(self, body):
        """Bodies without either shape raise EnvelopeFormatError."""
        with pytest.raises(EnvelopeFormatError):
            decode_envelope(body)


class TestBuildRequest:
    """Test cases for request construction."""

    def test_request_body(self):
        """Model, budget, temperature and a single user message are sent."""
        # Arrange
        client = ContentServiceClient(
            config=ContentServiceConfig(model="test-model", temperature=0.7)
        )

        # Act
        body = client.build_request("Suggest careers", output_budget=1500)

        # Assert
        assert body["model"] == "test-model"
        assert body["max_tokens"] == 1500
        assert body["temperature"] == 0.7
        assert len(body["messages"]) == 1
        assert body["messages"][0]["role"] == "user"
        assert body["messages"][0]["content"].startswith("Suggest careers")
        assert body["messages"][0]["content"].endswith(JSON_ONLY_INSTRUCTION)

    def test_rejects_non_positive_budget(self):
        """An output budget must be positive."""
        with pytest.raises(ValueError):
            ContentServiceClient().build_request("prompt", output_budget=0)

    def test_instruction_not_duplicated(self):
        """A prompt already ending with the instruction is left alone."""
        # Arrange
        prompt = with_json_only_instruction("Suggest careers")

        # Act
        result = with_json_only_instruction(prompt)

        # Assert
        assert result.count(JSON_ONLY_INSTRUCTION) == 1

    def test_from_params(self):
        """Client settings come from SystemParams sections."""
        # Arrange
        params = SystemParams(
            timeouts={"content_service": 15},
            retry={"max_attempts": 5},
            rate_limits={"content_service_per_minute": 10},
        )

        # Act
        client = ContentServiceClient.from_params(params, api_key="sk-test")

        # Assert
        assert client.timeout == 15
        assert client.max_attempts == 5
        assert client.limiter.max_rate == 10
        assert client.api_key == "sk-test"


class TestSend:
    """Test cases for send() over a mock transport."""

    @pytest.mark.asyncio
    async def test_send_content_blocks_response(self):
        """The unwrapped text of shape A is returned."""
        # Arrange
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            captured["headers"] = request.headers
            return httpx.Response(200, json={"content": [{"type": "text", "text": "[]"}]})

        client = make_client(handler, api_key="sk-test")

        # Act
        text = await client.send("networking-strategy", "Plan networking", 800)

        # Assert
        assert text == "[]"
        assert captured["url"] == ENDPOINT
        assert captured["body"]["max_tokens"] == 800
        assert captured["headers"]["x-api-key"] == "sk-test"
        assert captured["headers"]["anthropic-version"] == "2023-06-01"
        assert captured["headers"]["content-type"] == "application/json"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_send_completion_response(self):
        """The completion text of shape B is returned."""
        # Arrange
        client = make_client(
            lambda request: httpx.Response(200, json={"completion": '{"phases": []}'})
        )

        # Act
        text = await client.send("roadmap", "Plan", 2000)

        # Assert
        assert text == '{"phases": []}'

    @pytest.mark.asyncio
    async def test_no_api_key_headers_without_key(self):
        """Without a key no credential header is sent."""
        # Arrange
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["headers"] = request.headers
            return httpx.Response(200, json={"completion": "[]"})

        client = make_client(handler)

        # Act
        await client.send("recommendations", "Suggest", 1500)

        # Assert
        assert "x-api-key" not in captured["headers"]

    @pytest.mark.asyncio
    async def test_non_success_status_raises_transport_error(self):
        """A 5xx surfaces status and body, and is not retried."""
        # Arrange
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503, text="overloaded")

        client = make_client(handler)

        # Act & Assert
        with pytest.raises(TransportError) as exc_info:
            await client.send("roadmap", "Plan", 2000)

        assert exc_info.value.status == 503
        assert str(exc_info.value) == "Content service error: 503 - overloaded"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_unrecognized_envelope_raises(self):
        """Success status with an unknown body shape is an error."""
        # Arrange
        client = make_client(lambda request: httpx.Response(200, json={"result": "[]"}))

        # Act & Assert
        with pytest.raises(EnvelopeFormatError):
            await client.send("roadmap", "Plan", 2000)

    @pytest.mark.asyncio
    async def test_non_json_body_raises_envelope_error(self):
        """Success status with a non-JSON body is an envelope error."""
        # Arrange
        client = make_client(lambda request: httpx.Response(200, text="<html>oops</html>"))

        # Act & Assert
        with pytest.raises(EnvelopeFormatError):
            await client.send("roadmap", "Plan", 2000)

    @pytest.mark.asyncio
    async def test_connection_error_retried_then_raised(self):
        """Connection failures are retried up to max_attempts, then surfaced."""
        # Arrange
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler, max_attempts=3)

        # Act & Assert
        with pytest.raises(TransportError) as exc_info:
            await client.send("roadmap", "Plan", 2000)

        assert exc_info.value.status is None
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_each_attempt_passes_through_limiter(self, mocker):
        """Retries re-enter the rate limiter and the last error is chained."""
        # Arrange
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler, max_attempts=2)
        acquire = mocker.spy(client.limiter, "acquire")

        # Act
        with pytest.raises(TransportError) as exc_info:
            await client.send("roadmap", "Plan", 2000)

        # Assert
        assert acquire.call_count == 2
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_transient_connection_error_recovers(self):
        """A connection failure followed by success returns the text."""
        # Arrange
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, json={"completion": "[]"})

        client = make_client(handler)

        # Act
        text = await client.send("action-plan", "Plan", 1500)

        # Assert
        assert text == "[]"
        assert len(calls) == 2

    def test_errors_share_base_class(self):
        """Both failure kinds can be caught as ContentServiceError."""
        assert issubclass(TransportError, ContentServiceError)
        assert issubclass(EnvelopeFormatError, ContentServiceError)
        assert "unreachable" in str(TransportError(None, "refused"))

    @pytest.mark.asyncio
    async def test_context_manager_leaves_injected_client_open(self):
        """An injected httpx client is owned by the caller."""
        # Arrange
        http_client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"completion": "[]"}))
        )

        # Act
        async with ContentServiceClient(http_client=http_client):
            pass

        # Assert
        assert http_client.is_closed is False
        await http_client.aclose()
