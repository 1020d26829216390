"""
Content Service Client Module

Builds stage requests (prompt + output budget), sends them to the
text-generation service and unwraps the response envelope.
All generation calls go through this module.

Example Usage:
    from src.utils.content_client import ContentServiceClient

    async with ContentServiceClient.from_params(params, api_key=key) as client:
        text = await client.send("recommendations", prompt, output_budget=1500)
"""

import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional

import httpx
import structlog
from aiolimiter import AsyncLimiter
from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError
from tenacity import (
    AsyncRetrying,
    after_log,
    before_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.models.config import ContentServiceConfig, SystemParams

logger = structlog.get_logger(__name__)

JSON_ONLY_INSTRUCTION = (
    "Respond with ONLY the JSON data. Do not include any text, explanation "
    "or markdown before or after it."
)

# Characters of a response body kept on exceptions
ERROR_BODY_CHARS = 500


class ContentServiceError(Exception):
    """Base class for failures surfaced to the caller as user-visible errors."""

    pass


class TransportError(ContentServiceError):
    """Network failure or non-success status from the content service."""

    def __init__(self, status: Optional[int], body: str = ""):
        self.status = status
        self.body = body[:ERROR_BODY_CHARS]
        if status is None:
            message = f"Content service unreachable: {self.body}"
        else:
            message = f"Content service error: {status} - {self.body}"
        super().__init__(message)


class EnvelopeFormatError(ContentServiceError):
    """Success status but the response body has no recognized shape."""

    def __init__(self, body: str = ""):
        self.body = body[:ERROR_BODY_CHARS]
        super().__init__(f"Unexpected response format from content service: {self.body}")


class _TextBlock(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: StrictStr = Field(..., min_length=1)


class ContentBlocksEnvelope(BaseModel):
    """Shape A: {"content": [{"text": "..."}, ...]} (first block is used)."""

    model_config = ConfigDict(extra="allow")

    content: list[Any] = Field(..., min_length=1)

    def first_text(self) -> str:
        return _TextBlock.model_validate(self.content[0]).text


class CompletionEnvelope(BaseModel):
    """Shape B: {"completion": "..."}."""

    model_config = ConfigDict(extra="allow")

    completion: StrictStr = Field(..., min_length=1)


@dataclass(frozen=True)
class DecodedEnvelope:
    """Text extracted from a recognized envelope, tagged with its shape."""

    shape: Literal["content_blocks", "completion"]
    text: str


def decode_envelope(body: Any) -> DecodedEnvelope:
    """
    Unwrap a decoded JSON response body.

    Tries the content-blocks shape, then the completion shape.

    Args:
        body: Parsed JSON body of a successful response

    Returns:
        DecodedEnvelope with the shape that matched and its text

    Raises:
        EnvelopeFormatError: If neither shape matches
    """
    try:
        envelope = ContentBlocksEnvelope.model_validate(body)
        return DecodedEnvelope(shape="content_blocks", text=envelope.first_text())
    except ValidationError:
        pass

    try:
        completion = CompletionEnvelope.model_validate(body)
        return DecodedEnvelope(shape="completion", text=completion.completion)
    except ValidationError:
        pass

    raise EnvelopeFormatError(repr(body))


def with_json_only_instruction(prompt_text: str) -> str:
    """Ensure the prompt ends with the JSON-only instruction."""
    stripped = prompt_text.rstrip()
    if stripped.endswith(JSON_ONLY_INSTRUCTION):
        return stripped
    return f"{stripped}\n\n{JSON_ONLY_INSTRUCTION}"


class ContentServiceClient:
    """Async client for the text-generation service."""

    def __init__(
        self,
        config: Optional[ContentServiceConfig] = None,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        max_attempts: int = 3,
        requests_per_minute: int = 30,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize ContentServiceClient.

        Args:
            config: Endpoint, model and temperature (defaults from ContentServiceConfig)
            api_key: Sent as x-api-key when provided
            timeout: Per-request timeout in seconds
            max_attempts: Attempts for connection-level failures (timeouts, connect errors)
            requests_per_minute: Client-side request rate limit
            http_client: Pre-built httpx client (not closed by this instance)
        """
        self.config = config or ContentServiceConfig()
        self.api_key = api_key
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_wait = wait_exponential(multiplier=1, min=2, max=10)
        self.limiter = AsyncLimiter(max_rate=requests_per_minute, time_period=60)

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_params(
        cls,
        params: SystemParams,
        api_key: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "ContentServiceClient":
        """Build a client from validated system parameters."""
        return cls(
            config=params.content_service,
            api_key=api_key,
            timeout=params.timeouts.content_service,
            max_attempts=params.retry.max_attempts,
            requests_per_minute=params.rate_limits.content_service_per_minute,
            http_client=http_client,
        )

    def build_request(self, prompt_text: str, output_budget: int) -> dict[str, Any]:
        """
        Build the request body for one generation call.

        Args:
            prompt_text: Rendered stage prompt
            output_budget: max_tokens for this stage

        Returns:
            JSON-serializable request body
        """
        if output_budget <= 0:
            raise ValueError("output_budget must be greater than 0")

        return {
            "model": self.config.model,
            "max_tokens": output_budget,
            "temperature": self.config.temperature,
            "messages": [
                {"role": "user", "content": with_json_only_instruction(prompt_text)}
            ],
        }

    def _headers(self) -> dict[str, str]:
        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
            headers["anthropic-version"] = self.config.api_version
        return headers

    async def _post(self, body: dict[str, Any]) -> httpx.Response:
        """POST with retry on connection-level failures only."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception_type(httpx.TransportError),
            before=before_log(logger, logging.DEBUG),
            after=after_log(logger, logging.WARNING),
            reraise=True,
        )
        return await retrying(self._post_once, body)

    async def _post_once(self, body: dict[str, Any]) -> httpx.Response:
        async with self.limiter:
            return await self._client.post(
                self.config.endpoint_url,
                json=body,
                headers=self._headers(),
                timeout=self.timeout,
            )

    async def send(
        self,
        stage_id: str,
        prompt_text: str,
        output_budget: int,
        correlation_id: Optional[str] = None,
    ) -> str:
        """
        Send one stage request and return the unwrapped response text.

        Args:
            stage_id: Stage identifier (for logging)
            prompt_text: Rendered stage prompt
            output_budget: max_tokens for this stage
            correlation_id: Optional correlation ID for logging

        Returns:
            Raw response text (not yet parsed)

        Raises:
            TransportError: On network failure or non-success status
            EnvelopeFormatError: On a success status with an unrecognized body
        """
        log = logger.bind(stage=str(stage_id), correlation_id=correlation_id)
        body = self.build_request(prompt_text, output_budget)

        log.debug(
            "Content service call initiated",
            model=body["model"],
            max_tokens=output_budget,
            prompt_length=len(prompt_text),
        )

        try:
            response = await self._post(body)
        except httpx.HTTPError as e:
            log.error("Content service unreachable", error=str(e))
            raise TransportError(None, str(e) or type(e).__name__) from e

        if not response.is_success:
            log.error(
                "Content service error response",
                status=response.status_code,
                body=response.text[:200],
            )
            raise TransportError(response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError as e:
            log.error("Content service returned non-JSON body", body=response.text[:200])
            raise EnvelopeFormatError(response.text) from e

        try:
            decoded = decode_envelope(payload)
        except EnvelopeFormatError:
            log.error("Unrecognized response envelope", body=response.text[:200])
            raise

        log.debug(
            "Content service call succeeded",
            envelope=decoded.shape,
            response_length=len(decoded.text),
        )
        return decoded.text

    async def aclose(self) -> None:
        """Close the underlying httpx client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ContentServiceClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
