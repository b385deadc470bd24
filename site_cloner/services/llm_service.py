"""
Completion client for Anthropic's Claude API.

The client is split in two layers so the pipeline can be exercised without
network access:

    - ``CompletionTransport``: one request/response round-trip. The production
      implementation is ``AnthropicTransport``; tests substitute a fake.
    - ``CompletionClient``: the retry policy and the single wall-clock
      deadline wrapped around the whole attempt sequence.

Key Features:
    - Async/await support for non-blocking operations
    - Bounded exponential backoff on transient failures only
    - One deadline guard around all attempts, not per attempt
    - Optional JSON-mode requests with best-effort decoding

Example:
    >>> client = create_completion_client(settings)
    >>> async with client:
    ...     text = await client.complete(prompt, system_prompt=system)
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal, Optional, Protocol, Type, TypeVar

import anthropic
from pydantic import BaseModel, ValidationError

from site_cloner.config.settings import Settings, get_settings
from site_cloner.utils.logger import get_logger
from site_cloner.utils.retry import (
    AIGenerationError,
    RateLimitError,
    build_retrying,
    with_deadline,
)

T = TypeVar("T", bound=BaseModel)

logger = get_logger(__name__)


ResponseFormat = Literal["text", "json_object"]

JSON_MODE_INSTRUCTION = (
    "Respond with a single valid JSON object only. "
    "Do not wrap it in markdown or add any explanation."
)

JSON_ERROR_PREVIEW_CHARS = 200


# =============================================================================
# Transport Contract
# =============================================================================

@dataclass
class CompletionRequest:
    """A single chat-completion request."""
    model: str
    messages: list[dict[str, str]]
    temperature: float
    max_tokens: int
    json_mode: bool = False

    @property
    def system_prompt(self) -> Optional[str]:
        parts = [m["content"] for m in self.messages if m["role"] == "system"]
        return "\n\n".join(parts) if parts else None

    @property
    def conversation(self) -> list[dict[str, str]]:
        return [m for m in self.messages if m["role"] != "system"]


class CompletionTransport(Protocol):
    """Performs one completion round-trip and returns the text, or None if empty."""

    async def create(self, request: CompletionRequest) -> Optional[str]:
        ...

    async def close(self) -> None:
        ...


class AnthropicTransport:
    """
    Transport backed by ``anthropic.AsyncAnthropic``.

    System messages are sent through the dedicated ``system`` parameter. The
    Messages API has no JSON response mode, so ``json_mode`` is expressed as
    an extra system instruction. SDK-level retries are disabled; retrying is
    owned by ``CompletionClient``.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        if client is None:
            if not api_key:
                raise AIGenerationError("ANTHROPIC_API_KEY is not configured")
            client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnthropicTransport":
        if not settings.has_completion_credentials():
            raise AIGenerationError("ANTHROPIC_API_KEY is not configured")
        return cls(api_key=settings.anthropic_api_key.get_secret_value())

    async def create(self, request: CompletionRequest) -> Optional[str]:
        system = request.system_prompt
        if request.json_mode:
            system = f"{system}\n\n{JSON_MODE_INSTRUCTION}" if system else JSON_MODE_INSTRUCTION

        kwargs: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": request.conversation,
        }
        if system:
            kwargs["system"] = system

        try:
            response = await self.client.messages.create(**kwargs)
        except anthropic.RateLimitError as e:
            raise RateLimitError(
                f"Anthropic rate limit exceeded: {e.message}",
                retry_after=_retry_after_seconds(e.response),
            ) from e

        logger.debug(
            "Completion usage",
            model=request.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )

        for block in response.content:
            if block.type == "text":
                return block.text
        return None

    async def close(self) -> None:
        await self.client.close()


def _retry_after_seconds(response: Any) -> Optional[float]:
    """Read a numeric ``retry-after`` header, if the API sent one."""
    value = response.headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


# =============================================================================
# Completion Client
# =============================================================================

class CompletionClient:
    """
    Retrying, deadline-bounded completion client.

    At most ``retry_max_attempts`` transport calls are made per request.
    Only transient failures are retried; everything else propagates on first
    occurrence. The whole attempt sequence shares one deadline of
    ``completion_timeout_seconds``.

    Attributes:
        transport: The round-trip implementation
        settings: Application settings (model, sampling, retry, timeout)
    """

    def __init__(
        self,
        transport: CompletionTransport,
        settings: Optional[Settings] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.transport = transport
        self.settings = settings or get_settings()
        self._sleep = sleep
        self.request_count = 0

    async def __aenter__(self) -> "CompletionClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the transport's connection pool."""
        await self.transport.close()
        logger.info("CompletionClient closed", total_requests=self.request_count)

    # =========================================================================
    # Core API Methods
    # =========================================================================

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        response_format: ResponseFormat = "text",
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Run one logical completion.

        Args:
            prompt: User message content
            system_prompt: Optional system instruction, sent first
            response_format: ``"json_object"`` requests JSON-only output
            model: Overrides the configured model
            temperature: Overrides the configured temperature
            max_tokens: Overrides the configured token cap

        Returns:
            The raw completion text

        Raises:
            AIGenerationError: On empty content or deadline expiry
        """
        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        request = CompletionRequest(
            model=model or self.settings.claude_model,
            messages=messages,
            temperature=(
                temperature if temperature is not None
                else self.settings.completion_temperature
            ),
            max_tokens=max_tokens or self.settings.completion_max_tokens,
            json_mode=response_format == "json_object",
        )

        timeout = self.settings.completion_timeout_seconds
        return await with_deadline(
            self._complete_with_retry(request),
            timeout,
            f"Completion request timed out after {timeout:g} seconds",
        )

    async def _complete_with_retry(self, request: CompletionRequest) -> str:
        retrying = build_retrying(
            max_attempts=self.settings.retry_max_attempts,
            initial_delay=self.settings.retry_initial_delay_seconds,
            backoff_multiplier=self.settings.retry_backoff_multiplier,
            max_delay=self.settings.retry_max_delay_seconds,
            sleep=self._sleep,
        )

        start_time = time.monotonic()
        content = await retrying(self._create_once, request)

        logger.info(
            "Completion successful",
            model=request.model,
            json_mode=request.json_mode,
            attempts=retrying.statistics.get("attempt_number", 1),
            elapsed_seconds=f"{time.monotonic() - start_time:.2f}",
            response_chars=len(content),
        )
        return content

    async def _create_once(self, request: CompletionRequest) -> str:
        self.request_count += 1
        content = await self.transport.create(request)
        if not content:
            raise AIGenerationError("Empty response from completion service")
        return content

    async def complete_json(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        schema: Optional[Type[T]] = None,
        **kwargs: Any,
    ) -> Any:
        """
        Request JSON output and decode it.

        Args:
            prompt: User message content
            system_prompt: Optional system instruction
            schema: Optional Pydantic model to validate the decoded value

        Returns:
            The decoded JSON value, or a ``schema`` instance when given

        Raises:
            AIGenerationError: If the text is not JSON or fails ``schema``
        """
        text = await self.complete(
            prompt,
            system_prompt=system_prompt,
            response_format="json_object",
            **kwargs,
        )

        try:
            data = json.loads(text.strip())
        except json.JSONDecodeError:
            raise AIGenerationError(
                f"Failed to parse completion as JSON: {text[:JSON_ERROR_PREVIEW_CHARS]}"
            ) from None

        if schema is None:
            return data

        try:
            return schema.model_validate(data)
        except ValidationError as e:
            raise AIGenerationError(
                f"Completion does not match {schema.__name__}: {e.error_count()} validation errors"
            ) from e


# =============================================================================
# Factory Function
# =============================================================================

def create_completion_client(settings: Optional[Settings] = None) -> CompletionClient:
    """
    Build a completion client backed by the Anthropic API.

    The caller owns the returned instance and should close it on shutdown.

    Raises:
        AIGenerationError: If no API key is configured
    """
    settings = settings or get_settings()
    transport = AnthropicTransport.from_settings(settings)
    logger.info(
        "CompletionClient initialized",
        model=settings.claude_model,
        max_attempts=settings.retry_max_attempts,
        timeout_seconds=settings.completion_timeout_seconds,
    )
    return CompletionClient(transport, settings)
