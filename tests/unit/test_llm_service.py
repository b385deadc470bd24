import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest
from pydantic import BaseModel

from site_cloner.services.llm_service import (
    JSON_MODE_INSTRUCTION,
    AnthropicTransport,
    CompletionClient,
    CompletionRequest,
    create_completion_client,
)
from site_cloner.utils.retry import AIGenerationError, RateLimitError

API_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _status_error(status: int) -> anthropic.APIStatusError:
    return anthropic.APIStatusError(
        f"status {status}",
        response=httpx.Response(status, request=API_REQUEST),
        body=None,
    )


# =============================================================================
# CompletionClient
# =============================================================================

@pytest.mark.asyncio
async def test_complete_sends_system_message_first(completion_client, fake_transport):
    fake_transport.responses = ["hello"]

    result = await completion_client.complete("user prompt", system_prompt="be terse")

    assert result == "hello"
    request = fake_transport.requests[0]
    assert request.messages == [
        {"role": "system", "content": "be terse"},
        {"role": "user", "content": "user prompt"},
    ]
    assert request.model == completion_client.settings.claude_model
    assert request.json_mode is False


@pytest.mark.asyncio
async def test_complete_without_system_prompt(completion_client, fake_transport):
    fake_transport.responses = ["hello"]

    await completion_client.complete("only user")

    assert fake_transport.requests[0].messages == [{"role": "user", "content": "only user"}]


@pytest.mark.asyncio
async def test_complete_overrides(completion_client, fake_transport):
    fake_transport.responses = ["{}"]

    await completion_client.complete(
        "p",
        response_format="json_object",
        model="claude-test",
        temperature=0.0,
        max_tokens=10,
    )

    request = fake_transport.requests[0]
    assert request.json_mode is True
    assert request.model == "claude-test"
    assert request.temperature == 0.0
    assert request.max_tokens == 10


@pytest.mark.asyncio
async def test_complete_retries_transient_failures(completion_client, fake_transport, no_sleep):
    fake_transport.responses = [_status_error(529), anthropic.APIConnectionError(request=API_REQUEST), "ok"]

    result = await completion_client.complete("p")

    assert result == "ok"
    assert len(fake_transport.requests) == 3
    assert completion_client.request_count == 3
    assert [c.args[0] for c in no_sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_complete_does_not_retry_auth_failure(completion_client, fake_transport, no_sleep):
    fake_transport.responses = [_status_error(401), "never"]

    with pytest.raises(anthropic.APIStatusError):
        await completion_client.complete("p")

    assert len(fake_transport.requests) == 1
    no_sleep.assert_not_called()


@pytest.mark.asyncio
async def test_complete_stops_after_max_attempts(completion_client, fake_transport):
    fake_transport.responses = [_status_error(500)] * 5

    with pytest.raises(anthropic.APIStatusError):
        await completion_client.complete("p")

    assert len(fake_transport.requests) == completion_client.settings.retry_max_attempts


@pytest.mark.asyncio
async def test_complete_empty_content(completion_client, fake_transport):
    fake_transport.responses = [None]

    with pytest.raises(AIGenerationError, match="Empty response"):
        await completion_client.complete("p")

    assert len(fake_transport.requests) == 1


@pytest.mark.asyncio
async def test_complete_deadline_covers_all_attempts(settings):
    settings.completion_timeout_seconds = 0.05

    class SlowTransport:
        def __init__(self):
            self.requests = []

        async def create(self, request):
            self.requests.append(request)
            await asyncio.sleep(1)
            return "late"

        async def close(self):
            pass

    transport = SlowTransport()
    client = CompletionClient(transport, settings)

    with pytest.raises(AIGenerationError, match="timed out after 0.05 seconds"):
        await client.complete("p")

    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_complete_json(completion_client, fake_transport):
    fake_transport.responses = ['  {"a": 1}\n']

    assert await completion_client.complete_json("p") == {"a": 1}
    assert fake_transport.requests[0].json_mode is True


@pytest.mark.asyncio
async def test_complete_json_invalid(completion_client, fake_transport):
    fake_transport.responses = ["definitely not json"]

    with pytest.raises(AIGenerationError, match="^Failed to parse completion as JSON: definitely not json"):
        await completion_client.complete_json("p")


@pytest.mark.asyncio
async def test_complete_json_schema(completion_client, fake_transport):
    class Pair(BaseModel):
        a: int
        b: str

    fake_transport.responses = ['{"a": 1, "b": "x"}', '{"a": "nope"}']

    assert await completion_client.complete_json("p", schema=Pair) == Pair(a=1, b="x")

    with pytest.raises(AIGenerationError, match="does not match Pair"):
        await completion_client.complete_json("p", schema=Pair)


@pytest.mark.asyncio
async def test_client_context_manager_closes_transport(completion_client, fake_transport):
    async with completion_client as client:
        assert client is completion_client

    assert fake_transport.closed is True


# =============================================================================
# AnthropicTransport
# =============================================================================

def _mock_anthropic(text_blocks):
    response = MagicMock()
    response.content = [SimpleNamespace(type="text", text=t) for t in text_blocks]
    response.usage.input_tokens = 50
    response.usage.output_tokens = 30
    response.stop_reason = "end_turn"

    client = MagicMock()
    client.messages.create = AsyncMock(return_value=response)
    client.close = AsyncMock()
    return client


@pytest.mark.asyncio
async def test_anthropic_transport_maps_system_and_json_mode():
    client = _mock_anthropic(["{}"])
    transport = AnthropicTransport(client=client)

    result = await transport.create(CompletionRequest(
        model="claude-test",
        messages=[
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "hi"},
        ],
        temperature=0.7,
        max_tokens=100,
        json_mode=True,
    ))

    assert result == "{}"
    kwargs = client.messages.create.await_args.kwargs
    assert kwargs["system"] == f"sys\n\n{JSON_MODE_INSTRUCTION}"
    assert kwargs["messages"] == [{"role": "user", "content": "hi"}]
    assert kwargs["model"] == "claude-test"


@pytest.mark.asyncio
async def test_anthropic_transport_omits_empty_system():
    client = _mock_anthropic(["plain"])
    transport = AnthropicTransport(client=client)

    await transport.create(CompletionRequest(
        model="m",
        messages=[{"role": "user", "content": "hi"}],
        temperature=0.7,
        max_tokens=100,
    ))

    assert "system" not in client.messages.create.await_args.kwargs


@pytest.mark.asyncio
async def test_anthropic_transport_no_text_block():
    client = _mock_anthropic([])
    transport = AnthropicTransport(client=client)

    result = await transport.create(CompletionRequest(
        model="m",
        messages=[{"role": "user", "content": "hi"}],
        temperature=0.7,
        max_tokens=100,
    ))

    assert result is None


def _rate_limited(retry_after=None):
    headers = {"retry-after": retry_after} if retry_after is not None else {}
    return anthropic.RateLimitError(
        "rate limited",
        response=httpx.Response(429, headers=headers, request=API_REQUEST),
        body=None,
    )


@pytest.mark.asyncio
@pytest.mark.parametrize("header,expected", [("7", 7.0), ("soon", None), (None, None)])
async def test_anthropic_transport_maps_rate_limit(header, expected):
    client = _mock_anthropic(["unused"])
    client.messages.create.side_effect = _rate_limited(header)
    transport = AnthropicTransport(client=client)

    with pytest.raises(RateLimitError) as exc_info:
        await transport.create(CompletionRequest(
            model="m",
            messages=[{"role": "user", "content": "hi"}],
            temperature=0.7,
            max_tokens=100,
        ))

    assert exc_info.value.retry_after == expected
    assert exc_info.value.status_code == 429


@pytest.mark.asyncio
async def test_client_waits_retry_after_on_rate_limit(settings, no_sleep):
    client = _mock_anthropic(["done"])
    ok_response = client.messages.create.return_value
    client.messages.create.side_effect = [_rate_limited("7"), ok_response]
    completion_client = CompletionClient(AnthropicTransport(client=client), settings, sleep=no_sleep)

    assert await completion_client.complete("hi") == "done"
    assert client.messages.create.await_count == 2
    no_sleep.assert_awaited_once_with(7.0)

def test_anthropic_transport_requires_key():
    with pytest.raises(AIGenerationError, match="ANTHROPIC_API_KEY"):
        AnthropicTransport()


def test_create_completion_client(settings):
    client = create_completion_client(settings)

    assert isinstance(client, CompletionClient)
    assert isinstance(client.transport, AnthropicTransport)


def test_create_completion_client_without_key(settings):
    settings.anthropic_api_key = None

    with pytest.raises(AIGenerationError, match="not configured"):
        create_completion_client(settings)
