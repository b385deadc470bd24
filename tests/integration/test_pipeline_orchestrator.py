"""
Integration tests for the LangGraph generation pipeline.

Tests the complete pipeline workflow including:
- Status write sequence and progress checkpoints
- Conditional routing to the failure node
- Failure classification per stage
- Retry of transient completion failures
- Progress callbacks
"""

import json
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest
import pytest_asyncio

from site_cloner.analyzers.prompts import (
    PRODUCT_GENERATION_SYSTEM_PROMPT,
    THEME_GENERATION_SYSTEM_PROMPT,
)
from site_cloner.models.schemas import FailureKind, GenerationContext, ScrapedData
from site_cloner.pipeline.orchestrator import (
    GenerationPipeline,
    classify_failure,
    run_generation_pipeline,
)
from site_cloner.services.generation_store import InMemoryGenerationStore
from site_cloner.utils.retry import (
    AIGenerationError,
    PersistenceError,
    RateLimitError,
    ScrapingError,
)

SOURCE_URL = "https://brew.example.com/"

HAPPY_PATH = [
    ("scraping", 10),
    ("scraping", 25),
    ("analyzing", 30),
    ("analyzing", 45),
    ("analyzing", 50),
    ("analyzing", 60),
    ("completed", 100),
]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def store():
    return InMemoryGenerationStore()


@pytest.fixture
def scraper(sample_scraped_data):
    scraper = MagicMock()
    scraper.scrape = AsyncMock(return_value=sample_scraped_data)
    return scraper


@pytest.fixture
def pipeline(store, completion_client, scraper, settings):
    return GenerationPipeline(store, completion_client, scraper, settings=settings)


@pytest_asyncio.fixture
async def context(store):
    generation = await store.create_generation("shop-1", SOURCE_URL)
    return GenerationContext(
        generation_id=generation.id,
        shop_id="shop-1",
        shop_domain="demo.myshopify.com",
        access_token="shpat_test",
        source_url=SOURCE_URL,
    )


def _transitions(store):
    return [(changes["status"], changes["progress"]) for _, changes in store.writes]


# =============================================================================
# Happy Path
# =============================================================================

@pytest.mark.asyncio
async def test_pipeline_completes(pipeline, store, context, fake_transport, theme_response, products_response):
    fake_transport.responses = [theme_response, products_response]

    result = await run_generation_pipeline(context, pipeline)

    assert result.success is True
    assert result.products_created == 3
    assert result.error is None
    assert _transitions(store) == HAPPY_PATH

    generation = await store.get_generation(context.generation_id)
    assert generation.status == "completed"
    assert generation.progress == 100
    assert generation.error_message is None


@pytest.mark.asyncio
async def test_pipeline_snapshots_scrape_and_model_output(
    pipeline, store, context, fake_transport, theme_response, products_response, sample_scraped_data
):
    fake_transport.responses = [theme_response, products_response]

    await pipeline.run(context)

    generation = await store.get_generation(context.generation_id)
    assert ScrapedData.from_json(generation.scraped_data) == sample_scraped_data

    ai_response = json.loads(generation.ai_response)
    assert ai_response["theme"]["brandName"] == "Brew & Co."
    assert ai_response["theme"]["colors"]["accent"] == "#ffa500"
    assert [p["title"] for p in ai_response["products"]] == [
        "Ethiopia Yirgacheffe", "House Espresso", "Cold Brew Kit",
    ]

    # snapshots are attached to their own checkpoint writes
    assert "scraped_data" in store.writes[1][1]
    assert "ai_response" in store.writes[5][1]


@pytest.mark.asyncio
async def test_pipeline_sends_json_mode_prompts(
    pipeline, context, fake_transport, theme_response, products_response
):
    fake_transport.responses = [theme_response, products_response]

    await pipeline.run(context)

    theme_request, product_request = fake_transport.requests
    assert theme_request.json_mode is True
    assert theme_request.system_prompt == THEME_GENERATION_SYSTEM_PROMPT
    assert "Generate theme settings" in theme_request.conversation[0]["content"]
    assert product_request.system_prompt == PRODUCT_GENERATION_SYSTEM_PROMPT
    assert "Existing Products Found" in product_request.conversation[0]["content"]


@pytest.mark.asyncio
async def test_pipeline_retries_transient_completion_failure(
    pipeline, store, context, fake_transport, no_sleep, theme_response, products_response
):
    overloaded = anthropic.APIStatusError(
        "overloaded",
        response=httpx.Response(529, request=httpx.Request("POST", "https://api.anthropic.com")),
        body=None,
    )
    fake_transport.responses = [overloaded, theme_response, products_response]

    result = await pipeline.run(context)

    assert result.success is True
    assert len(fake_transport.requests) == 3
    assert no_sleep.await_count == 1
    assert _transitions(store) == HAPPY_PATH


@pytest.mark.asyncio
async def test_progress_callback(store, completion_client, scraper, settings, context,
                                 fake_transport, theme_response, products_response):
    calls = []
    pipeline = GenerationPipeline(
        store,
        completion_client,
        scraper,
        settings=settings,
        progress_callback=lambda progress, status: calls.append((status, progress)),
    )
    fake_transport.responses = [theme_response, products_response]

    await pipeline.run(context)

    assert calls == HAPPY_PATH


@pytest.mark.asyncio
async def test_broken_progress_callback_does_not_fail_run(
    store, completion_client, scraper, settings, context, fake_transport, theme_response, products_response
):
    pipeline = GenerationPipeline(
        store,
        completion_client,
        scraper,
        settings=settings,
        progress_callback=MagicMock(side_effect=RuntimeError("ui gone")),
    )
    fake_transport.responses = [theme_response, products_response]

    result = await pipeline.run(context)

    assert result.success is True


# =============================================================================
# Failure Paths
# =============================================================================

@pytest.mark.asyncio
async def test_insufficient_scrape_fails_before_analysis(pipeline, store, scraper, context, fake_transport):
    scraper.scrape.return_value = ScrapedData(url=SOURCE_URL)

    result = await pipeline.run(context)

    assert result.success is False
    assert "Insufficient data scraped from URL" in result.error
    assert _transitions(store) == [("scraping", 10), ("failed", 0)]
    assert fake_transport.requests == []

    generation = await store.get_generation(context.generation_id)
    assert generation.status == "failed"
    assert generation.progress == 0
    assert generation.error_message == result.error


@pytest.mark.asyncio
async def test_scrape_http_error(pipeline, store, scraper, context, fake_transport):
    scraper.scrape.side_effect = ScrapingError("HTTP 404", SOURCE_URL)

    result = await pipeline.run(context)

    assert result.success is False
    assert result.error == f"Failed to scrape {SOURCE_URL}: HTTP 404"
    assert _transitions(store) == [("scraping", 10), ("failed", 0)]
    assert fake_transport.requests == []


@pytest.mark.asyncio
async def test_theme_parse_failure(pipeline, store, context, fake_transport):
    fake_transport.responses = ["Sorry, I can't produce a theme for this site."]

    result = await pipeline.run(context)

    assert result.success is False
    assert result.error == "No JSON found in theme response"
    assert _transitions(store) == [("scraping", 10), ("scraping", 25), ("analyzing", 30), ("failed", 0)]
    assert len(fake_transport.requests) == 1


@pytest.mark.asyncio
async def test_products_without_valid_items(pipeline, store, context, fake_transport, theme_response):
    fake_transport.responses = [theme_response, json.dumps({"products": [{"price": 3}]})]

    result = await pipeline.run(context)

    assert result.success is False
    assert result.error == "No valid products in response"
    assert _transitions(store)[-2:] == [("analyzing", 50), ("failed", 0)]


@pytest.mark.asyncio
async def test_quality_gate_failure(pipeline, store, context, fake_transport, theme_response):
    products = json.dumps({"products": [
        {"title": "Gift Card", "description": "Any amount", "price": 0},
    ]})
    fake_transport.responses = [theme_response, products]

    result = await pipeline.run(context)

    assert result.success is False
    assert result.error == "AI response validation failed"
    assert _transitions(store)[-2:] == [("analyzing", 60), ("failed", 0)]


@pytest.mark.asyncio
async def test_unexpected_error_is_captured(pipeline, store, scraper, context):
    scraper.scrape.side_effect = RuntimeError("boom")

    result = await pipeline.run(context)

    assert result.success is False
    assert result.error == "boom"
    assert _transitions(store)[-1] == ("failed", 0)


@pytest.mark.asyncio
async def test_store_outage_never_raises(completion_client, scraper, settings, context):
    store = MagicMock()
    store.update_generation = AsyncMock(side_effect=OSError("disk full"))
    pipeline = GenerationPipeline(store, completion_client, scraper, settings=settings)

    result = await pipeline.run(context)

    assert result.success is False
    assert result.error == "Failed to update generation status: disk full"
    # the initial checkpoint and the failure write were both attempted
    assert store.update_generation.await_count == 2
    scraper.scrape.assert_not_called()


# =============================================================================
# Failure Classification
# =============================================================================

@pytest.mark.parametrize("error,kind", [
    (ScrapingError("HTTP 500"), FailureKind.SCRAPING),
    (AIGenerationError("bad"), FailureKind.AI_GENERATION),
    (RateLimitError(retry_after=3.0), FailureKind.AI_GENERATION),
    (PersistenceError("down"), FailureKind.PERSISTENCE),
    (KeyError("x"), FailureKind.UNEXPECTED),
])
def test_classify_failure(error, kind):
    assert classify_failure(error) == kind
