import json
from typing import Optional, Union
from unittest.mock import AsyncMock

import pytest

from site_cloner.config.settings import Settings
from site_cloner.models.schemas import ScrapedData, ScrapedImage, ScrapedProduct
from site_cloner.services.llm_service import CompletionClient, CompletionRequest


class FakeTransport:
    """Scripted completion transport; each call consumes the next response."""

    def __init__(self, responses: Optional[list[Union[str, None, BaseException]]] = None):
        self.responses = list(responses or [])
        self.requests: list[CompletionRequest] = []
        self.closed = False

    async def create(self, request: CompletionRequest) -> Optional[str]:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError("FakeTransport ran out of scripted responses")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def settings(tmp_path):
    """Real settings, isolated from any local .env file."""
    return Settings(
        _env_file=None,
        ANTHROPIC_API_KEY="sk-ant-test-key",
        RETRY_MAX_ATTEMPTS=3,
        RETRY_INITIAL_DELAY_SECONDS=1.0,
        RETRY_BACKOFF_MULTIPLIER=2.0,
        RETRY_MAX_DELAY_SECONDS=30.0,
        COMPLETION_TIMEOUT_SECONDS=60,
        MIN_BODY_TEXT_CHARS=100,
        DATA_DIR=str(tmp_path / "generations"),
    )


@pytest.fixture
def no_sleep():
    return AsyncMock(return_value=None)


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def completion_client(fake_transport, settings, no_sleep):
    return CompletionClient(fake_transport, settings, sleep=no_sleep)


@pytest.fixture
def sample_scraped_data():
    return ScrapedData(
        url="https://brew.example.com/",
        title="Brew & Co. | Specialty Coffee",
        description="Small-batch roasted coffee delivered fresh.",
        colors=["#6f4e37", "#f5f0e6", "rgb(200, 120, 40)", "#333"],
        fonts=["Playfair Display", "Lato"],
        headings=["Fresh Roasts", "Our Story", "Shop Beans", "Subscriptions", "Brew Guides", "Wholesale"],
        body_text="Brew & Co. roasts specialty coffee in small batches. " * 40,
        images=[
            ScrapedImage(src=f"https://brew.example.com/img/{i}.jpg", alt=f"Bag {i}")
            for i in range(7)
        ],
        products=[
            ScrapedProduct(name="Ethiopia Yirgacheffe", price="18.50", description="Floral and bright"),
            ScrapedProduct(name="House Espresso", price="16.00"),
        ],
        logo_url="https://brew.example.com/logo.png",
    )


@pytest.fixture
def theme_response():
    return json.dumps({
        "colors": {
            "primary": "#6F4E37",
            "secondary": "#ABC",
            "background": "white",
            "text": "rgb(51, 51, 51)",
            "accent": "orange",
        },
        "typography": {"headingFont": "Playfair Display", "bodyFont": "Lato"},
        "layout": {"headerStyle": "logo_center", "footerStyle": "detailed"},
        "brandName": "Brew & Co.",
        "tagline": "Small-batch coffee",
    })


@pytest.fixture
def products_response():
    return json.dumps({
        "products": [
            {
                "title": "Ethiopia Yirgacheffe",
                "description": "<p>Floral, bright, tea-like.</p>",
                "price": 18.5,
                "tags": ["coffee", "single-origin"],
                "vendor": "Brew & Co.",
                "productType": "Coffee",
            },
            {
                "title": "House Espresso",
                "description": "Chocolate and caramel.",
                "price": "$16.00",
                "tags": ["espresso"],
            },
            {
                "title": "Cold Brew Kit",
                "description": "Everything for cold brew at home.",
                "price": 34,
            },
        ]
    })


SAMPLE_HTML = """<!DOCTYPE html>
<html>
<head>
  <title>Brew &amp; Co. | Specialty Coffee</title>
  <meta name="description" content="Small-batch roasted coffee delivered fresh.">
  <meta property="og:image" content="/og.png">
  <link href="https://fonts.googleapis.com/css?family=Playfair+Display|Lato" rel="stylesheet">
  <style>
    body { color: #333333; background: #FFFFFF; font-family: 'Lato', sans-serif; }
    h1 { color: #6F4E37; font-family: "Playfair Display", serif; }
    .btn { background-color: rgb(200, 120, 40); }
  </style>
  <script>var tracking = "<h1>not a heading</h1>";</script>
</head>
<body>
  <header class="site-header"><a href="/"><img class="logo" src="/logo.png" alt="Brew"></a></header>
  <h1>Fresh Roasts</h1>
  <h2>Our Story</h2>
  <h3>Hi</h3>
  <p style="color: #f5f0e6">We roast specialty coffee in small batches every single week for our subscribers
  and ship it the same day, so every bag arrives at peak freshness and full of flavour.</p>
  <img src="/img/hero.jpg" alt="Hero">
  <img src="/img/hero.jpg" alt="Duplicate hero">
  <img data-src="https://cdn.example.com/lazy.jpg" alt="Lazy">
  <img src="/pixel.gif" width="1" height="1">
  <div class="product-card">
    <h3 class="product-title">Ethiopia Yirgacheffe</h3>
    <span class="price">$18.50</span>
    <p class="description">Floral and bright</p>
    <img src="/img/ethiopia.jpg">
  </div>
  <div class="product-card">
    <h3 class="product-title">House Espresso</h3>
    <span class="product-price">USD 16.00</span>
  </div>
</body>
</html>
"""


@pytest.fixture
def sample_html():
    return SAMPLE_HTML
