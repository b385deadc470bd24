import json

import pytest
from pydantic import ValidationError

from site_cloner.models.schemas import (
    GenerateRequest,
    GeneratedProduct,
    Generation,
    GenerationContext,
    GenerationStatus,
    ScrapedData,
    ThemeColors,
    ThemeLayout,
)


def test_scraped_data_defaults():
    data = ScrapedData(url="https://x.example")

    assert data.colors == []
    assert data.images == []
    assert data.products == []
    assert data.title is None


def test_scraped_data_camel_case_round_trip(sample_scraped_data):
    payload = json.loads(sample_scraped_data.to_json())

    assert payload["bodyText"].startswith("Brew & Co.")
    assert payload["logoUrl"] == "https://brew.example.com/logo.png"
    assert ScrapedData.from_json(sample_scraped_data.to_json()) == sample_scraped_data


def test_theme_colors_require_normalized_hex():
    ThemeColors(
        primary="#112233",
        secondary="#445566",
        background="#ffffff",
        text="#000000",
        accent="#abcdef",
    )

    with pytest.raises(ValidationError):
        ThemeColors(
            primary="#ABCDEF",
            secondary="#445566",
            background="#ffffff",
            text="#000000",
            accent="#abcdef",
        )


def test_theme_layout_rejects_unknown_style():
    with pytest.raises(ValidationError):
        ThemeLayout(header_style="sidebar")


def test_generated_product_accepts_camel_case():
    product = GeneratedProduct.model_validate({
        "title": "Mug",
        "price": 12,
        "productType": "Kitchen",
        "imageUrl": "https://x.example/mug.jpg",
    })

    assert product.product_type == "Kitchen"
    assert product.image_url == "https://x.example/mug.jpg"
    assert product.tags == []
    assert product.to_dict()["productType"] == "Kitchen"


def test_generation_defaults():
    generation = Generation(shop_id="shop-1", source_url="https://x.example")

    assert generation.status == GenerationStatus.PENDING.value
    assert generation.progress == 0
    assert generation.error_message is None
    assert len(generation.id) == 32
    assert generation.to_dict()["createdAt"].endswith("Z")


@pytest.mark.parametrize("progress", [-1, 101])
def test_generation_progress_bounds(progress):
    with pytest.raises(ValidationError):
        Generation(shop_id="s", source_url="https://x.example", progress=progress)


def test_generation_context_hides_access_token():
    context = GenerationContext(
        generation_id="g",
        shop_id="s",
        shop_domain="demo.myshopify.com",
        access_token="shpat_secret",
        source_url="https://x.example",
    )

    assert "shpat_secret" not in repr(context)


def test_generate_request_url_validation():
    assert str(GenerateRequest(url="https://example.com").url) == "https://example.com/"

    with pytest.raises(ValidationError):
        GenerateRequest(url="not a url")
