"""
Tolerant parsing of model output into typed theme and product records.

Model output is treated as untrusted: JSON may be wrapped in prose, fields
may carry the wrong type, enum values may be invented. Decoding happens in
two phases:

    1. Structural validation into strict "raw" models that only check
       presence and JSON type of each field.
    2. A total normalization pass (colour resolution, enum clamping, price
       scrubbing) that never fails.

The theme path is all-or-nothing. The products path salvages every element
that survives phase 1 and fails only when none do.
"""

import json
import math
import re
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from site_cloner.models.schemas import (
    FooterStyle,
    GeneratedProduct,
    HeaderStyle,
    ThemeColors,
    ThemeLayout,
    ThemeSettings,
    Typography,
)
from site_cloner.utils.logger import get_logger
from site_cloner.utils.retry import AIGenerationError

logger = get_logger(__name__)


DEFAULT_COLOR = "#000000"
DEFAULT_PRICE = 9.99

NAMED_COLORS: dict[str, str] = {
    "black": "#000000",
    "white": "#ffffff",
    "red": "#ff0000",
    "green": "#00ff00",
    "blue": "#0000ff",
    "yellow": "#ffff00",
    "orange": "#ffa500",
    "purple": "#800080",
    "pink": "#ffc0cb",
    "gray": "#808080",
    "grey": "#808080",
}

HEX6_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")
HEX3_PATTERN = re.compile(r"^#[0-9a-fA-F]{3}$")
RGB_PATTERN = re.compile(
    r"rgba?\(\s*(\d+(?:\.\d+)?)\s*,\s*(\d+(?:\.\d+)?)\s*,\s*(\d+(?:\.\d+)?)",
    re.IGNORECASE,
)
PRICE_SCRUB_PATTERN = re.compile(r"[^0-9.]")
LEADING_NUMBER_PATTERN = re.compile(r"\d*\.?\d+")


# =============================================================================
# Phase 1: Raw Structural Models
# =============================================================================

class _RawModel(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore", populate_by_name=True)


class RawColors(_RawModel):
    primary: str
    secondary: str
    background: str
    text: str
    accent: str


class RawTypography(_RawModel):
    heading_font: str = Field(..., alias="headingFont")
    body_font: str = Field(..., alias="bodyFont")


class RawLayout(_RawModel):
    header_style: str = Field(..., alias="headerStyle")
    footer_style: str = Field(..., alias="footerStyle")


class RawThemeResponse(_RawModel):
    colors: RawColors
    typography: RawTypography
    layout: RawLayout
    brand_name: str = Field(..., alias="brandName", min_length=1)
    tagline: Optional[str] = None


class RawProduct(_RawModel):
    title: str = Field(..., min_length=1)
    description: str
    price: Union[int, float, str]
    tags: Optional[list[str]] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    vendor: Optional[str] = None
    product_type: Optional[str] = Field(default=None, alias="productType")


# =============================================================================
# Phase 2: Total Normalizers
# =============================================================================

def _channel_to_hex(value: str) -> str:
    channel = float(value)
    if not math.isfinite(channel):
        channel = 255.0
    channel = min(255, max(0, round(channel)))
    return f"{channel:02x}"


def normalize_color(color: Any) -> str:
    """
    Resolve any colour notation to lowercase ``#rrggbb``.

    Resolution order: 6-digit hex, 3-digit hex, ``rgb()``/``rgba()``, named
    colour. Anything else resolves to ``#000000``; this function never raises.

    Example:
        >>> normalize_color("#ABC")
        '#aabbcc'
        >>> normalize_color("rgb(0, 128, 255)")
        '#0080ff'
    """
    if not isinstance(color, str):
        return DEFAULT_COLOR

    color = color.strip()

    if HEX6_PATTERN.match(color):
        return color.lower()

    if HEX3_PATTERN.match(color):
        r, g, b = color[1], color[2], color[3]
        return f"#{r}{r}{g}{g}{b}{b}".lower()

    rgb_match = RGB_PATTERN.search(color)
    if rgb_match:
        return "#" + "".join(_channel_to_hex(c) for c in rgb_match.groups())

    return NAMED_COLORS.get(color.lower(), DEFAULT_COLOR)


def clamp_header_style(value: str) -> str:
    valid = {style.value for style in HeaderStyle}
    return value if value in valid else HeaderStyle.LOGO_LEFT.value


def clamp_footer_style(value: str) -> str:
    valid = {style.value for style in FooterStyle}
    return value if value in valid else FooterStyle.MINIMAL.value


def normalize_price(value: Union[int, float, str]) -> float:
    """
    Coerce a model-supplied price into a float.

    Numbers pass through. Strings are stripped of everything except digits
    and dots, then the leading number is parsed, so stray trailing dots are
    ignored. A remainder with no number yields 9.99.
    """
    if not isinstance(value, str):
        return float(value)
    match = LEADING_NUMBER_PATTERN.match(PRICE_SCRUB_PATTERN.sub("", value))
    if not match:
        return DEFAULT_PRICE
    return float(match.group())


# =============================================================================
# JSON Extraction
# =============================================================================

def extract_json_block(text: str, allow_array: bool = False) -> str:
    """
    Cut the JSON payload out of free-form model text.

    Greedy: spans from the first ``{`` to the last ``}``. With
    ``allow_array``, a top-level array is taken instead when its ``[``
    appears before the first ``{``.

    Raises:
        AIGenerationError: If no candidate block exists
    """
    obj_start = text.find("{")
    if allow_array:
        arr_start = text.find("[")
        if arr_start != -1 and (obj_start == -1 or arr_start < obj_start):
            arr_end = text.rfind("]")
            if arr_end > arr_start:
                return text[arr_start:arr_end + 1]

    obj_end = text.rfind("}")
    if obj_start == -1 or obj_end < obj_start:
        raise AIGenerationError("No JSON found in response")
    return text[obj_start:obj_end + 1]


def _load_json(text: str, allow_array: bool, label: str) -> Any:
    try:
        block = extract_json_block(text, allow_array=allow_array)
    except AIGenerationError:
        raise AIGenerationError(f"No JSON found in {label} response") from None
    try:
        return json.loads(block)
    except json.JSONDecodeError as e:
        error = e

    # a bracket in the surrounding prose can open the array candidate early
    if allow_array and block.startswith("["):
        try:
            return json.loads(extract_json_block(text))
        except (AIGenerationError, json.JSONDecodeError):
            pass
    raise AIGenerationError(f"Failed to parse {label} response: {error}") from error


def _summarize_errors(error: ValidationError, limit: int = 3) -> str:
    parts = [
        f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
        for err in error.errors()[:limit]
    ]
    return "; ".join(parts)


# =============================================================================
# Public Parsers
# =============================================================================

def parse_theme_response(response: str) -> ThemeSettings:
    """
    Parse a theme completion into ``ThemeSettings``.

    Raises:
        AIGenerationError: If no JSON is present, the JSON is malformed, or
            a required field is missing or of the wrong type
    """
    data = _load_json(response, allow_array=False, label="theme")

    try:
        raw = RawThemeResponse.model_validate(data)
    except ValidationError as e:
        raise AIGenerationError(
            f"Failed to parse theme response: {_summarize_errors(e)}"
        ) from e

    return ThemeSettings(
        colors=ThemeColors(
            primary=normalize_color(raw.colors.primary),
            secondary=normalize_color(raw.colors.secondary),
            background=normalize_color(raw.colors.background),
            text=normalize_color(raw.colors.text),
            accent=normalize_color(raw.colors.accent),
        ),
        typography=Typography(
            heading_font=raw.typography.heading_font,
            body_font=raw.typography.body_font,
        ),
        layout=ThemeLayout(
            header_style=clamp_header_style(raw.layout.header_style),
            footer_style=clamp_footer_style(raw.layout.footer_style),
        ),
        brand_name=raw.brand_name,
        tagline=raw.tagline,
    )


def _normalize_product(raw: RawProduct) -> GeneratedProduct:
    return GeneratedProduct(
        title=raw.title,
        description=raw.description,
        price=normalize_price(raw.price),
        tags=raw.tags or [],
        image_url=raw.image_url,
        vendor=raw.vendor,
        product_type=raw.product_type,
    )


def parse_products_response(response: str) -> list[GeneratedProduct]:
    """
    Parse a product completion into validated products.

    Accepts either a bare array or an object with a ``products`` array.
    Elements that fail validation are logged and dropped.

    Raises:
        AIGenerationError: If the JSON cannot be found or parsed, the top
            level has the wrong shape, or no element survives validation
    """
    data = _load_json(response, allow_array=True, label="products")

    if isinstance(data, list):
        items = data
    elif isinstance(data, dict):
        items = data.get("products")
    else:
        items = None

    if not isinstance(items, list):
        raise AIGenerationError("Products must be an array")

    products: list[GeneratedProduct] = []
    for index, item in enumerate(items):
        try:
            raw = RawProduct.model_validate(item)
        except ValidationError as e:
            logger.warning(
                "Skipping invalid product",
                index=index,
                errors=_summarize_errors(e),
            )
            continue
        products.append(_normalize_product(raw))

    if not products:
        raise AIGenerationError("No valid products in response")

    logger.debug("Parsed products", received=len(items), kept=len(products))
    return products


def validate_ai_response(theme: ThemeSettings, products: list[GeneratedProduct]) -> bool:
    """
    Final content-quality gate before a generation is committed.

    Requires the primary, secondary and background colours, both fonts, at
    least one product, and a non-empty title with positive price on every
    product.
    """
    colors = theme.colors
    if not colors.primary or not colors.secondary or not colors.background:
        return False

    if not theme.typography.heading_font or not theme.typography.body_font:
        return False

    if not products:
        return False

    return all(product.title and product.price > 0 for product in products)
