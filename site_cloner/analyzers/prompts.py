"""
Prompt templates for theme and product generation.

Each prompt pairs a static system instruction, which pins the exact JSON
shape the model must return, with a user prompt projected from
``ScrapedData``. Builders are pure: identical input yields byte-identical
output, and unbounded source text is cut to a fixed prefix to bound token
cost.

Prompt Categories:
    1. Theme Generation - colors, typography, layout and brand identity
    2. Product Generation - product titles, copy, prices and tags
"""

from dataclasses import dataclass
from typing import Callable

from site_cloner.models.schemas import ScrapedData


# =============================================================================
# Prompt Configuration
# =============================================================================

@dataclass(frozen=True)
class PromptConfig:
    """Configuration for a prompt template."""
    name: str
    description: str
    recommended_temperature: float
    recommended_max_tokens: int

    def __repr__(self) -> str:
        return f"PromptConfig({self.name}, temp={self.recommended_temperature})"


THEME_BODY_TEXT_LIMIT = 1000
PRODUCT_BODY_TEXT_LIMIT = 1500
MAX_PROMPT_HEADINGS = 5
MAX_PROMPT_IMAGES = 5


# =============================================================================
# PROMPT 1: Theme Generation
# =============================================================================

THEME_GENERATION_CONFIG = PromptConfig(
    name="theme_generation",
    description="Derive Shopify theme settings from a scraped website",
    recommended_temperature=0.7,
    recommended_max_tokens=4096,
)

THEME_GENERATION_SYSTEM_PROMPT = """You are an expert web designer and Shopify theme specialist. Your task is to analyze scraped website data and generate Shopify theme settings that capture the essence of the original design.

You must respond with valid JSON matching this exact structure:
{
  "colors": {
    "primary": "#hexcode",
    "secondary": "#hexcode",
    "background": "#hexcode",
    "text": "#hexcode",
    "accent": "#hexcode"
  },
  "typography": {
    "headingFont": "Font Name",
    "bodyFont": "Font Name"
  },
  "layout": {
    "headerStyle": "logo_center" | "logo_left" | "menu_center",
    "footerStyle": "minimal" | "detailed" | "links_only"
  },
  "brandName": "Brand Name",
  "tagline": "Optional tagline"
}

Guidelines:
- Use colors extracted from the website, or infer complementary colors if needed
- For fonts, choose from Shopify-compatible fonts (e.g., "Assistant", "DM Sans", "Lato", "Montserrat", "Open Sans", "Poppins", "Roboto", "Work Sans")
- If the scraped fonts aren't Shopify-compatible, choose the closest match
- The brandName should be extracted from the title or headings
- Choose layout styles that match the original site's structure"""


def _heading_lines(scraped_data: ScrapedData) -> str:
    headings = scraped_data.headings[:MAX_PROMPT_HEADINGS]
    return "\n".join(headings) if headings else "None detected"


def _body_excerpt(scraped_data: ScrapedData, limit: int) -> str:
    if not scraped_data.body_text:
        return "No body text"
    return scraped_data.body_text[:limit]


def build_theme_prompt(scraped_data: ScrapedData) -> str:
    """
    Build the theme generation prompt.

    Uses at most the first five headings and the first 1000 characters of
    body text.
    """
    colors = ", ".join(scraped_data.colors) if scraped_data.colors else "None detected"
    fonts = ", ".join(scraped_data.fonts) if scraped_data.fonts else "None detected"
    logo_line = f"Logo URL: {scraped_data.logo_url}" if scraped_data.logo_url else ""

    return f"""Analyze this website data and generate Shopify theme settings:

URL: {scraped_data.url}
Title: {scraped_data.title or 'Unknown'}
Description: {scraped_data.description or 'No description'}

Detected Colors:
{colors}

Detected Fonts:
{fonts}

Main Headings:
{_heading_lines(scraped_data)}

{logo_line}

Body Text Sample:
{_body_excerpt(scraped_data, THEME_BODY_TEXT_LIMIT)}

Generate theme settings that capture this website's visual identity."""


# =============================================================================
# PROMPT 2: Product Generation
# =============================================================================

PRODUCT_GENERATION_CONFIG = PromptConfig(
    name="product_generation",
    description="Write Shopify product copy grounded in a scraped website",
    recommended_temperature=0.7,
    recommended_max_tokens=4096,
)

PRODUCT_GENERATION_SYSTEM_PROMPT = """You are an expert e-commerce copywriter. Your task is to generate Shopify product data based on scraped website content.

You must respond with valid JSON matching this exact structure:
{
  "products": [
    {
      "title": "Product Title",
      "description": "Product description with HTML formatting allowed",
      "price": 29.99,
      "tags": ["tag1", "tag2"],
      "vendor": "Brand Name",
      "productType": "Category"
    }
  ]
}

Guidelines:
- Generate 3-5 products based on the scraped content
- If actual products are found in the scraped data, use them as basis
- If no products found, infer products from the website's content and purpose
- Prices should be realistic for the product type
- Use appropriate tags for SEO and categorization
- Product descriptions should be engaging and informative"""


def build_product_prompt(scraped_data: ScrapedData) -> str:
    """
    Build the product generation prompt.

    Uses at most the first five headings, the first five images and the
    first 1500 characters of body text. Products detected on the source site
    are listed so the model can ground its output in them.
    """
    existing_products = ""
    if scraped_data.products:
        lines = [
            f"- {p.name}: {p.price or 'No price'} - {p.description or 'No description'}"
            for p in scraped_data.products
        ]
        existing_products = "\nExisting Products Found:\n" + "\n".join(lines)

    images = scraped_data.images[:MAX_PROMPT_IMAGES]
    if images:
        image_lines = "\n".join(f"- {img.alt or 'No alt'}: {img.src}" for img in images)
    else:
        image_lines = "None available"

    return f"""Generate Shopify products based on this website data:

URL: {scraped_data.url}
Title: {scraped_data.title or 'Unknown'}
Description: {scraped_data.description or 'No description'}

Main Headings:
{_heading_lines(scraped_data)}
{existing_products}

Body Text Sample:
{_body_excerpt(scraped_data, PRODUCT_BODY_TEXT_LIMIT)}

Available Images:
{image_lines}

Generate products that would fit this website's brand and purpose."""


# =============================================================================
# Prompt Registry
# =============================================================================

PROMPT_REGISTRY: dict[str, tuple[PromptConfig, str, Callable[[ScrapedData], str]]] = {
    THEME_GENERATION_CONFIG.name: (
        THEME_GENERATION_CONFIG,
        THEME_GENERATION_SYSTEM_PROMPT,
        build_theme_prompt,
    ),
    PRODUCT_GENERATION_CONFIG.name: (
        PRODUCT_GENERATION_CONFIG,
        PRODUCT_GENERATION_SYSTEM_PROMPT,
        build_product_prompt,
    ),
}


def get_prompt(name: str) -> tuple[PromptConfig, str, Callable[[ScrapedData], str]]:
    """
    Look up a prompt by name.

    Returns:
        Tuple of (config, system prompt, user prompt builder)

    Raises:
        KeyError: If no prompt is registered under ``name``
    """
    if name not in PROMPT_REGISTRY:
        available = ", ".join(sorted(PROMPT_REGISTRY))
        raise KeyError(f"Unknown prompt '{name}'. Available: {available}")
    return PROMPT_REGISTRY[name]
