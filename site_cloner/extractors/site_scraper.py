"""
Static HTML scrape extractor.

Fetches a source page with httpx and reduces it to a ``ScrapedData`` record
with BeautifulSoup: palette, font families, headings, images, product cards,
title/description/logo and a whitespace-collapsed body text sample. Every list
keeps document order and is capped to a fixed prefix.

No JavaScript is executed. Pages that look client-rendered are flagged with a
warning and scraped statically anyway.

Example:
    >>> async with SiteScraper(settings) as scraper:
    ...     data = await scraper.scrape("https://example.com")
    >>> validate_scraped_data(data, settings.min_body_text_chars)
    True
"""

from __future__ import annotations

import re
import time
from typing import Optional
from urllib.parse import unquote_plus, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup, Comment, Tag

from site_cloner.config.settings import Settings, get_settings
from site_cloner.models.schemas import ScrapedData, ScrapedImage, ScrapedProduct
from site_cloner.utils.logger import get_logger
from site_cloner.utils.retry import ScrapingError

logger = get_logger(__name__)


# =============================================================================
# Extraction Limits and Patterns
# =============================================================================

MAX_COLORS = 10
MAX_FONTS = 5
MAX_HEADINGS = 10
MAX_IMAGES = 20
MAX_PRODUCTS = 10
MAX_DESCRIPTION_CHARS = 200
MAX_BODY_TEXT_CHARS = 5000
MAX_FONT_NAME_CHARS = 50
MIN_IMAGE_DIMENSION = 50

COLOR_PATTERN = re.compile(
    r"#[0-9A-Fa-f]{6}|#[0-9A-Fa-f]{3}|rgba?\([^)]+\)|hsl\([^)]+\)"
)
FONT_FAMILY_PATTERN = re.compile(r"font-family:\s*['\"]?([^'\";,}]+)", re.IGNORECASE)
GOOGLE_FONT_FAMILY_PATTERN = re.compile(r"family=([^&:]+)")
PRICE_PATTERN = re.compile(r"[\d,.]+")
LEADING_INT_PATTERN = re.compile(r"^\s*(\d+)")
WHITESPACE_PATTERN = re.compile(r"\s+")

DEFAULT_COLORS = frozenset({
    "#000", "#000000", "#fff", "#ffffff", "rgb(0,0,0)", "rgb(255,255,255)",
})

GENERIC_FONTS = frozenset({
    "serif", "sans-serif", "monospace", "cursive", "fantasy",
    "system-ui", "inherit", "initial",
})

PRODUCT_SELECTORS = [
    ".product",
    ".product-card",
    ".product-item",
    "[data-product]",
    ".woocommerce-loop-product",
    ".shopify-product",
    ".grid__item",
    ".collection-product",
]

LOGO_SELECTORS = [
    ".logo img",
    "#logo img",
    '[class*="logo"] img',
    "header img",
    ".site-header img",
    'a[href="/"] img',
]

NON_VISIBLE_TAGS = frozenset({"script", "style", "noscript", "template"})


# =============================================================================
# Pure Extraction Helpers
# =============================================================================

def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def _resolve(base_url: str, href: str) -> str:
    return urljoin(base_url, href)


def _dimension(value: Optional[str]) -> int:
    """Leading integer of a width/height attribute, 0 when absent."""
    if not value:
        return 0
    match = LEADING_INT_PATTERN.match(value)
    return int(match.group(1)) if match else 0


def _visible_text(node: Optional[Tag]) -> str:
    if node is None:
        return ""
    chunks = [
        text
        for text in node.find_all(string=True)
        if not isinstance(text, Comment) and text.parent.name not in NON_VISIBLE_TAGS
    ]
    return WHITESPACE_PATTERN.sub(" ", " ".join(chunks)).strip()


def _text(node: Optional[Tag]) -> str:
    return node.get_text(" ", strip=True) if node is not None else ""


def extract_colors(html: str) -> list[str]:
    """
    Colour literals found anywhere in the raw document.

    Inline ``style`` attributes and ``<style>`` blocks are part of the raw
    document, so one pass covers them. Pure black and white are dropped.
    """
    colors: dict[str, None] = {}
    for match in COLOR_PATTERN.findall(html):
        color = match.lower()
        if WHITESPACE_PATTERN.sub("", color) in DEFAULT_COLORS:
            continue
        colors.setdefault(color)
    return list(colors)[:MAX_COLORS]


def extract_fonts(soup: BeautifulSoup, html: str) -> list[str]:
    fonts: dict[str, None] = {}

    for link in soup.select('link[href*="fonts.googleapis.com"]'):
        href = link.get("href") or ""
        for family_param in GOOGLE_FONT_FAMILY_PATTERN.findall(href):
            for family in family_param.split("|"):
                fonts.setdefault(unquote_plus(family))

    for match in FONT_FAMILY_PATTERN.findall(html):
        font = match.strip()
        if font and "var(" not in font and len(font) < MAX_FONT_NAME_CHARS:
            fonts.setdefault(font)

    return [f for f in fonts if f.lower() not in GENERIC_FONTS][:MAX_FONTS]


def extract_headings(soup: BeautifulSoup) -> list[str]:
    headings = []
    for node in soup.find_all(["h1", "h2", "h3"]):
        text = _text(node)
        if 2 < len(text) < 200:
            headings.append(text)
    return headings[:MAX_HEADINGS]


def extract_images(soup: BeautifulSoup, base_url: str) -> list[ScrapedImage]:
    """Absolute, de-duplicated image sources; icons and tracking pixels skipped."""
    images: list[ScrapedImage] = []
    seen: set[str] = set()

    for img in soup.find_all("img"):
        src = img.get("src") or img.get("data-src") or img.get("data-lazy-src")
        if not src:
            continue

        absolute_src = _resolve(base_url, src)
        if absolute_src in seen:
            continue
        seen.add(absolute_src)

        width = _dimension(img.get("width"))
        height = _dimension(img.get("height"))
        if 0 < width < MIN_IMAGE_DIMENSION or 0 < height < MIN_IMAGE_DIMENSION:
            continue

        images.append(ScrapedImage(src=absolute_src, alt=img.get("alt")))

    return images[:MAX_IMAGES]


def extract_products(soup: BeautifulSoup, base_url: str) -> list[ScrapedProduct]:
    products: list[ScrapedProduct] = []

    for card in soup.select(", ".join(PRODUCT_SELECTORS))[:MAX_PRODUCTS]:
        name = _text(card.select_one("h2, h3, h4, .product-title, .product-name"))
        if not name:
            name = _text(card.find("a"))
        if len(name) < 2:
            continue

        price_text = _text(card.select_one('.price, .product-price, [class*="price"]'))
        price_match = PRICE_PATTERN.search(price_text)

        description = _text(card.select_one(".description, .product-description, p"))
        description = description[:MAX_DESCRIPTION_CHARS]

        img = card.find("img")
        img_src = (img.get("src") or img.get("data-src")) if img else None

        products.append(ScrapedProduct(
            name=name,
            price=price_match.group(0) if price_match else None,
            description=description or None,
            image_url=_resolve(base_url, img_src) if img_src else None,
        ))

    return products


def extract_logo(soup: BeautifulSoup, base_url: str) -> Optional[str]:
    for selector in LOGO_SELECTORS:
        img = soup.select_one(selector)
        if img is None:
            continue
        src = img.get("src") or img.get("data-src")
        if src:
            return _resolve(base_url, src)

    og_image = soup.find("meta", attrs={"property": "og:image"})
    if og_image and og_image.get("content"):
        return _resolve(base_url, og_image["content"])

    return None


def _meta_content(soup: BeautifulSoup, **attrs: str) -> Optional[str]:
    tag = soup.find("meta", attrs=attrs)
    return tag.get("content") if tag else None


def extract_scraped_data(html: str, url: str, soup: Optional[BeautifulSoup] = None) -> ScrapedData:
    """
    Reduce an HTML document to ``ScrapedData``.

    Args:
        html: Raw document text
        url: Source URL, used to absolutize image and logo links
        soup: Pre-parsed document, when the caller already has one

    Returns:
        The structured reduction; never raises on odd markup
    """
    soup = soup if soup is not None else make_soup(html)

    title = _text(soup.title) or _text(soup.find("h1"))
    description = (
        _meta_content(soup, name="description")
        or _meta_content(soup, property="og:description")
        or _text(soup.find("p"))[:MAX_DESCRIPTION_CHARS]
    )
    body_text = _visible_text(soup.body)[:MAX_BODY_TEXT_CHARS]

    return ScrapedData(
        url=url,
        title=title or None,
        description=description or None,
        colors=extract_colors(html),
        fonts=extract_fonts(soup, html),
        headings=extract_headings(soup),
        body_text=body_text or None,
        images=extract_images(soup, url),
        products=extract_products(soup, url),
        logo_url=extract_logo(soup, url),
    )


def needs_dynamic_scraping(soup: BeautifulSoup) -> bool:
    """Heuristic: does the page look rendered client-side?"""
    body_text = _visible_text(soup.body)

    if len(body_text) < 100:
        return True

    if soup.select("#root, #app, #__next") and len(body_text) < 500:
        return True

    return bool(soup.select('[class*="loading"], [class*="spinner"]'))


def validate_scraped_data(data: ScrapedData, min_body_text_chars: int = 100) -> bool:
    """
    Minimum-content sufficiency gate.

    Requires a content signal (title, description, headings, or a body text
    sample of at least ``min_body_text_chars``) and a style signal (colors,
    fonts or images).
    """
    has_body_text = len(data.body_text or "") >= min_body_text_chars
    if not (data.title or data.description or data.headings or has_body_text):
        return False

    return bool(data.colors or data.fonts or data.images)


def normalize_source_url(url: str) -> str:
    """
    Raises:
        ScrapingError: If ``url`` is not an absolute http(s) URL
    """
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ScrapingError("Invalid URL format", url)
    return parsed.geturl()


# =============================================================================
# Scraper
# =============================================================================

class SiteScraper:
    """
    Fetches and extracts a source page.

    An httpx client may be injected (tests use ``httpx.MockTransport``); an
    injected client is left open on ``close()``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "SiteScraper":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def request_headers(self) -> dict[str, str]:
        return {
            "User-Agent": self.settings.scrape_user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        }

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.settings.scrape_timeout_seconds,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_html(self, url: str) -> str:
        """
        Raises:
            ScrapingError: On transport failure or a non-2xx response
        """
        client = self._get_client()
        try:
            response = await client.get(url, headers=self.request_headers)
        except httpx.TimeoutException as e:
            raise ScrapingError("Request timed out", url) from e
        except httpx.HTTPError as e:
            raise ScrapingError(str(e) or type(e).__name__, url) from e

        if not response.is_success:
            raise ScrapingError(f"HTTP {response.status_code}", url)

        return response.text

    async def scrape(self, url: str) -> ScrapedData:
        """
        Fetch ``url`` and extract its ``ScrapedData``.

        Raises:
            ScrapingError: On an invalid URL or a failed fetch
        """
        normalized_url = normalize_source_url(url)
        start_time = time.monotonic()

        html = await self.fetch_html(normalized_url)
        soup = make_soup(html)

        if needs_dynamic_scraping(soup):
            logger.warning(
                "Page may require JavaScript rendering; using static scrape",
                url=normalized_url,
            )

        data = extract_scraped_data(html, normalized_url, soup=soup)

        logger.info(
            "Scrape completed",
            url=normalized_url,
            elapsed_seconds=f"{time.monotonic() - start_time:.2f}",
            colors=len(data.colors),
            fonts=len(data.fonts),
            headings=len(data.headings),
            images=len(data.images),
            products=len(data.products),
        )
        return data


async def scrape_url(
    url: str,
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> ScrapedData:
    """Convenience one-shot scrape."""
    async with SiteScraper(settings, client=client) as scraper:
        return await scraper.scrape(url)
