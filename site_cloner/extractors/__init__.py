"""Extractors module: source-site scraping."""

from site_cloner.extractors.site_scraper import (
    SiteScraper,
    extract_scraped_data,
    needs_dynamic_scraping,
    normalize_source_url,
    scrape_url,
    validate_scraped_data,
)

__all__ = [
    "SiteScraper",
    "extract_scraped_data",
    "needs_dynamic_scraping",
    "normalize_source_url",
    "scrape_url",
    "validate_scraped_data",
]
