"""Analyzers module: prompt construction and model-output parsing."""

from site_cloner.analyzers.prompts import (
    PRODUCT_GENERATION_CONFIG,
    PRODUCT_GENERATION_SYSTEM_PROMPT,
    PROMPT_REGISTRY,
    THEME_GENERATION_CONFIG,
    THEME_GENERATION_SYSTEM_PROMPT,
    PromptConfig,
    build_product_prompt,
    build_theme_prompt,
    get_prompt,
)
from site_cloner.analyzers.response_parser import (
    clamp_footer_style,
    clamp_header_style,
    extract_json_block,
    normalize_color,
    normalize_price,
    parse_products_response,
    parse_theme_response,
    validate_ai_response,
)

__all__ = [
    # Prompts
    "PromptConfig",
    "THEME_GENERATION_CONFIG",
    "THEME_GENERATION_SYSTEM_PROMPT",
    "PRODUCT_GENERATION_CONFIG",
    "PRODUCT_GENERATION_SYSTEM_PROMPT",
    "PROMPT_REGISTRY",
    "get_prompt",
    "build_theme_prompt",
    "build_product_prompt",
    # Parsing
    "extract_json_block",
    "normalize_color",
    "normalize_price",
    "clamp_header_style",
    "clamp_footer_style",
    "parse_theme_response",
    "parse_products_response",
    "validate_ai_response",
]
