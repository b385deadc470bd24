"""Data models for the site cloner pipeline."""

from site_cloner.models.schemas import (
    FailureKind,
    FooterStyle,
    GenerateRequest,
    GeneratedProduct,
    Generation,
    GenerationContext,
    GenerationProgress,
    GenerationResult,
    GenerationStatus,
    HeaderStyle,
    ScrapedData,
    ScrapedImage,
    ScrapedProduct,
    ShopContext,
    ShopRecord,
    StageFailure,
    ThemeColors,
    ThemeLayout,
    ThemeSettings,
    Typography,
)

__all__ = [
    "FailureKind",
    "FooterStyle",
    "GenerateRequest",
    "GeneratedProduct",
    "Generation",
    "GenerationContext",
    "GenerationProgress",
    "GenerationResult",
    "GenerationStatus",
    "HeaderStyle",
    "ScrapedData",
    "ScrapedImage",
    "ScrapedProduct",
    "ShopContext",
    "ShopRecord",
    "StageFailure",
    "ThemeColors",
    "ThemeLayout",
    "ThemeSettings",
    "Typography",
]
