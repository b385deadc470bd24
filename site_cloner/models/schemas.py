"""
Pydantic models and schemas for the site cloner pipeline.

This module defines all data structures used throughout the pipeline,
ensuring type safety, validation, and serialization consistency. Records that
are persisted or exchanged with the UI serialize with camelCase keys
(``brandName``, ``headingFont``, ``imageUrl``) and accept either spelling on
input.

Models:
    - ScrapedData: Scrape extractor output
    - ThemeSettings: Normalized theme derived from the model response
    - GeneratedProduct: Normalized product copy derived from the model response
    - Generation: Persisted status-tracked generation record
    - GenerationContext / GenerationResult: Pipeline entry/exit contracts
    - GenerationProgress: Status polling payload
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Self
from uuid import uuid4

from pydantic import (
    BaseModel as PydanticBaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    field_serializer,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# Base Configuration
# =============================================================================

class BaseModel(PydanticBaseModel):
    """Base model with common configuration for all schemas."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_json(self, **kwargs) -> str:
        """Serialize model to camelCase JSON string."""
        return self.model_dump_json(by_alias=True, **kwargs)

    def to_dict(self, **kwargs) -> dict[str, Any]:
        """Serialize model to camelCase dictionary."""
        return self.model_dump(by_alias=True, **kwargs)

    @classmethod
    def from_json(cls, json_str: str) -> Self:
        """Deserialize model from JSON string."""
        return cls.model_validate_json(json_str)


class TimestampMixin(BaseModel):
    """Mixin for models that need timestamp tracking."""

    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="Record creation timestamp",
    )
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="Last update timestamp",
    )

    @field_serializer("created_at", "updated_at")
    def serialize_datetime(self, value: Optional[datetime]) -> Optional[str]:
        """Serialize datetime to ISO format string."""
        if not value:
            return None
        if value.tzinfo is None:
            return value.isoformat() + "Z"
        return value.isoformat()


# =============================================================================
# Enums
# =============================================================================

class GenerationStatus(str, Enum):
    """Stage of a generation; progression is linear, never cyclic."""
    PENDING = "pending"
    SCRAPING = "scraping"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


class HeaderStyle(str, Enum):
    LOGO_CENTER = "logo_center"
    LOGO_LEFT = "logo_left"
    MENU_CENTER = "menu_center"


class FooterStyle(str, Enum):
    MINIMAL = "minimal"
    DETAILED = "detailed"
    LINKS_ONLY = "links_only"


class FailureKind(str, Enum):
    """Classification of a stage failure."""
    SCRAPING = "scraping"
    AI_GENERATION = "ai_generation"
    PERSISTENCE = "persistence"
    UNEXPECTED = "unexpected"


# =============================================================================
# Scrape Models
# =============================================================================

class ScrapedImage(BaseModel):
    src: str
    alt: Optional[str] = None


class ScrapedProduct(BaseModel):
    name: str
    price: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None


class ScrapedData(BaseModel):
    """
    Structured reduction of a source web page.

    List fields preserve the order in which the extractor encountered
    values; downstream consumers only ever look at a prefix.
    """

    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    colors: list[str] = Field(default_factory=list)
    fonts: list[str] = Field(default_factory=list)
    headings: list[str] = Field(default_factory=list)
    body_text: Optional[str] = None
    images: list[ScrapedImage] = Field(default_factory=list)
    products: list[ScrapedProduct] = Field(default_factory=list)
    logo_url: Optional[str] = None


# =============================================================================
# Generated Content Models
# =============================================================================

HEX_COLOR_PATTERN = r"^#[0-9a-f]{6}$"


class ThemeColors(BaseModel):
    primary: str = Field(..., pattern=HEX_COLOR_PATTERN)
    secondary: str = Field(..., pattern=HEX_COLOR_PATTERN)
    background: str = Field(..., pattern=HEX_COLOR_PATTERN)
    text: str = Field(..., pattern=HEX_COLOR_PATTERN)
    accent: str = Field(..., pattern=HEX_COLOR_PATTERN)


class Typography(BaseModel):
    heading_font: str
    body_font: str


class ThemeLayout(BaseModel):
    header_style: HeaderStyle = HeaderStyle.LOGO_LEFT
    footer_style: FooterStyle = FooterStyle.MINIMAL


class ThemeSettings(BaseModel):
    """
    Theme styling for the cloned store.

    Example:
        >>> theme.colors.primary
        '#1a2b3c'
        >>> theme.layout.header_style
        'logo_left'
    """

    colors: ThemeColors
    typography: Typography
    layout: ThemeLayout = Field(default_factory=ThemeLayout)
    brand_name: str = Field(..., min_length=1)
    tagline: Optional[str] = None


class GeneratedProduct(BaseModel):
    """Product copy ready for merchant review."""

    title: str = Field(..., min_length=1)
    description: str = ""
    price: float
    tags: list[str] = Field(default_factory=list)
    image_url: Optional[str] = None
    vendor: Optional[str] = None
    product_type: Optional[str] = None


# =============================================================================
# Generation Records
# =============================================================================

class Generation(TimestampMixin):
    """
    Persisted generation record.

    Created ``pending`` by the caller and mutated only by the orchestrator's
    stage-transition writes. ``theme_id``/``theme_name`` belong to the
    downstream import step.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    shop_id: str
    source_url: str
    status: GenerationStatus = GenerationStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    error_message: Optional[str] = None
    theme_id: Optional[str] = None
    theme_name: Optional[str] = None
    scraped_data: Optional[str] = Field(
        default=None,
        description="Raw JSON snapshot of the scrape, kept for auditing",
    )
    ai_response: Optional[str] = Field(
        default=None,
        description="Raw JSON snapshot of the parsed model output",
    )


class GenerationContext(BaseModel):
    """Input to a pipeline run. ``access_token`` is only consumed by the import step."""

    generation_id: str
    shop_id: str
    shop_domain: str
    access_token: str = Field(..., repr=False)
    source_url: str


class GenerationResult(BaseModel):
    success: bool
    products_created: Optional[int] = None
    error: Optional[str] = None


class GenerationProgress(BaseModel):
    id: str
    status: GenerationStatus
    progress: int
    error_message: Optional[str] = None
    theme_id: Optional[str] = None
    theme_name: Optional[str] = None
    products_created: int = 0


class StageFailure(BaseModel):
    """Tagged failure outcome of a single pipeline stage."""

    stage: str
    kind: FailureKind
    message: str


# =============================================================================
# Shop / Request Models
# =============================================================================

class ShopRecord(BaseModel):
    id: str
    domain: str
    access_token: Optional[str] = Field(
        default=None,
        repr=False,
        description="Encrypted offline access token",
    )
    uninstalled_at: Optional[datetime] = None


class ShopContext(BaseModel):
    shop_id: str
    access_token: str = Field(..., repr=False)


class GenerateRequest(BaseModel):
    url: HttpUrl


__all__ = [
    "BaseModel",
    "TimestampMixin",
    "GenerationStatus",
    "HeaderStyle",
    "FooterStyle",
    "FailureKind",
    "ScrapedImage",
    "ScrapedProduct",
    "ScrapedData",
    "ThemeColors",
    "Typography",
    "ThemeLayout",
    "ThemeSettings",
    "GeneratedProduct",
    "Generation",
    "GenerationContext",
    "GenerationResult",
    "GenerationProgress",
    "StageFailure",
    "ShopRecord",
    "ShopContext",
    "GenerateRequest",
]
