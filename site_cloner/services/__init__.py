"""
Services package for the site cloner pipeline.

Services:
    - CompletionClient: retrying, deadline-bounded completion calls
    - GenerationStore: generation and shop persistence
    - ValidationService: request validation and sanitization
"""

from site_cloner.services.generation_store import (
    GenerationStore,
    InMemoryGenerationStore,
    InMemoryShopStore,
    JsonFileGenerationStore,
    ShopStore,
    get_generation_progress,
    get_shop_context,
)
from site_cloner.services.llm_service import (
    AnthropicTransport,
    CompletionClient,
    CompletionRequest,
    CompletionTransport,
    create_completion_client,
)
from site_cloner.services.validation_service import ValidationService

__all__ = [
    # Completion
    "CompletionClient",
    "CompletionRequest",
    "CompletionTransport",
    "AnthropicTransport",
    "create_completion_client",
    # Persistence
    "GenerationStore",
    "InMemoryGenerationStore",
    "JsonFileGenerationStore",
    "ShopStore",
    "InMemoryShopStore",
    "get_shop_context",
    "get_generation_progress",
    # Validation
    "ValidationService",
]
