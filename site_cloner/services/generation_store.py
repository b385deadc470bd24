"""
Persistence for generation and shop records.

The pipeline only ever creates, updates and reads generation rows by id;
there is no listing and no deletion. Every write is scoped to a single
generation id, so concurrent generations never contend on shared state.

Stores:
    - InMemoryGenerationStore: process-local dict, used by tests and the worker pool
    - JsonFileGenerationStore: one ``<id>.json`` document per generation, used by the CLI
    - InMemoryShopStore: installed-shop lookup by domain
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from site_cloner.models.schemas import (
    GeneratedProduct,
    Generation,
    GenerationProgress,
    GenerationStatus,
    ShopContext,
    ShopRecord,
)
from site_cloner.utils.logger import get_logger
from site_cloner.utils.retry import NotFoundError

logger = get_logger(__name__)

GENERATION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def _apply_changes(generation: Generation, changes: dict[str, Any]) -> Generation:
    unknown = set(changes) - set(Generation.model_fields)
    if unknown:
        raise ValueError(f"Unknown generation fields: {', '.join(sorted(unknown))}")

    data = generation.model_dump()
    data.update(changes)
    data["updated_at"] = datetime.utcnow()
    return Generation.model_validate(data)


# =============================================================================
# Generation Store
# =============================================================================

class GenerationStore(ABC):
    """Async persistence contract for ``Generation`` records."""

    @abstractmethod
    async def create_generation(self, shop_id: str, source_url: str) -> Generation:
        """Insert a new ``pending`` generation at progress 0."""

    @abstractmethod
    async def update_generation(self, generation_id: str, **changes: Any) -> Generation:
        """
        Apply field changes and bump ``updated_at``.

        Raises:
            NotFoundError: If the generation does not exist
            ValueError: If a change names an unknown field
        """

    @abstractmethod
    async def get_generation(self, generation_id: str) -> Optional[Generation]:
        ...

    @abstractmethod
    async def count_products(self, generation_id: str) -> int:
        """Number of product rows the import step attached to this generation."""


class InMemoryGenerationStore(GenerationStore):
    """
    Dict-backed store.

    ``writes`` records every successful update as ``(generation_id, changes)``
    in call order.
    """

    def __init__(self):
        self._generations: dict[str, Generation] = {}
        self._products: dict[str, list[GeneratedProduct]] = {}
        self.writes: list[tuple[str, dict[str, Any]]] = []

    async def create_generation(self, shop_id: str, source_url: str) -> Generation:
        generation = Generation(shop_id=shop_id, source_url=source_url)
        self._generations[generation.id] = generation
        return generation

    async def update_generation(self, generation_id: str, **changes: Any) -> Generation:
        generation = self._generations.get(generation_id)
        if generation is None:
            raise NotFoundError("Generation")

        updated = _apply_changes(generation, changes)
        self._generations[generation_id] = updated
        self.writes.append((generation_id, dict(changes)))
        return updated

    async def get_generation(self, generation_id: str) -> Optional[Generation]:
        return self._generations.get(generation_id)

    async def count_products(self, generation_id: str) -> int:
        return len(self._products.get(generation_id, []))

    async def add_product(self, generation_id: str, product: GeneratedProduct) -> None:
        """Attach an imported product row."""
        if generation_id not in self._generations:
            raise NotFoundError("Generation")
        self._products.setdefault(generation_id, []).append(product)


class JsonFileGenerationStore(GenerationStore):
    """
    One camelCase JSON document per generation under ``directory``.

    Imported products, when present, live beside it in
    ``<id>.products.json`` as a JSON array.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, generation_id: str, suffix: str = ".json") -> Path:
        if not GENERATION_ID_PATTERN.match(generation_id):
            raise NotFoundError("Generation")
        return self.directory / f"{generation_id}{suffix}"

    def _write(self, generation: Generation) -> None:
        self._path(generation.id).write_text(generation.to_json(indent=2), encoding="utf-8")

    async def create_generation(self, shop_id: str, source_url: str) -> Generation:
        generation = Generation(shop_id=shop_id, source_url=source_url)
        self._write(generation)
        logger.debug("Generation created", generation_id=generation.id, path=str(self.directory))
        return generation

    async def update_generation(self, generation_id: str, **changes: Any) -> Generation:
        generation = await self.get_generation(generation_id)
        if generation is None:
            raise NotFoundError("Generation")

        updated = _apply_changes(generation, changes)
        self._write(updated)
        return updated

    async def get_generation(self, generation_id: str) -> Optional[Generation]:
        path = self._path(generation_id)
        if not path.exists():
            return None
        return Generation.from_json(path.read_text(encoding="utf-8"))

    async def count_products(self, generation_id: str) -> int:
        path = self._path(generation_id, ".products.json")
        if not path.exists():
            return 0
        return len(json.loads(path.read_text(encoding="utf-8")))


# =============================================================================
# Shop Store
# =============================================================================

class ShopStore(ABC):

    @abstractmethod
    async def get_shop(self, domain: str) -> Optional[ShopRecord]:
        ...


class InMemoryShopStore(ShopStore):

    def __init__(self, shops: Optional[list[ShopRecord]] = None):
        self._shops = {shop.domain: shop for shop in shops or []}

    async def get_shop(self, domain: str) -> Optional[ShopRecord]:
        return self._shops.get(domain)

    def add_shop(self, shop: ShopRecord) -> None:
        self._shops[shop.domain] = shop


# =============================================================================
# Lookups
# =============================================================================

async def get_shop_context(
    shop_domain: str,
    shops: ShopStore,
    decrypt: Callable[[str], str],
) -> Optional[ShopContext]:
    """
    Resolve an installed shop's id and decrypted access token.

    Returns None, never raises, when the shop is unknown, uninstalled, has no
    stored token, or its token fails to decrypt. Callers treat None as "not
    authorized".
    """
    shop = await shops.get_shop(shop_domain)
    if shop is None or shop.uninstalled_at is not None or not shop.access_token:
        return None

    try:
        access_token = decrypt(shop.access_token)
    except Exception as e:
        logger.warning(
            "Failed to decrypt shop access token",
            shop_domain=shop_domain,
            error_type=type(e).__name__,
        )
        return None

    return ShopContext(shop_id=shop.id, access_token=access_token)


async def get_generation_progress(store: GenerationStore, generation_id: str) -> GenerationProgress:
    """
    Status polling view of a generation.

    Raises:
        NotFoundError: If the generation does not exist
    """
    generation = await store.get_generation(generation_id)
    if generation is None:
        raise NotFoundError("Generation")

    return GenerationProgress(
        id=generation.id,
        status=GenerationStatus(generation.status),
        progress=generation.progress,
        error_message=generation.error_message,
        theme_id=generation.theme_id,
        theme_name=generation.theme_name,
        products_created=await store.count_products(generation.id),
    )
