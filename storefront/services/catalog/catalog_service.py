"""Read-through cached catalog reads and write-invalidate catalog mutations."""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable
from typing import Any

from storefront.errors import ProductNotFoundError
from storefront.models.product import (
    Product,
    ProductCreate,
    ProductQuery,
    ProductUpdate,
)
from storefront.services.cache.cache_client import CacheClient, make_key_digest
from storefront.services.catalog.product_store import ProductStore

logger = logging.getLogger(__name__)


def _serialize(products: list[Product]) -> list[dict[str, Any]]:
    return [product.model_dump(mode="json") for product in products]


class CatalogService:
    """Customer-facing catalog reads backed by the product store.

    Every mutation invalidates the whole cache namespace. A read that loaded
    from the database before the invalidation writes its result under the old
    generation, so reads after the invalidation never see it.
    """

    def __init__(self, store: ProductStore, cache: CacheClient):
        self.store = store
        self.cache = cache

    async def _read_through(
        self, scope: str, part: str, load: Callable[[], Awaitable[Any]]
    ) -> Any:
        key = await self.cache.versioned_key(scope, part)
        if key is not None:
            cached = await self.cache.get(key)
            if cached is not None:
                return cached

        value = await load()
        if key is not None:
            await self.cache.set(key, value)
        return value

    async def list_products(self, query: ProductQuery) -> dict[str, Any]:
        async def load() -> dict[str, Any]:
            products, total = await self.store.list_products(query)
            return {
                "products": _serialize(products),
                "pagination": {
                    "current": query.page,
                    "pages": math.ceil(total / query.limit) if total else 0,
                    "total": total,
                },
            }

        digest = make_key_digest(query.model_dump(mode="json"))
        return await self._read_through("products", digest, load)

    async def get_product(self, product_id: str) -> dict[str, Any]:
        async def load() -> dict[str, Any]:
            product = await self.store.get(product_id)
            if product is None or not product.active:
                raise ProductNotFoundError(product_id)
            return product.model_dump(mode="json")

        return await self._read_through("product", product_id, load)

    async def list_categories(self) -> list[str]:
        return await self._read_through("categories", "all", self.store.list_categories)

    async def list_featured(self, limit: int = 10) -> list[dict[str, Any]]:
        async def load() -> list[dict[str, Any]]:
            return _serialize(await self.store.list_featured(limit))

        return await self._read_through("featured", str(limit), load)

    async def create_product(self, payload: ProductCreate) -> Product:
        product = await self.store.create(payload)
        await self.invalidate()
        return product

    async def update_product(self, product_id: str, payload: ProductUpdate) -> Product:
        product = await self.store.update(product_id, payload)
        if product is None:
            raise ProductNotFoundError(product_id)
        await self.invalidate()
        return product

    async def set_product_active(self, product_id: str, active: bool) -> Product:
        product = await self.store.set_active(product_id, active)
        if product is None:
            raise ProductNotFoundError(product_id)
        await self.invalidate()
        return product

    async def invalidate(self) -> None:
        removed = await self.cache.invalidate()
        logger.debug("Catalog cache invalidated (%d keys)", removed)
