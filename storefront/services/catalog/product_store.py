"""Mongo-backed product catalog with atomic per-size stock counters."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from storefront.models.product import (
    Product,
    ProductCreate,
    ProductQuery,
    ProductUpdate,
    SizeValue,
)

logger = logging.getLogger(__name__)

_SORT_OPTIONS: dict[str, list[tuple[str, int]]] = {
    "newest": [("created_at", DESCENDING)],
    "oldest": [("created_at", ASCENDING)],
    "price-asc": [("price", ASCENDING)],
    "price-desc": [("price", DESCENDING)],
    "name": [("name", ASCENDING)],
}


def parse_object_id(value: str) -> ObjectId | None:
    """Return an ObjectId for ``value`` or None when it is not a valid id."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


class ProductStore:
    """Product documents keyed by id with an embedded size/stock array."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def get(self, product_id: str) -> Product | None:
        oid = parse_object_id(product_id)
        if oid is None:
            return None
        document = await self.collection.find_one({"_id": oid})
        return Product.from_document(document) if document else None

    async def get_many(self, product_ids: Iterable[str]) -> dict[str, Product]:
        oids = [oid for oid in map(parse_object_id, set(product_ids)) if oid]
        if not oids:
            return {}
        cursor = self.collection.find({"_id": {"$in": oids}})
        documents = await cursor.to_list(length=len(oids))
        return {str(doc["_id"]): Product.from_document(doc) for doc in documents}

    async def list_products(self, query: ProductQuery) -> tuple[list[Product], int]:
        filters = self._build_filter(query)
        skip = (query.page - 1) * query.limit
        cursor = (
            self.collection.find(filters)
            .sort(_SORT_OPTIONS[query.sort_by])
            .skip(skip)
            .limit(query.limit)
        )
        documents = await cursor.to_list(length=query.limit)
        total = await self.collection.count_documents(filters)
        return [Product.from_document(doc) for doc in documents], total

    async def list_categories(self) -> list[str]:
        categories = await self.collection.distinct("category", {"active": True})
        return sorted(c for c in categories if c)

    async def list_featured(self, limit: int = 10) -> list[Product]:
        cursor = (
            self.collection.find({"featured": True, "active": True})
            .sort([("created_at", DESCENDING)])
            .limit(limit)
        )
        documents = await cursor.to_list(length=limit)
        return [Product.from_document(doc) for doc in documents]

    async def create(self, payload: ProductCreate) -> Product:
        now = datetime.now(UTC)
        document = payload.model_dump()
        document.update(created_at=now, updated_at=now)
        result = await self.collection.insert_one(document)
        document["_id"] = result.inserted_id
        logger.info("Created product %s", result.inserted_id)
        return Product.from_document(document)

    async def update(self, product_id: str, payload: ProductUpdate) -> Product | None:
        oid = parse_object_id(product_id)
        if oid is None:
            return None
        changes = payload.model_dump(exclude_unset=True)
        changes["updated_at"] = datetime.now(UTC)
        document = await self.collection.find_one_and_update(
            {"_id": oid},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        return Product.from_document(document) if document else None

    async def set_active(self, product_id: str, active: bool) -> Product | None:
        return await self.update(product_id, ProductUpdate(active=active))

    async def reserve_stock(
        self, product_id: str, size: SizeValue, quantity: int
    ) -> bool:
        """Decrement the size's stock by ``quantity`` only if enough is left.

        The condition and the decrement are one server-side update, so two
        concurrent reservations can never both succeed against stock that only
        covers one of them.
        """
        oid = parse_object_id(product_id)
        if oid is None or quantity < 1:
            return False
        result = await self.collection.update_one(
            {
                "_id": oid,
                "active": True,
                "sizes": {"$elemMatch": {"size": size, "stock": {"$gte": quantity}}},
            },
            {
                "$inc": {"sizes.$.stock": -quantity},
                "$set": {"updated_at": datetime.now(UTC)},
            },
        )
        reserved = result.modified_count == 1
        logger.debug(
            "Stock reservation %s",
            "applied" if reserved else "rejected",
            extra={"product_id": product_id, "size": size, "quantity": quantity},
        )
        return reserved

    async def release_stock(
        self, product_id: str, size: SizeValue, quantity: int
    ) -> bool:
        """Return ``quantity`` units to the size's stock."""
        oid = parse_object_id(product_id)
        if oid is None or quantity < 1:
            return False
        result = await self.collection.update_one(
            {"_id": oid, "sizes": {"$elemMatch": {"size": size}}},
            {
                "$inc": {"sizes.$.stock": quantity},
                "$set": {"updated_at": datetime.now(UTC)},
            },
        )
        if result.modified_count != 1:
            logger.warning(
                "Stock release matched no size",
                extra={"product_id": product_id, "size": size, "quantity": quantity},
            )
            return False
        return True

    @staticmethod
    def _build_filter(query: ProductQuery) -> dict[str, Any]:
        filters: dict[str, Any] = {"active": True}
        if query.category:
            filters["category"] = query.category
        if query.collection:
            filters["collection"] = query.collection
        price: dict[str, float] = {}
        if query.min_price is not None:
            price["$gte"] = query.min_price
        if query.max_price is not None:
            price["$lte"] = query.max_price
        if price:
            filters["price"] = price
        if query.featured is not None:
            filters["featured"] = query.featured
        if query.in_stock:
            filters["sizes"] = {"$elemMatch": {"stock": {"$gt": 0}}}
        if query.search:
            pattern = re.escape(query.search.strip())
            filters["$or"] = [
                {field: {"$regex": pattern, "$options": "i"}}
                for field in ("name", "category", "collection", "description")
            ]
        return filters
