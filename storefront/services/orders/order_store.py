"""Mongo persistence for orders."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import DESCENDING, ReturnDocument

from storefront.models.order import Order, OrderStatus
from storefront.services.catalog.product_store import parse_object_id

logger = logging.getLogger(__name__)


def generate_order_number(now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    return f"ORD-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"


class OrderStore:
    """Order documents with an embedded line snapshot and mutable status fields."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def insert(self, document: dict[str, Any]) -> Order:
        result = await self.collection.insert_one(document)
        document["_id"] = result.inserted_id
        return Order.from_document(document)

    async def get(self, order_id: str) -> Order | None:
        oid = parse_object_id(order_id)
        if oid is None:
            return None
        document = await self.collection.find_one({"_id": oid})
        return Order.from_document(document) if document else None

    async def transition(
        self,
        order_id: str,
        from_statuses: Iterable[OrderStatus],
        changes: dict[str, Any],
        guard: dict[str, Any] | None = None,
    ) -> Order | None:
        """Apply ``changes`` only while the order is in one of ``from_statuses``.

        Returns the updated order, or None when the guard did not match.
        """
        oid = parse_object_id(order_id)
        if oid is None:
            return None
        changes = {**changes, "updated_at": datetime.now(UTC)}
        document = await self.collection.find_one_and_update(
            {
                "_id": oid,
                "status": {"$in": [s.value for s in from_statuses]},
                **(guard or {}),
            },
            {"$set": _encode(changes)},
            return_document=ReturnDocument.AFTER,
        )
        return Order.from_document(document) if document else None

    async def claim_line_restore(self, order_id: str, line: int) -> bool:
        """Take one line's reservation off the order.

        Only the caller whose pull removes the index may release that line's
        stock.
        """
        oid = parse_object_id(order_id)
        if oid is None:
            return False
        result = await self.collection.update_one(
            {"_id": oid, "reserved_lines": line},
            {"$pull": {"reserved_lines": line}, "$set": {"updated_at": datetime.now(UTC)}},
        )
        return result.modified_count == 1

    async def return_line_reservation(self, order_id: str, line: int) -> None:
        """Put a claimed line back after its stock release failed."""
        await self.collection.update_one(
            {"_id": parse_object_id(order_id)},
            {
                "$addToSet": {"reserved_lines": line},
                "$set": {"stock_reserved": True, "updated_at": datetime.now(UTC)},
            },
        )

    async def finish_stock_restore(self, order_id: str) -> bool:
        """Clear ``stock_reserved`` once no line holds stock any more."""
        oid = parse_object_id(order_id)
        if oid is None:
            return False
        result = await self.collection.update_one(
            {"_id": oid, "stock_reserved": True, "reserved_lines": {"$size": 0}},
            {"$set": {"stock_reserved": False, "updated_at": datetime.now(UTC)}},
        )
        return result.modified_count == 1

    async def list_for_user(
        self, user_id: str, page: int = 1, limit: int = 10
    ) -> tuple[list[Order], int]:
        return await self._page({"user_id": user_id}, page, limit)

    async def list_all(
        self,
        *,
        status: OrderStatus | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Order], int]:
        filters: dict[str, Any] = {}
        if status is not None:
            filters["status"] = status.value
        if start or end:
            created: dict[str, datetime] = {}
            if start:
                created["$gte"] = start
            if end:
                created["$lte"] = end
            filters["created_at"] = created
        return await self._page(filters, page, limit)

    async def _page(
        self, filters: dict[str, Any], page: int, limit: int
    ) -> tuple[list[Order], int]:
        cursor = (
            self.collection.find(filters)
            .sort([("created_at", DESCENDING)])
            .skip((page - 1) * limit)
            .limit(limit)
        )
        documents = await cursor.to_list(length=limit)
        total = await self.collection.count_documents(filters)
        return [Order.from_document(doc) for doc in documents], total


def _encode(changes: dict[str, Any]) -> dict[str, Any]:
    """Turn enums and models into plain BSON-friendly values."""
    encoded: dict[str, Any] = {}
    for key, value in changes.items():
        if isinstance(value, OrderStatus):
            value = value.value
        elif hasattr(value, "model_dump"):
            value = value.model_dump()
        encoded[key] = value
    return encoded
