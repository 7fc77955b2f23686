"""MongoDB client construction and collection setup."""

from __future__ import annotations

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from storefront.config import settings

logger = logging.getLogger(__name__)

PRODUCTS = "products"
CARTS = "carts"
ORDERS = "orders"


def create_mongo_client(url: str | None = None) -> AsyncIOMotorClient:
    """Factory function to create a Mongo client. Connection happens lazily."""
    return AsyncIOMotorClient(
        url or settings.MONGO_URL,
        serverSelectionTimeoutMS=5000,
        tz_aware=True,
    )


def get_database(
    client: AsyncIOMotorClient, name: str | None = None
) -> AsyncIOMotorDatabase:
    return client[name or settings.MONGO_DB_NAME]


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create the indexes the services rely on."""
    await db[CARTS].create_index([("user_id", ASCENDING)], unique=True)
    await db[ORDERS].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    await db[ORDERS].create_index([("order_number", ASCENDING)], unique=True)
    await db[PRODUCTS].create_index([("active", ASCENDING), ("category", ASCENDING)])
    logger.info("Mongo indexes ensured", extra={"database": db.name})


async def ping(db: AsyncIOMotorDatabase) -> bool:
    try:
        await db.command("ping")
        return True
    except Exception as exc:
        logger.warning("Mongo ping failed: %s", exc)
        return False
