"""System-level routes such as health checks."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from storefront.api.dependencies import DatabaseDependency, get_cache
from storefront.config import settings
from storefront.services.cache.cache_client import CacheClient
from storefront.services.storage.mongo import ping

router = APIRouter(tags=["system"])


@router.get("/")
async def read_root() -> dict[str, str]:
    """Smoke test endpoint."""

    return {"message": f"{settings.STORE_NAME} API is running"}


@router.get("/health")
async def health_check(
    db: DatabaseDependency,
    cache: Annotated[CacheClient, Depends(get_cache)],
) -> dict[str, str]:
    """Health check with MongoDB and Redis connectivity."""

    mongo_status = "connected" if await ping(db) else "disconnected"
    redis_status = "connected" if await cache.ping() else "disconnected"

    return {
        "status": "healthy" if mongo_status == "connected" else "degraded",
        "mongo": mongo_status,
        "redis": redis_status,
        "environment": settings.ENVIRONMENT,
    }
