"""FastAPI application factory and bootstrap helpers."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.api.routes import include_api_routes
from storefront.config import settings
from storefront.errors import ERROR_STATUS_CODES, StorefrontError
from storefront.services.cache.cache_client import create_cache_client
from storefront.services.queue.invoice_queue import InvoiceQueue, create_redis_client
from storefront.services.storage.mongo import (
    create_mongo_client,
    ensure_indexes,
    get_database,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the shared clients on startup and close them on shutdown."""
    mongo_client = create_mongo_client()
    app.state.db = get_database(mongo_client)
    try:
        await ensure_indexes(app.state.db)
    except Exception:
        logger.exception("Failed to ensure Mongo indexes on startup")

    app.state.cache = create_cache_client()
    await app.state.cache.connect()

    redis_client = create_redis_client(
        socket_timeout=settings.INVOICE_ENQUEUE_TIMEOUT_SECONDS
    )
    app.state.invoice_queue = InvoiceQueue(redis_client)
    app.state.payment_secret = settings.PAYMENT_GATEWAY_KEY_SECRET
    if not app.state.payment_secret:
        logger.warning("PAYMENT_GATEWAY_KEY_SECRET is not set, online checkout disabled")

    yield

    await app.state.cache.close()
    await redis_client.aclose()
    mongo_client.close()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title=f"{settings.STORE_NAME} API",
        description="Catalog, cart and checkout service",
        version="1.0.0",
        lifespan=lifespan,
    )

    _configure_cors(app)
    _register_exception_handlers(app)
    include_api_routes(app)

    return app


def _configure_cors(app: FastAPI) -> None:
    """Allow broad access in non-production environments."""

    if settings.is_production:
        return

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _register_exception_handlers(app: FastAPI) -> None:
    """Render domain and validation errors in the response envelope."""

    @app.exception_handler(StorefrontError)
    async def handle_storefront_error(
        request: Request, exc: StorefrontError
    ) -> JSONResponse:
        status_code = next(
            (
                code
                for error_type, code in ERROR_STATUS_CODES.items()
                if isinstance(exc, error_type)
            ),
            500,
        )
        if status_code >= 500:
            logger.error("Unmapped storefront error: %s", exc, exc_info=exc)
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "message": exc.message, **_jsonable(exc.context)},
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ())),
                "message": error.get("msg", "Invalid value"),
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Validation failed", "errors": errors},
        )


def _jsonable(context: dict) -> dict:
    return {
        key: value if isinstance(value, (str, int, float, bool)) else str(value)
        for key, value in context.items()
    }
