"""FastAPI dependencies shared by the route modules."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from storefront.errors import AuthenticationRequired, NotAuthorizedError
from storefront.models.identity import Identity
from storefront.services.cache.cache_client import CacheClient
from storefront.services.cart.cart_service import CartService
from storefront.services.catalog.catalog_service import CatalogService
from storefront.services.catalog.product_store import ProductStore
from storefront.services.orders.order_store import OrderStore
from storefront.services.orders.pipeline import OrderPipeline
from storefront.services.queue.invoice_queue import InvoiceQueue
from storefront.services.storage.mongo import CARTS, ORDERS, PRODUCTS


async def get_identity(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_role: Annotated[str | None, Header()] = None,
    x_user_email: Annotated[str | None, Header()] = None,
    x_user_name: Annotated[str | None, Header()] = None,
) -> Identity:
    """Build the caller identity forwarded by the auth tier."""
    if not x_user_id:
        raise AuthenticationRequired()
    return Identity(
        user_id=x_user_id,
        role=(x_user_role or "customer").lower(),
        email=x_user_email,
        name=x_user_name,
    )


async def require_staff(
    identity: Annotated[Identity, Depends(get_identity)],
) -> Identity:
    if not identity.is_staff:
        raise NotAuthorizedError("Not authorized as an admin", role=identity.role)
    return identity


def get_database(request: Request) -> AsyncIOMotorDatabase:
    return request.app.state.db


def get_cache(request: Request) -> CacheClient:
    return request.app.state.cache


def get_invoice_queue(request: Request) -> InvoiceQueue | None:
    return getattr(request.app.state, "invoice_queue", None)


def get_payment_secret(request: Request) -> str | None:
    return getattr(request.app.state, "payment_secret", None)


DatabaseDependency = Annotated[AsyncIOMotorDatabase, Depends(get_database)]


def get_product_store(db: DatabaseDependency) -> ProductStore:
    return ProductStore(db[PRODUCTS])


def get_catalog(
    store: Annotated[ProductStore, Depends(get_product_store)],
    cache: Annotated[CacheClient, Depends(get_cache)],
) -> CatalogService:
    return CatalogService(store, cache)


def get_cart_service(
    db: DatabaseDependency,
    store: Annotated[ProductStore, Depends(get_product_store)],
) -> CartService:
    return CartService(db[CARTS], store)


def get_order_pipeline(
    db: DatabaseDependency,
    store: Annotated[ProductStore, Depends(get_product_store)],
    carts: Annotated[CartService, Depends(get_cart_service)],
    catalog: Annotated[CatalogService, Depends(get_catalog)],
    queue: Annotated[InvoiceQueue | None, Depends(get_invoice_queue)],
    payment_secret: Annotated[str | None, Depends(get_payment_secret)],
) -> OrderPipeline:
    return OrderPipeline(
        products=store,
        orders=OrderStore(db[ORDERS]),
        carts=carts,
        catalog=catalog,
        invoice_queue=queue,
        payment_secret=payment_secret,
    )


IdentityDependency = Annotated[Identity, Depends(get_identity)]
StaffDependency = Annotated[Identity, Depends(require_staff)]
CatalogDependency = Annotated[CatalogService, Depends(get_catalog)]
CartDependency = Annotated[CartService, Depends(get_cart_service)]
PipelineDependency = Annotated[OrderPipeline, Depends(get_order_pipeline)]
