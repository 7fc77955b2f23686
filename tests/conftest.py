"""Pytest configuration and fixtures for the storefront service."""

import uuid

import pytest
import pytest_asyncio
from fakeredis import aioredis as fakeredis
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from storefront.api.dependencies import (
    get_cache,
    get_database,
    get_invoice_queue,
    get_payment_secret,
)
from storefront.models.identity import Identity
from storefront.models.order import CheckoutRequest
from storefront.models.product import ProductCreate
from storefront.services.cache.cache_client import CacheClient
from storefront.services.cart.cart_service import CartService
from storefront.services.catalog.catalog_service import CatalogService
from storefront.services.catalog.product_store import ProductStore
from storefront.services.orders.order_store import OrderStore
from storefront.services.orders.pipeline import OrderPipeline
from storefront.services.orders.signature import compute_signature
from storefront.services.queue.invoice_queue import InvoiceQueue
from storefront.services.storage.mongo import CARTS, ORDERS, PRODUCTS, ensure_indexes

TEST_INVOICE_STREAM = "test:invoices:jobs"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")


@pytest.fixture()
def payment_secret():
    return "test-gateway-secret"


@pytest_asyncio.fixture()
async def redis_client():
    """Provide a fake Redis client for each test."""
    client = fakeredis.FakeRedis(decode_responses=True)
    try:
        yield client
    finally:
        await client.flushall()
        await client.aclose()


@pytest_asyncio.fixture()
async def mongo_db():
    """Provide an isolated in-memory Mongo database with production indexes."""
    client = AsyncMongoMockClient()
    db = client[f"storefront_test_{uuid.uuid4().hex[:8]}"]
    await ensure_indexes(db)
    return db


@pytest.fixture()
def cache(redis_client):
    return CacheClient(
        client=redis_client, namespace="test-catalog", default_ttl=60, retry_interval=0
    )


@pytest.fixture()
def invoice_queue(redis_client):
    return InvoiceQueue(redis_client, TEST_INVOICE_STREAM)


@pytest.fixture()
def product_store(mongo_db):
    return ProductStore(mongo_db[PRODUCTS])


@pytest.fixture()
def order_store(mongo_db):
    return OrderStore(mongo_db[ORDERS])


@pytest.fixture()
def catalog(product_store, cache):
    return CatalogService(product_store, cache)


@pytest.fixture()
def cart_service(mongo_db, product_store):
    return CartService(mongo_db[CARTS], product_store)


@pytest.fixture()
def pipeline(product_store, order_store, cart_service, catalog, invoice_queue, payment_secret):
    return OrderPipeline(
        products=product_store,
        orders=order_store,
        carts=cart_service,
        catalog=catalog,
        invoice_queue=invoice_queue,
        payment_secret=payment_secret,
    )


@pytest.fixture()
def make_product(product_store):
    """Factory that stores a product; defaults to one unit of size 9."""

    async def _make(**overrides):
        data = {
            "name": "Trail Runner",
            "description": "Lightweight running shoe",
            "category": "shoes",
            "price": 50.0,
            "sizes": [{"size": 9, "stock": 1}],
        }
        data.update(overrides)
        return await product_store.create(ProductCreate(**data))

    return _make


@pytest.fixture()
def customer():
    return Identity(user_id="user-1", email="buyer@example.com", name="Ada Buyer")


@pytest.fixture()
def admin():
    return Identity(user_id="admin-1", role="admin", email="admin@example.com")


@pytest.fixture()
def shipping_address():
    return {
        "address": "1 Market Street",
        "city": "Springfield",
        "postal_code": "12345",
        "country": "US",
    }


@pytest.fixture()
def signed_payment(payment_secret):
    """Build a payment confirmation carrying a valid gateway signature."""

    def _sign(gateway_order_id="gw_order_1", payment_id="pay_1"):
        return {
            "gateway_order_id": gateway_order_id,
            "payment_id": payment_id,
            "signature": compute_signature(payment_secret, gateway_order_id, payment_id),
        }

    return _sign


@pytest.fixture()
def checkout_request(shipping_address, signed_payment):
    """Build a CheckoutRequest; ``items=None`` checks out the stored cart."""

    def _build(items=None, *, method="online", payment=None, **extra):
        body = {
            "order_items": items,
            "shipping_address": shipping_address,
            "payment_method": method,
            **extra,
        }
        if method == "online":
            body["payment"] = payment or signed_payment()
        return CheckoutRequest.model_validate(body)

    return _build


def auth_headers(user_id="user-1", role="customer", email="buyer@example.com"):
    return {"X-User-Id": user_id, "X-User-Role": role, "X-User-Email": email}


@pytest.fixture()
def customer_headers():
    return auth_headers()


@pytest.fixture()
def admin_headers():
    return auth_headers("admin-1", "admin", "admin@example.com")


@pytest_asyncio.fixture()
async def client(mongo_db, cache, invoice_queue, payment_secret):
    """Return an HTTPX async client pointing at the FastAPI app."""
    from storefront.main import app

    app.dependency_overrides[get_database] = lambda: mongo_db
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_invoice_queue] = lambda: invoice_queue
    app.dependency_overrides[get_payment_secret] = lambda: payment_secret
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
        ) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
