"""HTTP tests for the catalog routes."""

import pytest

NEW_PRODUCT = {
    "name": "Court Classic",
    "description": "Leather tennis shoe",
    "category": "shoes",
    "collection": "summer",
    "price": 89.0,
    "sizes": [{"size": 9, "stock": 4}, {"size": 10, "stock": 0}],
    "featured": True,
}


@pytest.mark.asyncio
async def test_product_creation_requires_staff(client, customer_headers):
    response = await client.post("/products", json=NEW_PRODUCT, headers=customer_headers)

    assert response.status_code == 403
    assert response.json() == {
        "success": False,
        "message": "Not authorized as an admin",
        "role": "customer",
    }


@pytest.mark.asyncio
async def test_create_then_fetch(client, admin_headers):
    created = await client.post("/products", json=NEW_PRODUCT, headers=admin_headers)

    assert created.status_code == 201
    product_id = created.json()["product"]["id"]

    response = await client.get(f"/products/{product_id}")
    assert response.status_code == 200
    product = response.json()["product"]
    assert product["name"] == "Court Classic"
    assert product["sizes"] == [{"size": 9, "stock": 4}, {"size": 10, "stock": 0}]


@pytest.mark.asyncio
async def test_product_requires_sizes(client, admin_headers):
    payload = {**NEW_PRODUCT, "sizes": []}

    response = await client.post("/products", json=payload, headers=admin_headers)

    assert response.status_code == 400
    assert any("sizes" in error["field"] for error in response.json()["errors"])


@pytest.mark.asyncio
async def test_listing_filters_and_pagination(client, make_product):
    await make_product(name="Trail Runner", category="shoes", price=50.0)
    await make_product(name="Road Runner", category="shoes", price=120.0)
    await make_product(name="Wool Cap", category="hats", price=20.0)
    await make_product(name="Hidden", category="shoes", active=False)

    shoes = await client.get("/products", params={"category": "shoes"})
    assert shoes.status_code == 200
    assert {p["name"] for p in shoes.json()["products"]} == {"Trail Runner", "Road Runner"}

    cheap = await client.get(
        "/products", params={"max_price": 60, "sort_by": "price-asc"}
    )
    assert [p["name"] for p in cheap.json()["products"]] == ["Wool Cap", "Trail Runner"]

    search = await client.get("/products", params={"search": "runner"})
    assert search.json()["pagination"]["total"] == 2

    paged = await client.get("/products", params={"limit": 1, "page": 2, "sort_by": "name"})
    body = paged.json()
    assert [p["name"] for p in body["products"]] == ["Trail Runner"]
    assert body["pagination"] == {"current": 2, "pages": 3, "total": 3}


@pytest.mark.asyncio
async def test_in_stock_filter(client, make_product):
    await make_product(name="Sold Out", sizes=[{"size": 9, "stock": 0}])
    await make_product(name="Available", sizes=[{"size": 9, "stock": 2}])

    response = await client.get("/products", params={"in_stock": "true"})

    assert [p["name"] for p in response.json()["products"]] == ["Available"]


@pytest.mark.asyncio
async def test_invalid_listing_params(client):
    response = await client.get("/products", params={"limit": 500})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_categories_and_featured(client, make_product):
    await make_product(category="shoes", featured=True)
    await make_product(category="hats")
    await make_product(category="retired", active=False)

    categories = await client.get("/products/categories")
    featured = await client.get("/products/featured")

    assert categories.json()["categories"] == ["hats", "shoes"]
    assert len(featured.json()["products"]) == 1


@pytest.mark.asyncio
async def test_update_and_soft_delete(client, admin_headers, make_product, product_store):
    product = await make_product(price=50.0)
    # warm the cache so the mutation has something to invalidate
    await client.get(f"/products/{product.id}")

    updated = await client.put(
        f"/products/{product.id}", json={"discount_price": 40.0}, headers=admin_headers
    )
    assert updated.status_code == 200
    fetched = await client.get(f"/products/{product.id}")
    assert fetched.json()["product"]["discount_price"] == 40.0

    deleted = await client.delete(f"/products/{product.id}", headers=admin_headers)
    assert deleted.status_code == 200
    assert (await client.get(f"/products/{product.id}")).status_code == 404
    # soft delete keeps the document for existing order snapshots
    assert (await product_store.get(product.id)).active is False


@pytest.mark.asyncio
async def test_unknown_product_is_404(client, admin_headers):
    assert (await client.get("/products/not-an-id")).status_code == 404
    response = await client.put(
        "/products/64b7f0c2a1b2c3d4e5f60718", json={"price": 1.0}, headers=admin_headers
    )
    assert response.status_code == 404
