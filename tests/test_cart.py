"""Tests for the cart aggregate, cart service and cart routes."""

import pytest

from storefront.errors import (
    CartLineNotFoundError,
    InsufficientStockError,
    ProductUnavailableError,
)
from storefront.models.cart import Cart, CartLine
from storefront.models.product import ProductUpdate


def test_add_item_merges_same_product_and_size():
    cart = Cart(user_id="u1")
    cart.add_item("p1", "M", 2)
    cart.add_item("p1", "M", 1)
    cart.add_item("p1", "L", 1)

    assert [(line.product_id, line.size, line.quantity) for line in cart.items] == [
        ("p1", "M", 3),
        ("p1", "L", 1),
    ]


def test_numeric_sizes_are_normalized():
    cart = Cart(user_id="u1")
    cart.add_item("p1", "9", 1)
    cart.add_item("p1", 9.0, 1)

    assert len(cart.items) == 1
    assert cart.items[0].size == 9
    assert cart.items[0].quantity == 2


def test_merge_duplicates_keeps_first_line():
    first = CartLine(product_id="p1", size="M", quantity=2)
    second = CartLine(product_id="p1", size="M", quantity=1)
    cart = Cart(user_id="u1", items=[first, second])

    cart.merge_duplicates()

    assert len(cart.items) == 1
    assert cart.items[0].id == first.id
    assert cart.items[0].quantity == 3


def test_recompute_totals_uses_given_prices():
    cart = Cart(user_id="u1", total_price=999.0)
    cart.add_item("p1", "M", 3)
    cart.add_item("p2", 10, 1)

    cart.recompute_totals({"p1": 19.99, "p2": 5.0})

    assert cart.total_items == 4
    assert cart.total_price == 64.97


def test_update_quantity_rejects_non_positive():
    cart = Cart(user_id="u1")
    line = cart.add_item("p1", "M", 1)

    with pytest.raises(ValueError):
        cart.update_quantity(line.id, 0)


@pytest.mark.asyncio
async def test_cart_created_lazily(cart_service):
    view = await cart_service.get_cart("new-user")

    assert view.user_id == "new-user"
    assert view.items == []
    assert view.total_price == 0.0
    assert await cart_service.count("new-user") == 0


@pytest.mark.asyncio
async def test_add_twice_yields_single_line(cart_service, make_product):
    product = await make_product(sizes=[{"size": "M", "stock": 10}], price=20.0)

    await cart_service.add_item("u1", product.id, "M", 2)
    view = await cart_service.add_item("u1", product.id, "M", 1)

    assert len(view.items) == 1
    assert view.items[0].quantity == 3
    assert view.total_items == 3
    assert view.total_price == 60.0
    assert await cart_service.count("u1") == 3


@pytest.mark.asyncio
async def test_totals_follow_catalog_price_changes(cart_service, make_product, product_store):
    product = await make_product(sizes=[{"size": "M", "stock": 10}], price=20.0)
    await cart_service.add_item("u1", product.id, "M", 2)

    await product_store.update(product.id, ProductUpdate(discount_price=15.0))
    view = await cart_service.get_cart("u1")

    assert view.total_price == 30.0
    assert view.items[0].unit_price == 15.0


@pytest.mark.asyncio
async def test_add_unknown_size_is_rejected(cart_service, make_product):
    product = await make_product(sizes=[{"size": "M", "stock": 10}])

    with pytest.raises(ProductUnavailableError):
        await cart_service.add_item("u1", product.id, "XL", 1)


@pytest.mark.asyncio
async def test_update_over_stock_is_rejected(cart_service, make_product):
    product = await make_product(sizes=[{"size": "M", "stock": 2}])
    view = await cart_service.add_item("u1", product.id, "M", 1)

    with pytest.raises(InsufficientStockError):
        await cart_service.update_quantity("u1", view.items[0].id, 3)

    unchanged = await cart_service.get_cart("u1")
    assert unchanged.items[0].quantity == 1


@pytest.mark.asyncio
async def test_remove_absent_item_raises(cart_service, make_product):
    product = await make_product(sizes=[{"size": "M", "stock": 2}])
    await cart_service.add_item("u1", product.id, "M", 1)

    with pytest.raises(CartLineNotFoundError):
        await cart_service.remove_item("u1", product_id=product.id, size="L")


@pytest.mark.asyncio
async def test_remove_and_clear(cart_service, make_product):
    product = await make_product(sizes=[{"size": "M", "stock": 5}, {"size": "L", "stock": 5}])
    await cart_service.add_item("u1", product.id, "M", 1)
    view = await cart_service.add_item("u1", product.id, "L", 2)

    line_id = next(line.id for line in view.items if line.size == "L")
    view = await cart_service.remove_item("u1", line_id=line_id)
    assert [line.size for line in view.items] == ["M"]

    view = await cart_service.clear("u1")
    assert view.items == []
    assert view.total_items == 0


@pytest.mark.asyncio
async def test_cart_routes_require_identity(client):
    response = await client.get("/cart")

    assert response.status_code == 401
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_cart_routes_round_trip(client, customer_headers, make_product):
    product = await make_product(sizes=[{"size": 9, "stock": 4}], price=25.0)

    response = await client.post(
        "/cart/add",
        json={"product_id": product.id, "size": "9", "quantity": 2},
        headers=customer_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["cart"]["total_items"] == 2
    assert body["cart"]["total_price"] == 50.0
    line_id = body["cart"]["items"][0]["id"]

    response = await client.put(
        f"/cart/item/{line_id}", json={"quantity": 5}, headers=customer_headers
    )
    assert response.status_code == 400
    assert "Out of stock" in response.json()["message"]

    response = await client.get("/cart/count", headers=customer_headers)
    assert response.json()["count"] == 2

    response = await client.delete(
        "/cart/item",
        params={"product_id": product.id, "size": "9"},
        headers=customer_headers,
    )
    assert response.status_code == 200
    assert response.json()["cart"]["items"] == []

    response = await client.delete(f"/cart/item/{line_id}", headers=customer_headers)
    assert response.status_code == 404
