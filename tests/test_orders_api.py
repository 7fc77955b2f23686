"""HTTP tests for the order routes."""

import pytest


def _order_payload(product_id, shipping_address, *, method="cash-on-delivery", **extra):
    return {
        "order_items": [{"product_id": product_id, "size": 9, "quantity": 1}],
        "shipping_address": shipping_address,
        "payment_method": method,
        **extra,
    }


@pytest.mark.asyncio
async def test_create_order_returns_envelope(
    client, customer_headers, make_product, shipping_address
):
    product = await make_product(sizes=[{"size": 9, "stock": 2}], price=30.0)

    response = await client.post(
        "/orders",
        json=_order_payload(product.id, shipping_address),
        headers=customer_headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Order created successfully"
    assert body["order"]["status"] == "pending"
    assert body["order"]["total_price"] == 42.4
    assert body["order"]["customer"]["email"] == "buyer@example.com"


@pytest.mark.asyncio
async def test_online_order_requires_payment(client, customer_headers, make_product, shipping_address):
    product = await make_product()

    response = await client.post(
        "/orders",
        json=_order_payload(product.id, shipping_address, method="online"),
        headers=customer_headers,
    )

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["errors"]


@pytest.mark.asyncio
async def test_forged_payment_is_rejected(
    client, customer_headers, make_product, shipping_address, product_store
):
    product = await make_product(sizes=[{"size": 9, "stock": 1}])
    payment = {"gateway_order_id": "gw", "payment_id": "pay", "signature": "0" * 64}

    response = await client.post(
        "/orders",
        json=_order_payload(product.id, shipping_address, method="online", payment=payment),
        headers=customer_headers,
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Payment rejected: signature mismatch"
    assert (await product_store.get(product.id)).stock_for(9) == 1
    mine = await client.get("/orders/my", headers=customer_headers)
    assert mine.json()["orders"] == []


@pytest.mark.asyncio
async def test_out_of_stock_message_names_size(
    client, customer_headers, make_product, shipping_address
):
    product = await make_product(sizes=[{"size": 9, "stock": 0}])

    response = await client.post(
        "/orders",
        json=_order_payload(product.id, shipping_address),
        headers=customer_headers,
    )

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Out of stock for size 9 of Trail Runner"
    assert body["product_id"] == product.id


@pytest.mark.asyncio
async def test_my_orders_pagination(client, customer_headers, make_product, shipping_address):
    product = await make_product(sizes=[{"size": 9, "stock": 5}])
    for _ in range(3):
        await client.post(
            "/orders",
            json=_order_payload(product.id, shipping_address),
            headers=customer_headers,
        )

    response = await client.get(
        "/orders/my", params={"page": 1, "limit": 2}, headers=customer_headers
    )

    body = response.json()
    assert len(body["orders"]) == 2
    assert body["pagination"] == {"current": 1, "pages": 2, "total": 3}


@pytest.mark.asyncio
async def test_order_access_rules(
    client, customer_headers, admin_headers, make_product, shipping_address
):
    product = await make_product(sizes=[{"size": 9, "stock": 5}])
    created = await client.post(
        "/orders",
        json=_order_payload(product.id, shipping_address),
        headers=customer_headers,
    )
    order_id = created.json()["order"]["id"]

    assert (await client.get(f"/orders/{order_id}", headers=customer_headers)).status_code == 200
    assert (await client.get(f"/orders/{order_id}", headers=admin_headers)).status_code == 200
    stranger = {"X-User-Id": "someone-else"}
    assert (await client.get(f"/orders/{order_id}", headers=stranger)).status_code == 403
    assert (await client.get(f"/orders/{order_id}")).status_code == 401
    missing = await client.get("/orders/64b7f0c2a1b2c3d4e5f60718", headers=customer_headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_admin_listing_and_status_update(
    client, customer_headers, admin_headers, make_product, shipping_address
):
    product = await make_product(sizes=[{"size": 9, "stock": 5}])
    created = await client.post(
        "/orders",
        json=_order_payload(product.id, shipping_address),
        headers=customer_headers,
    )
    order_id = created.json()["order"]["id"]

    forbidden = await client.get("/orders", headers=customer_headers)
    assert forbidden.status_code == 403

    response = await client.put(
        f"/orders/{order_id}/status",
        json={"status": "shipped", "tracking_number": "1Z999"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["order"]["tracking_number"] == "1Z999"

    listing = await client.get("/orders", params={"status": "shipped"}, headers=admin_headers)
    assert listing.status_code == 200
    assert [o["id"] for o in listing.json()["orders"]] == [order_id]

    pending = await client.get("/orders", params={"status": "pending"}, headers=admin_headers)
    assert pending.json()["orders"] == []

    cancel = await client.put(f"/orders/{order_id}/cancel", headers=customer_headers)
    assert cancel.status_code == 400
    assert cancel.json()["message"] == "Cannot cancel shipped or delivered orders"


@pytest.mark.asyncio
async def test_cancel_and_pay_routes(
    client, customer_headers, make_product, shipping_address, signed_payment, product_store
):
    product = await make_product(sizes=[{"size": 9, "stock": 2}])
    first = await client.post(
        "/orders",
        json=_order_payload(product.id, shipping_address),
        headers=customer_headers,
    )
    second = await client.post(
        "/orders",
        json=_order_payload(product.id, shipping_address),
        headers=customer_headers,
    )

    paid = await client.put(
        f"/orders/{first.json()['order']['id']}/pay",
        json=signed_payment(),
        headers=customer_headers,
    )
    assert paid.status_code == 200
    assert paid.json()["order"]["is_paid"] is True
    assert paid.json()["order"]["status"] == "processing"

    cancelled = await client.put(
        f"/orders/{second.json()['order']['id']}/cancel", headers=customer_headers
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["order"]["status"] == "cancelled"
    assert (await product_store.get(product.id)).stock_for(9) == 1


@pytest.mark.asyncio
async def test_health_reports_backends(client):
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["redis"] == "connected"
    assert body["mongo"] in {"connected", "disconnected"}
