"""Tests for server-side pricing and payment signature checks."""

import pytest

from storefront.errors import PaymentVerificationError
from storefront.models.order import OrderItem, PaymentConfirmation, PriceBreakdown
from storefront.services.orders.pipeline import RequestedLine, merge_requested_lines
from storefront.services.orders.pricing import breakdown_mismatch, compute_breakdown
from storefront.services.orders.signature import (
    compute_signature,
    verify_payment_signature,
)


def _item(price, quantity):
    return OrderItem(product_id="p", name="n", price=price, quantity=quantity, size="M")


@pytest.mark.parametrize(
    ("items", "expected"),
    [
        ([_item(100.0, 1)], (100.0, 8.0, 10.0, 118.0)),
        ([_item(100.01, 1)], (100.01, 8.0, 0.0, 108.01)),
        ([_item(19.99, 3)], (59.97, 4.8, 10.0, 74.77)),
        ([_item(0.1, 3), _item(0.2, 1)], (0.5, 0.04, 10.0, 10.54)),
    ],
)
def test_compute_breakdown(items, expected):
    breakdown = compute_breakdown(
        items, tax_rate=0.08, free_shipping_threshold=100, shipping_flat_rate=10
    )

    assert (
        breakdown.items_price,
        breakdown.tax_price,
        breakdown.shipping_price,
        breakdown.total_price,
    ) == expected


def test_breakdown_mismatch_lists_fields():
    server = PriceBreakdown(items_price=10, tax_price=0.8, shipping_price=10, total_price=20.8)
    client = PriceBreakdown(items_price=10, tax_price=0.0, shipping_price=10, total_price=20.0)

    assert breakdown_mismatch(server, client) == ["tax_price", "total_price"]
    assert breakdown_mismatch(server, None) == []
    assert breakdown_mismatch(server, server) == []


def test_merge_requested_lines():
    merged = merge_requested_lines(
        [
            RequestedLine("p1", "M", 2),
            RequestedLine("p2", "M", 1),
            RequestedLine("p1", "M", 1),
        ]
    )

    assert [(line.product_id, line.quantity) for line in merged] == [("p1", 3), ("p2", 1)]


def test_valid_signature_passes():
    secret = "s3cret"
    confirmation = PaymentConfirmation(
        gateway_order_id="order_1",
        payment_id="pay_1",
        signature=compute_signature(secret, "order_1", "pay_1"),
    )

    verify_payment_signature(confirmation, secret)


def test_signature_bound_to_both_ids():
    secret = "s3cret"
    confirmation = PaymentConfirmation(
        gateway_order_id="order_2",
        payment_id="pay_1",
        signature=compute_signature(secret, "order_1", "pay_1"),
    )

    with pytest.raises(PaymentVerificationError) as excinfo:
        verify_payment_signature(confirmation, secret)

    assert excinfo.value.context == {"gateway_order_id": "order_2", "payment_id": "pay_1"}


def test_missing_secret_or_confirmation_rejected():
    with pytest.raises(PaymentVerificationError):
        verify_payment_signature(None, "s3cret")
    with pytest.raises(PaymentVerificationError):
        verify_payment_signature(
            PaymentConfirmation(gateway_order_id="a", payment_id="b", signature="c"), ""
        )
