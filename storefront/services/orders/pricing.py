"""Server-side order price breakdown."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from storefront.config import settings
from storefront.models.order import OrderItem, PriceBreakdown

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def _money(value: Decimal) -> float:
    return float(value.quantize(_CENT, rounding=ROUND_HALF_UP))


def compute_breakdown(
    items: Iterable[OrderItem],
    *,
    tax_rate: float | None = None,
    free_shipping_threshold: float | None = None,
    shipping_flat_rate: float | None = None,
) -> PriceBreakdown:
    tax_rate = settings.TAX_RATE if tax_rate is None else tax_rate
    threshold = (
        settings.FREE_SHIPPING_THRESHOLD
        if free_shipping_threshold is None
        else free_shipping_threshold
    )
    flat_rate = (
        settings.SHIPPING_FLAT_RATE if shipping_flat_rate is None else shipping_flat_rate
    )

    items_price = sum(
        (Decimal(str(item.price)) * item.quantity for item in items), Decimal("0")
    ).quantize(_CENT, rounding=ROUND_HALF_UP)
    tax_price = (items_price * Decimal(str(tax_rate))).quantize(
        _CENT, rounding=ROUND_HALF_UP
    )
    # free shipping applies strictly above the threshold
    if items_price > Decimal(str(threshold)):
        shipping_price = Decimal("0")
    else:
        shipping_price = Decimal(str(flat_rate))
    return PriceBreakdown(
        items_price=_money(items_price),
        tax_price=_money(tax_price),
        shipping_price=_money(shipping_price),
        total_price=_money(items_price + tax_price + shipping_price),
    )


def breakdown_mismatch(
    server: PriceBreakdown, client: PriceBreakdown | None, tolerance: float = 0.01
) -> list[str]:
    """Names of the fields where the client's advisory totals disagree."""
    if client is None:
        return []
    return [
        field
        for field in PriceBreakdown.model_fields
        if abs(getattr(server, field) - getattr(client, field)) > tolerance
    ]
