"""Local verification of payment gateway signatures."""

from __future__ import annotations

import hashlib
import hmac
import logging

from storefront.config import settings
from storefront.errors import PaymentVerificationError
from storefront.models.order import PaymentConfirmation

logger = logging.getLogger(__name__)


def compute_signature(secret: str, gateway_order_id: str, payment_id: str) -> str:
    """Hex HMAC-SHA256 of ``"<gateway_order_id>|<payment_id>"``."""
    message = f"{gateway_order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(
    confirmation: PaymentConfirmation | None, secret: str | None = None
) -> None:
    """Raise PaymentVerificationError unless the signature matches."""
    secret = secret if secret is not None else settings.PAYMENT_GATEWAY_KEY_SECRET
    if not secret:
        logger.error("Payment verification requested but no gateway secret is set")
        raise PaymentVerificationError("Payment rejected: gateway is not configured")
    if confirmation is None:
        raise PaymentVerificationError("Payment rejected: confirmation missing")

    expected = compute_signature(
        secret, confirmation.gateway_order_id, confirmation.payment_id
    )
    if not hmac.compare_digest(
        expected.encode("utf-8"), confirmation.signature.encode("utf-8")
    ):
        logger.warning(
            "Payment signature mismatch",
            extra={
                "gateway_order_id": confirmation.gateway_order_id,
                "payment_id": confirmation.payment_id,
            },
        )
        raise PaymentVerificationError(
            gateway_order_id=confirmation.gateway_order_id,
            payment_id=confirmation.payment_id,
        )
