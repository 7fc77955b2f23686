"""Invoice email rendering."""

from __future__ import annotations

from dataclasses import dataclass
from html import escape

from storefront.models.order import Order


@dataclass
class RenderedInvoice:
    subject: str
    text: str
    html: str


def _money(value: float) -> str:
    return f"{value:.2f}"


def render_invoice(order: Order, store_name: str) -> RenderedInvoice:
    """Render the plain-text and HTML bodies of an order confirmation."""
    customer = order.customer.name or "there"
    placed = order.created_at.strftime("%B %d, %Y %H:%M")

    text_lines = [
        f"Hello {customer},",
        "",
        "Thank you for your purchase!",
        "",
        f"Order #{order.order_number} ({placed})",
        "Items:",
    ]
    text_lines.extend(
        f"  {item.name} (size {item.size}) - {item.quantity} x {_money(item.price)}"
        for item in order.order_items
    )
    text_lines.extend(
        [
            "",
            f"Subtotal: {_money(order.items_price)}",
            f"Tax: {_money(order.tax_price)}",
            f"Shipping: {_money(order.shipping_price)}",
            f"Total: {_money(order.total_price)}",
        ]
    )

    rows = "".join(
        "<tr>"
        f"<td>{escape(item.name)}</td>"
        f"<td>{escape(str(item.size))}</td>"
        f"<td>{item.quantity}</td>"
        f"<td>{_money(item.price)}</td>"
        f"<td>{_money(item.line_total)}</td>"
        "</tr>"
        for item in order.order_items
    )
    address = order.shipping_address
    html = (
        "<div>"
        f"<h2>Order #{escape(order.order_number)}</h2>"
        f"<p>Hello {escape(customer)}, thanks for your purchase.</p>"
        f"<p>Date: {escape(placed)}</p>"
        "<table><thead><tr><th>Item</th><th>Size</th><th>Qty</th>"
        "<th>Price</th><th>Total</th></tr></thead>"
        f"<tbody>{rows}</tbody></table>"
        f"<p>Subtotal: {_money(order.items_price)}<br/>"
        f"Tax: {_money(order.tax_price)}<br/>"
        f"Shipping: {_money(order.shipping_price)}<br/>"
        f"<strong>Total: {_money(order.total_price)}</strong></p>"
        f"<p>Ship to: {escape(address.address)}, {escape(address.city)} "
        f"{escape(address.postal_code)}, {escape(address.country)}</p>"
        "</div>"
    )
    return RenderedInvoice(
        subject=f"Invoice for Order #{order.order_number} - {store_name}",
        text="\n".join(text_lines),
        html=html,
    )
