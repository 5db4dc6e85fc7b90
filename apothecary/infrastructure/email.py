"""Transactional email over a Resend-compatible REST API."""
from html import escape
from typing import Optional

import httpx

from apothecary.core_settings import Settings, get_settings
from apothecary.domain.models import Order
from shared.core import get_logger

logger = get_logger(__name__)


def _line_name(item) -> str:
    snapshot = item.product_snapshot or item.compound_snapshot or {}
    return snapshot.get("name", "Item")


def render_order_confirmation(order: Order) -> str:
    rows = "".join(
        f"<tr><td>{escape(_line_name(item))}</td><td>{item.quantity}</td>"
        f"<td>${item.price:.2f}</td></tr>"
        for item in order.items
    )
    address = order.shipping_address or {}
    address_lines = [
        address.get("full_name"),
        address.get("address_line1"),
        address.get("address_line2"),
        " ".join(filter(None, [address.get("city"), address.get("state"), address.get("zip_code")])),
        address.get("country"),
    ]
    address_html = "<br>".join(escape(line) for line in address_lines if line)
    return (
        f"<h1>Thank you for your order</h1>"
        f"<p>Order <strong>{escape(order.order_number)}</strong> placed {order.created_at:%d %b %Y}.</p>"
        f"<table><tr><th>Item</th><th>Qty</th><th>Price</th></tr>{rows}</table>"
        f"<p>Subtotal: ${order.subtotal:.2f}<br>Shipping: ${order.shipping:.2f}<br>"
        f"Tax: ${order.tax:.2f}<br><strong>Total: ${order.total:.2f}</strong></p>"
        f"<p>{address_html}</p>"
    )


def render_newsletter_welcome(name: Optional[str] = None) -> str:
    greeting = f"Hi {escape(name)}," if name else "Hi there,"
    return (
        f"<p>{greeting}</p>"
        "<p>Thanks for joining our newsletter. Seasonal herbal notes and wellness tips are on their way.</p>"
    )


class EmailSender:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def send(self, to: str, subject: str, html: str) -> dict:
        if not self.settings.RESEND_API_KEY:
            logger.warning("Resend API key missing, skipping email", extra={"extra_fields": {"subject": subject}})
            return {"status": "skipped", "reason": "missing-api-key"}

        with httpx.Client(timeout=5.0) as client:
            response = client.post(
                f"{self.settings.RESEND_API_URL}/emails",
                headers={"Authorization": f"Bearer {self.settings.RESEND_API_KEY}"},
                json={
                    "from": self.settings.RESEND_FROM_ADDRESS,
                    "to": [to],
                    "subject": subject,
                    "html": html,
                },
            )
            response.raise_for_status()
            return {"status": "sent", "id": response.json().get("id")}

    def send_order_confirmation(self, to: str, order: Order) -> dict:
        return self.send(to, f"Order {order.order_number} confirmed", render_order_confirmation(order))

    def send_newsletter_welcome(self, to: str, name: Optional[str] = None) -> dict:
        return self.send(to, "Welcome to the apothecary newsletter", render_newsletter_welcome(name))


def notify_order_confirmation(sender: EmailSender, to: Optional[str], order: Order) -> None:
    """Background task: email failures never reach the customer."""
    if not to:
        return
    try:
        result = sender.send_order_confirmation(to, order)
    except httpx.HTTPError as e:
        logger.error(
            "Order confirmation email failed",
            extra={"extra_fields": {"order_id": order.id, "error": str(e)}},
        )
        return
    logger.info(
        "Order confirmation email processed",
        extra={"extra_fields": {"order_id": order.id, "status": result["status"]}},
    )


def notify_newsletter_welcome(sender: EmailSender, to: str, name: Optional[str] = None) -> None:
    try:
        sender.send_newsletter_welcome(to, name)
    except httpx.HTTPError as e:
        logger.error("Newsletter welcome email failed", extra={"extra_fields": {"error": str(e)}})
