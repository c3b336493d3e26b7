"""Email service using Resend for transactional emails."""

import logging
from html import escape
from typing import Any

import resend

from src.core.config import get_settings
from src.schemas.notification import SellerRegistrationNotification

logger = logging.getLogger(__name__)

_BODY_STYLE = (
    "font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif; "
    "line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;"
)
_HEADER_STYLE = (
    "background: linear-gradient(135deg, #f59e0b 0%, #d97706 100%); padding: 30px; "
    "border-radius: 8px 8px 0 0; text-align: center;"
)
_PANEL_STYLE = "background: #ffffff; padding: 30px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 8px 8px;"
_LABEL_STYLE = "padding: 8px 0; font-weight: 600; color: #6b7280; width: 160px;"
_VALUE_STYLE = "padding: 8px 0; color: #1f2937;"


def _row(label: str, value: str | None) -> str:
    if not value:
        return ""
    return f'<tr><td style="{_LABEL_STYLE}">{escape(label)}</td><td style="{_VALUE_STYLE}">{escape(value)}</td></tr>'


def _page(title: str, heading: str, body: str) -> str:
    return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{escape(title)}</title>
</head>
<body style="{_BODY_STYLE}">
    <div style="{_HEADER_STYLE}">
        <h1 style="color: white; margin: 0; font-size: 24px;">{escape(heading)}</h1>
    </div>
    <div style="{_PANEL_STYLE}">
{body}
    </div>
</body>
</html>
"""


class EmailService:
    """Service for sending transactional emails via Resend."""

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        self.settings = get_settings()
        resend.api_key = self.settings.resend_api_key
        self.from_email = self.settings.email_from_address
        self.base_url = self.settings.base_url

    async def send_seller_registration_email(
        self,
        data: SellerRegistrationNotification,
        to_email: str | None = None,
    ) -> dict[str, Any]:
        """Notify the verification inbox that a new seller is awaiting review.

        Args:
            data: Registration details submitted by the seller.
            to_email: Override recipient; defaults to SELLER_VERIFICATION_EMAIL.

        Returns:
            dict: success flag, plus email id or error.
        """
        recipient = to_email or data.agent_email or self.settings.seller_verification_email
        if not recipient:
            logger.warning("Seller verification inbox not configured; skipping registration email")
            return {"success": False, "error": "Verification inbox is not configured"}

        review_url = f"{self.base_url}/admin/seller-applications/{data.producer_id}"
        address = data.address
        seller_type = None
        if data.seller_type:
            seller_type = "Individual beekeeper" if data.seller_type == "individual" else "Registered business"

        rows = "".join([
            _row("Legal Name:", data.full_legal_name),
            _row("Business Name:", data.business_name),
            _row("Email:", data.email),
            _row("Phone:", data.phone_number),
            _row("Seller Type:", seller_type),
            _row("ABN:", data.abn),
            _row(
                "Address:",
                f"{address.street}, {address.suburb}, {address.state} {address.postcode}, {address.country}",
            ),
            _row("Beekeeper Reg #:", data.beekeeper_registration_number),
            _row("Registering Authority:", data.registering_authority),
        ])
        html_content = _page(
            "New Seller Registration - Hive Joy",
            "New Seller Registration",
            f"""
        <p style="font-size: 16px; margin-top: 0;">A new seller has registered on Hive Joy and is awaiting verification.</p>
        <table style="width: 100%; border-collapse: collapse;">{rows}</table>
        <h2 style="color: #1f2937; font-size: 18px;">About the Business</h2>
        <p style="color: #4b5563;">{escape(data.bio)}</p>
        <div style="margin-top: 30px; text-align: center;">
            <a href="{review_url}" style="display: inline-block; background: #f59e0b; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; font-weight: 600;">
                Review Seller Application
            </a>
        </div>
        <p style="font-size: 12px; color: #6b7280;">Producer ID: {escape(data.producer_id)}<br>User ID: {escape(data.user_id)}</p>
""",
        )

        abn_line = f"- ABN: {data.abn}\n" if data.abn else ""
        text_content = f"""
New Seller Registration - Hive Joy

A new seller has registered on Hive Joy and is awaiting verification.

Business Information:
- Business Name: {data.business_name}
- Email: {data.email}
{abn_line}- Address: {address.street}, {address.suburb}, {address.state} {address.postcode}, {address.country}

About the Business:
{data.bio}

Review the application: {review_url}

Producer ID: {data.producer_id}
User ID: {data.user_id}
"""

        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [recipient],
                "subject": f"New Seller Registration: {data.business_name}",
                "html": html_content,
                "text": text_content,
            })

            logger.info("Seller registration email sent for producer %s, id: %s", data.producer_id, response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send seller registration email for producer %s: %s", data.producer_id, str(e))
            return {"success": False, "error": str(e)}

    async def send_order_confirmation_email(
        self,
        to_email: str,
        order: dict[str, Any],
    ) -> dict[str, Any]:
        """Send the buyer a receipt once payment is confirmed.

        Args:
            to_email: Buyer email from the Stripe session.
            order: Nested order as returned by OrderService.get_order.

        Returns:
            dict: success flag, plus email id or error.
        """
        order_number = order.get("order_number", "")
        orders_url = f"{self.base_url}/orders"
        items = [item for sub_order in order.get("sub_orders", []) for item in sub_order.get("items", [])]

        item_rows = "".join(
            _row(
                f"{item.get('product_title', '')} - {item.get('variant_size', '')}",
                f"{item.get('quantity', 0)} x ${float(item.get('unit_price', 0)):.2f}",
            )
            for item in items
        )
        total = float(order.get("total", 0))
        shipping = float(order.get("shipping_total", 0))

        html_content = _page(
            f"Order {order_number} confirmed - Hive Joy",
            "Thanks for your order!",
            f"""
        <p style="font-size: 16px; margin-top: 0;">Your payment was received and order <strong>{escape(order_number)}</strong> is confirmed.</p>
        <table style="width: 100%; border-collapse: collapse;">{item_rows}{_row("Shipping", f"${shipping:.2f}")}{_row("Total", f"${total:.2f}")}</table>
        <div style="margin-top: 30px; text-align: center;">
            <a href="{orders_url}" style="display: inline-block; background: #f59e0b; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; font-weight: 600;">
                View your orders
            </a>
        </div>
""",
        )

        item_lines = "\n".join(
            f"- {item.get('product_title', '')} - {item.get('variant_size', '')} x {item.get('quantity', 0)}"
            for item in items
        )
        text_content = f"""
Thanks for your order!

Order {order_number} is confirmed.

{item_lines}

Shipping: ${shipping:.2f}
Total: ${total:.2f}

View your orders: {orders_url}
"""

        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [to_email],
                "subject": f"Your Hive Joy order {order_number} is confirmed",
                "html": html_content,
                "text": text_content,
            })

            logger.info("Order confirmation email sent for order %s, id: %s", order.get("id"), response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send order confirmation for order %s: %s", order.get("id"), str(e))
            return {"success": False, "error": str(e)}
