"""Stripe Checkout session creation, lookup and webhook verification."""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import stripe

from src.api.middleware.error_handler import PaymentSessionError
from src.core.config import get_settings
from src.core.stripe import get_stripe
from src.services.order_partitioner import SubOrderDraft, to_minor_units

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentSession:
    """The provider session a buyer is redirected to."""

    id: str
    url: str


def build_line_items(
    drafts: list[SubOrderDraft],
    currency: str,
    shipping_total: Decimal,
) -> list[dict[str, Any]]:
    """Translate sub-order drafts into Stripe Checkout line items.

    One line per ordered variant, priced in integer cents, plus a single
    Shipping line when shipping is charged.
    """
    line_items: list[dict[str, Any]] = []
    for draft in drafts:
        for item in draft.items:
            product_data: dict[str, Any] = {"name": f"{item.product_title} - {item.variant_size}"}
            if item.image_url:
                product_data["images"] = [item.image_url]
            line_items.append({
                "price_data": {
                    "currency": currency,
                    "product_data": product_data,
                    "unit_amount": to_minor_units(item.unit_price),
                },
                "quantity": item.quantity,
            })

    if shipping_total > 0:
        line_items.append({
            "price_data": {
                "currency": currency,
                "product_data": {"name": "Shipping"},
                "unit_amount": to_minor_units(shipping_total),
            },
            "quantity": 1,
        })
    return line_items


class PaymentSessionService:
    """Service wrapping the Stripe Checkout API."""

    def __init__(self) -> None:
        """Initialize payment session service with Stripe client."""
        self.stripe = get_stripe()
        self.settings = get_settings()

    async def create_session(
        self,
        line_items: list[dict[str, Any]],
        customer_email: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
        client_reference_id: str,
    ) -> PaymentSession:
        """Create a hosted Checkout session in payment mode.

        Args:
            line_items: Stripe line items from build_line_items.
            customer_email: Receipt email pre-filled on the Stripe page.
            success_url: Redirect after payment.
            cancel_url: Redirect if the buyer abandons the page.
            metadata: Correlation data; must include checkoutNonce.
            client_reference_id: Reconciliation nonce.

        Returns:
            PaymentSession: Session id and redirect url.

        Raises:
            PaymentSessionError: If Stripe rejects the request.
        """
        try:
            session = self.stripe.checkout.Session.create(
                mode="payment",
                payment_method_types=self.settings.payment_method_types,
                line_items=line_items,
                customer_email=customer_email,
                client_reference_id=client_reference_id,
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
            )
        except stripe.StripeError as e:
            logger.error("Stripe error creating checkout session: %s", str(e))
            raise PaymentSessionError() from e

        if not session.id or not session.url:
            logger.error("Stripe returned a checkout session without id or url")
            raise PaymentSessionError()

        logger.info("Created Stripe checkout session %s", session.id)
        return PaymentSession(id=session.id, url=session.url)

    async def retrieve_session(self, session_id: str) -> Any:
        """Fetch a Checkout session from Stripe."""
        return self.stripe.checkout.Session.retrieve(session_id)

    async def expire_session(self, session_id: str) -> None:
        """Expire an open session so it can no longer be paid. Best effort."""
        try:
            self.stripe.checkout.Session.expire(session_id)
            logger.info("Expired Stripe checkout session %s", session_id)
        except stripe.StripeError as e:
            logger.warning("Could not expire Stripe session %s: %s", session_id, str(e))

    def verify_webhook_signature(self, payload: bytes, sig_header: str) -> dict[str, Any]:
        """Verify Stripe webhook signature and return the event as a dict.

        Args:
            payload: Raw webhook payload bytes.
            sig_header: Stripe-Signature header value.

        Returns:
            dict: Verified Stripe event.

        Raises:
            ValueError: If signature is invalid or the secret is not configured.
        """
        if not self.settings.stripe_webhook_secret:
            raise ValueError("Stripe webhook secret is not configured")

        try:
            self.stripe.Webhook.construct_event(payload, sig_header, self.settings.stripe_webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise ValueError("Invalid webhook signature") from e

        return json.loads(payload)
