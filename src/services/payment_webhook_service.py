"""Stripe webhook event handling for checkout sessions."""

import logging
from typing import Any

from src.core.config import get_settings
from src.models.order import PaymentStatus
from src.services.checkout_registry import get_checkout_registry
from src.services.notification_service import NotificationDispatcher
from src.services.order_service import OrderService

logger = logging.getLogger(__name__)

PAID_EVENTS = frozenset({"checkout.session.completed", "checkout.session.async_payment_succeeded"})


def checkout_nonce(session: dict[str, Any]) -> str | None:
    """Reconciliation nonce carried by a Checkout session."""
    return session.get("client_reference_id") or (session.get("metadata") or {}).get("checkoutNonce")


def customer_email(session: dict[str, Any]) -> str | None:
    details = session.get("customer_details") or {}
    return details.get("email") or session.get("customer_email")


class PaymentWebhookService:
    """Applies Stripe Checkout events to payments and orders."""

    def __init__(self, notifications: NotificationDispatcher | None = None) -> None:
        """Initialize webhook service.

        Args:
            notifications: Dispatcher for buyer emails; None disables them.
        """
        self.orders = OrderService()
        self.registry = get_checkout_registry()
        self.settings = get_settings()
        self.notifications = notifications

    async def handle_event(self, event: dict[str, Any]) -> str | None:
        """Dispatch a verified event to its handler.

        Returns:
            str | None: Affected order id, if any.
        """
        event_type = event.get("type", "")
        session = (event.get("data") or {}).get("object") or {}

        if event_type in PAID_EVENTS:
            if session.get("payment_status") == "paid":
                return await self.handle_payment_succeeded(session)
            if event_type == "checkout.session.completed":
                # Delayed payment methods complete before funds settle
                return await self._update_payment(session, "processing")
            return None

        if event_type == "checkout.session.async_payment_failed":
            return await self._update_payment(session, "failed")

        if event_type == "checkout.session.expired":
            return await self.handle_session_expired(session)

        logger.debug("Unhandled webhook event type: %s", event_type)
        return None

    async def handle_payment_succeeded(self, session: dict[str, Any]) -> str | None:
        """Confirm payment, order and sub-orders, then email the buyer.

        The email goes out only for the event that actually confirmed the
        payment; redeliveries send nothing.
        """
        session_id = session.get("id")
        if not session_id:
            logger.warning("Paid checkout event without a session id")
            return None

        self.registry.mark_verified(session_id)

        order_id = await self._update_payment(session, "succeeded")
        email = customer_email(session)
        if order_id and email and self.notifications is not None:
            self.notifications.order_confirmation(email, order_id)
        return order_id

    async def handle_session_expired(self, session: dict[str, Any]) -> str | None:
        """Fail the payment and cancel the order of an abandoned session."""
        order_id = await self._update_payment(session, "failed")
        if order_id is None:
            return None

        await self.orders.cancel_order(order_id)
        if self.settings.checkout_reserve_stock:
            await self.orders.restore_order_stock(order_id)
        return order_id

    async def _update_payment(self, session: dict[str, Any], status: PaymentStatus) -> str | None:
        """Update the payment for a session, reconciling a placeholder first if needed.

        Returns None when the event finds no payment to move, including a
        replay of one already applied, so callers act on each transition once.
        """
        session_id = session.get("id")
        if not session_id:
            return None
        payment_intent = session.get("payment_intent")

        order_id = await self.orders.update_payment_status(session_id, status, payment_intent)
        if order_id is not None:
            return order_id

        existing = await self.orders.get_payment_by_session(session_id)
        if existing is not None:
            # Redelivered or out-of-order event; the payment has already moved past it
            logger.info(
                "Payment for session %s is already %s; ignoring %s",
                session_id,
                existing.get("status"),
                status,
            )
            return None

        nonce = checkout_nonce(session)
        if not nonce:
            logger.warning("No payment for session %s and no checkout nonce to fall back on", session_id)
            return None

        reconciled = await self.orders.reconcile_payment_by_nonce(nonce, session_id)
        if reconciled is None:
            logger.warning("No payment for session %s or nonce %s", session_id, nonce)
            return None
        return await self.orders.update_payment_status(session_id, status, payment_intent)
