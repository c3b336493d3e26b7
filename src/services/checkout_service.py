"""Checkout orchestration: cart to persisted order to Stripe session."""

import logging
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

import stripe

from src.api.middleware.error_handler import (
    APIError,
    AuthorizationError,
    CheckoutError,
    PaymentReconciliationError,
    PaymentsNotConfiguredError,
    PaymentSessionError,
)
from src.core.config import get_settings
from src.schemas.auth import UserContext
from src.schemas.checkout import CheckoutRequest
from src.services.catalog_service import CatalogService
from src.services.checkout_registry import get_checkout_registry
from src.services.checkout_state import CheckoutAttempt, CheckoutState
from src.services.checkout_validation import ValidatedCheckout, validate_checkout_request
from src.services.order_partitioner import partition_lines
from src.services.order_service import OrderService, placeholder_session_id
from src.services.payment_session_service import PaymentSessionService, build_line_items

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    """What the caller needs to redirect the buyer and set correlation cookies."""

    url: str
    session_id: str
    nonce: str
    order_id: str


class CheckoutService:
    """Service turning a cart into an order bound to a Stripe Checkout session.

    The order aggregate is written before Stripe is called, so a webhook
    always finds a payment row. Once the order exists the attempt ends
    either reconciled (payment row carries the real session id) or rolled
    back (order deleted); no placeholder payment outlives the request.
    """

    def __init__(self) -> None:
        """Initialize checkout service with its collaborators."""
        self.settings = get_settings()
        self.catalog = CatalogService()
        self.orders = OrderService()
        self.payments = PaymentSessionService()
        self.registry = get_checkout_registry()

    async def create_checkout(
        self,
        request: CheckoutRequest,
        user: UserContext | None = None,
    ) -> CheckoutResult:
        """Run a checkout attempt end to end.

        Args:
            request: Cart, contact details and shipping address.
            user: Authenticated buyer, or None for guest checkout.

        Returns:
            CheckoutResult: Stripe redirect url plus correlation values.

        Raises:
            PaymentsNotConfiguredError: Stripe keys are missing.
            CheckoutValidationError: The request is not acceptable (400).
            StockRaceLost: Stock was taken by a concurrent checkout (409).
            OrderPersistenceError: The order could not be written (500).
            PaymentSessionError: Stripe session creation failed (500).
            PaymentReconciliationError: The payment row could not be bound
                to the Stripe session (500).
        """
        if not self.settings.stripe_secret_key:
            raise PaymentsNotConfiguredError()

        checkout = validate_checkout_request(request)
        attempt = CheckoutAttempt(nonce=str(uuid4()))

        lines = await self.catalog.resolve(checkout.items)
        attempt.advance(CheckoutState.PARTITIONING)

        drafts = partition_lines(
            lines,
            shipping_total=self.settings.checkout_shipping_total,
            platform_fee_rate=self.settings.platform_fee_rate,
            gst_rate=self.settings.gst_rate,
        )

        buyer_id = await self._resolve_buyer(user)
        order = await self.orders.create_order(
            buyer_id=buyer_id,
            shipping_address=checkout.shipping.to_snapshot(self.settings.shipping_country),
            drafts=drafts,
            placeholder_session=placeholder_session_id(attempt.nonce),
        )
        attempt.mark_persisted(str(order["id"]))

        try:
            session = await self.payments.create_session(
                line_items=build_line_items(
                    drafts,
                    currency=self.settings.checkout_currency,
                    shipping_total=self.settings.checkout_shipping_total,
                ),
                customer_email=checkout.contact.email,
                success_url=f"{self.settings.base_url}/orders?success=true&session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{self.settings.base_url}/checkout?cancelled=true",
                metadata=self._session_metadata(attempt.nonce, checkout),
                client_reference_id=attempt.nonce,
            )
            attempt.mark_session_created(session.id)

            await self.orders.update_payment_session_id(attempt.order_id, session.id)
            attempt.advance(CheckoutState.RECONCILED)
        except Exception as e:
            failure = self._failure_for(attempt.state, e)
            await self.roll_back(attempt)
            if failure is e:
                raise
            raise failure from e

        self.registry.register(
            session_id=session.id,
            nonce=attempt.nonce,
            order_id=attempt.order_id,
        )
        logger.info(
            "Checkout %s reconciled: order %s bound to session %s",
            attempt.nonce,
            attempt.order_id,
            session.id,
        )
        return CheckoutResult(
            url=session.url,
            session_id=session.id,
            nonce=attempt.nonce,
            order_id=attempt.order_id,
        )

    async def get_session_status(self, session_id: str, nonce: str) -> dict[str, Any]:
        """Report whether a returning buyer's checkout has been paid.

        The Stripe session must carry the buyer's nonce; a session this
        process registered is checked against its nonce before Stripe is
        asked. Payment counts as verified once the webhook has confirmed it,
        either in this process (registry) or in the payments table. A
        verified session is removed from the registry.

        Raises:
            PaymentsNotConfiguredError: Stripe keys are missing.
            AuthorizationError: The session belongs to another checkout.
            APIError: Stripe lookup failed.
        """
        if not self.settings.stripe_secret_key:
            raise PaymentsNotConfiguredError()

        entry = self.registry.get_entry(session_id)
        if entry is not None and entry.nonce != nonce:
            raise AuthorizationError("Session mismatch")

        try:
            session = await self.payments.retrieve_session(session_id)
        except stripe.StripeError as e:
            logger.error("Stripe session lookup failed for %s: %s", session_id, str(e))
            raise APIError("Failed to verify session", error_type="session_lookup_failed") from e

        if session.client_reference_id != nonce:
            raise AuthorizationError("Session mismatch")

        verified = self.registry.is_verified(session_id)
        if not verified:
            try:
                payment = await self.orders.get_payment_by_session(session_id)
            except Exception as e:
                logger.warning("Payment lookup failed for session %s: %s", session_id, str(e))
                payment = None
            verified = bool(payment) and payment.get("status") == "succeeded"

        if verified:
            self.registry.clear(session_id)

        return {
            "status": session.status,
            "payment_status": session.payment_status,
            "paid": verified and session.payment_status == "paid",
            "verified": verified,
        }

    async def roll_back(self, attempt: CheckoutAttempt) -> None:
        """Delete the attempt's order and release any stock it reserved.

        Safe to call more than once. A failed delete is logged and leaves
        the stock held; the caller still sees the original error.
        """
        if not attempt.needs_compensation:
            return

        try:
            await self.orders.delete_order_releasing_stock(attempt.order_id)
        except Exception as e:
            logger.error(
                "Compensating delete of order %s failed for checkout %s: %s",
                attempt.order_id,
                attempt.nonce,
                str(e),
            )
        if attempt.session_id:
            await self.payments.expire_session(attempt.session_id)
        attempt.advance(CheckoutState.ROLLED_BACK)
        logger.warning("Checkout %s rolled back", attempt.nonce)

    async def _resolve_buyer(self, user: UserContext | None) -> str:
        if user is None:
            return self.settings.guest_buyer_id
        await self.orders.ensure_user_exists(user)
        return str(user.user_id)

    @staticmethod
    def _failure_for(state: CheckoutState, error: Exception) -> CheckoutError:
        if isinstance(error, CheckoutError):
            return error
        if state == CheckoutState.SESSION_CREATED:
            logger.error("Failed to bind payment to Stripe session: %s", str(error))
            return PaymentReconciliationError()
        logger.error("Unexpected checkout failure after order persistence: %s", str(error))
        return PaymentSessionError()

    @staticmethod
    def _session_metadata(nonce: str, checkout: ValidatedCheckout) -> dict[str, str]:
        shipping = checkout.shipping
        return {
            "checkoutNonce": nonce,
            "customerPhone": checkout.contact.phone,
            "shippingName": shipping.full_name,
            "shippingAddress": shipping.address,
            "shippingSuburb": shipping.suburb,
            "shippingState": shipping.state,
            "shippingPostcode": shipping.postcode,
        }
