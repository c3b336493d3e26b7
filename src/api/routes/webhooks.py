"""Webhook API routes for external service integrations."""

import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, status

from src.services.notification_service import NotificationDispatcher
from src.services.payment_session_service import PaymentSessionService
from src.services.payment_webhook_service import PaymentWebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/stripe",
    status_code=status.HTTP_200_OK,
    summary="Handle Stripe webhooks",
    description="Receives and processes Stripe webhook events. Requires valid signature.",
)
async def stripe_webhook(request: Request, background_tasks: BackgroundTasks) -> dict[str, str]:
    """Handle Stripe Checkout webhook events.

    Handles:
    - checkout.session.completed: payment succeeded (paid) or processing (delayed methods)
    - checkout.session.async_payment_succeeded: delayed payment settled
    - checkout.session.async_payment_failed: payment failed
    - checkout.session.expired: payment failed and order cancelled

    Other event types are acknowledged and ignored.

    Raises:
        HTTPException: 400 if the signature header is missing or invalid.
    """
    payload = await request.body()

    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        logger.error("Missing Stripe-Signature header in webhook request")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe-Signature header",
        )

    try:
        event = PaymentSessionService().verify_webhook_signature(payload, sig_header)
    except ValueError as e:
        logger.error("Invalid webhook signature: %s", str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from e

    event_type = event.get("type", "")
    logger.info("Processing Stripe webhook event: %s (%s)", event_type, event.get("id"))

    service = PaymentWebhookService(notifications=NotificationDispatcher(background_tasks))
    order_id = await service.handle_event(event)
    if order_id:
        logger.info("Processed %s for order %s", event_type, order_id)

    # Always acknowledge so Stripe does not retry handled or ignored events
    return {"status": "received"}
