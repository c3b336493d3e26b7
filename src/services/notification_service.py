"""Fire-and-forget notifications scheduled after the response is sent."""

import logging
from typing import Any, Awaitable, Callable

from fastapi import BackgroundTasks

from src.schemas.notification import SellerRegistrationNotification
from src.services.email_service import EmailService
from src.services.order_service import OrderService

logger = logging.getLogger(__name__)


async def run_safely(name: str, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> None:
    """Run a notification, logging instead of raising on failure."""
    try:
        result = await func(*args, **kwargs)
        if isinstance(result, dict) and result.get("success") is False:
            logger.warning("Notification %s not delivered: %s", name, result.get("error"))
    except Exception as e:
        logger.error("Notification %s failed: %s", name, str(e))


class NotificationDispatcher:
    """Queues notifications as FastAPI background tasks.

    Failures never reach the request that triggered the notification.
    """

    def __init__(self, background_tasks: BackgroundTasks) -> None:
        self.background_tasks = background_tasks

    def dispatch(self, name: str, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> None:
        self.background_tasks.add_task(run_safely, name, func, *args, **kwargs)
        logger.debug("Queued notification %s", name)

    def seller_registration(self, data: SellerRegistrationNotification) -> None:
        self.dispatch("seller_registration", _send_seller_registration, data)

    def order_confirmation(self, to_email: str, order_id: str) -> None:
        self.dispatch("order_confirmation", _send_order_confirmation, to_email, order_id)


async def _send_seller_registration(data: SellerRegistrationNotification) -> dict[str, Any]:
    return await EmailService().send_seller_registration_email(data)


async def _send_order_confirmation(to_email: str, order_id: str) -> dict[str, Any]:
    order = await OrderService().get_order(order_id)
    if order is None:
        return {"success": False, "error": f"Order {order_id} not found"}
    return await EmailService().send_order_confirmation_email(to_email, order)
