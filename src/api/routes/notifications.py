"""Notification routes."""

from fastapi import APIRouter, BackgroundTasks, status

from src.api.deps import CurrentUser
from src.schemas.notification import NotificationQueuedResponse, SellerRegistrationNotification
from src.services.notification_service import NotificationDispatcher

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post(
    "/seller-registration",
    response_model=NotificationQueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Notify verification team of a new seller",
    description="Queues the seller registration email. Delivery failures are logged, never returned.",
)
async def notify_seller_registration(
    data: SellerRegistrationNotification,
    background_tasks: BackgroundTasks,
    user: CurrentUser,
) -> NotificationQueuedResponse:
    """Queue the seller registration email to the verification inbox."""
    NotificationDispatcher(background_tasks).seller_registration(data)
    return NotificationQueuedResponse(queued=True)
