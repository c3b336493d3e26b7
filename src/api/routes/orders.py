"""Order API routes for buyers and sellers."""

from typing import Annotated

from fastapi import APIRouter, Query

from src.api.deps import CurrentUser
from src.models.order import OrderStatus, SubOrderStatus
from src.schemas.order import (
    OrderListResponse,
    OrderResponse,
    OrderRole,
    SubOrderResponse,
    SubOrderStatusUpdate,
)
from src.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List my orders",
    description="Buyers see orders they placed; sellers see orders containing their sub-orders.",
)
async def list_orders(
    user: CurrentUser,
    role: OrderRole = "buyer",
    status: Annotated[OrderStatus | SubOrderStatus | None, Query()] = None,
    date_from: Annotated[str | None, Query(description="ISO timestamp, inclusive")] = None,
    date_to: Annotated[str | None, Query(description="ISO timestamp, inclusive")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 10,
) -> OrderListResponse:
    """List orders for the authenticated user, newest first.

    For sellers, each order only carries that seller's sub-orders and the
    status filter applies to sub-order status.
    """
    orders, total = await OrderService().list_orders(
        user_id=str(user.user_id),
        role=role,
        status=status,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size,
    )
    return OrderListResponse(
        data=[OrderResponse.model_validate(order) for order in orders],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order by ID",
    description="Visible to the buyer and to sellers with a sub-order in it.",
)
async def get_order(order_id: str, user: CurrentUser) -> OrderResponse:
    """Get a single order with sub-orders, items and payment.

    Raises:
        NotFoundError: 404 if the order does not exist.
        AuthorizationError: 403 if the user has no part in the order.
    """
    order = await OrderService().get_order_for_user(order_id, str(user.user_id))
    return OrderResponse.model_validate(order)


@router.patch(
    "/sub-orders/{sub_order_id}/status",
    response_model=SubOrderResponse,
    summary="Update sub-order fulfillment status",
    description="Sellers advance their own sub-orders one step at a time, or cancel/refund them.",
)
async def update_sub_order_status(
    sub_order_id: str,
    data: SubOrderStatusUpdate,
    user: CurrentUser,
) -> SubOrderResponse:
    """Move a sub-order to its next fulfillment status.

    Raises:
        NotFoundError: 404 if the sub-order does not exist.
        AuthorizationError: 403 if the sub-order belongs to another seller.
        BadRequestError: 400 if the transition is not allowed.
    """
    sub_order = await OrderService().update_sub_order_status(
        sub_order_id=sub_order_id,
        seller_id=str(user.user_id),
        status=data.status,
    )
    return SubOrderResponse.model_validate(sub_order)
