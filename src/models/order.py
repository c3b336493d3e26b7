"""Order aggregate type definitions for database operations.

An order owns its sub-orders and its payment row; a sub-order owns its
order items. Deleting the order row cascades to all of them.
"""

from typing import Literal, TypedDict


# Order status enum values matching database enum
OrderStatus = Literal["pending", "confirmed", "partially_shipped", "shipped", "delivered", "cancelled"]

SubOrderStatus = Literal[
    "pending",
    "confirmed",
    "processing",
    "packed",
    "shipped",
    "delivered",
    "cancelled",
    "refunded",
]

PaymentStatus = Literal["pending", "processing", "succeeded", "failed", "refunded", "partially_refunded"]


class AddressSnapshot(TypedDict):
    """Immutable address embedded in an order."""

    street: str
    suburb: str
    state: str
    postcode: str
    country: str


class BatchSnapshot(TypedDict):
    """Provenance frozen on an order item at purchase time."""

    batch_id: str | None
    region: str
    harvest_date: str
    floral_sources: list[str]


class OrderRow(TypedDict):
    """orders table row."""

    id: str
    buyer_id: str
    order_number: str
    status: OrderStatus
    subtotal: float
    shipping_total: float
    platform_fee_total: float
    gst_total: float
    total: float
    shipping_address: AddressSnapshot
    billing_address: AddressSnapshot | None
    created_at: str
    updated_at: str


class SubOrderRow(TypedDict):
    """sub_orders table row, one per seller in an order."""

    id: str
    order_id: str
    seller_id: str
    status: SubOrderStatus
    subtotal: float
    shipping_cost: float
    platform_fee: float
    gst: float
    total: float
    created_at: str
    updated_at: str


class OrderItemRow(TypedDict):
    """order_items table row."""

    id: str
    sub_order_id: str
    product_id: str
    variant_id: str
    product_title: str
    variant_size: str
    quantity: int
    unit_price: float
    gst: float
    batch_snapshot: BatchSnapshot
    created_at: str


class PaymentRow(TypedDict, total=False):
    """payments table row.

    stripe_checkout_session_id holds `pending_<nonce>` until the real
    Stripe session id is known.
    """

    id: str
    order_id: str
    stripe_checkout_session_id: str
    stripe_payment_intent_id: str | None
    amount: float
    currency: str
    status: PaymentStatus
    method: str | None
    paid_at: str | None
    created_at: str
    updated_at: str
