"""Order Pydantic schemas for API responses."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from src.models.order import OrderStatus, PaymentStatus, SubOrderStatus


class AddressSnapshotSchema(BaseModel):
    """Shipping address frozen on the order."""

    model_config = ConfigDict(from_attributes=True)

    street: str
    suburb: str
    state: str
    postcode: str
    country: str


class BatchSnapshotSchema(BaseModel):
    """Provenance frozen on an order item."""

    model_config = ConfigDict(from_attributes=True)

    batch_id: str | None = None
    region: str = ""
    harvest_date: str = ""
    floral_sources: list[str] = Field(default_factory=list)


class OrderItemResponse(BaseModel):
    """Schema for a single line item in a sub-order."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Order item id")
    sub_order_id: str = Field(description="Owning sub-order id")
    product_id: str = Field(description="Product id at purchase time")
    variant_id: str = Field(description="Variant id at purchase time")
    product_title: str = Field(description="Product title snapshot")
    variant_size: str = Field(description="Variant size snapshot")
    quantity: int = Field(ge=1, description="Quantity ordered")
    unit_price: Decimal = Field(description="Unit price")
    gst: Decimal = Field(description="GST included in the unit price")
    batch_snapshot: BatchSnapshotSchema | None = Field(default=None, description="Batch provenance snapshot")


class SubOrderResponse(BaseModel):
    """Schema for the part of an order fulfilled by one seller."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    seller_id: str
    status: SubOrderStatus
    subtotal: Decimal
    shipping_cost: Decimal
    platform_fee: Decimal
    gst: Decimal
    total: Decimal
    items: list[OrderItemResponse] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PaymentResponse(BaseModel):
    """Schema for the order's payment record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    stripe_checkout_session_id: str | None = None
    stripe_payment_intent_id: str | None = None
    amount: Decimal
    currency: str
    status: PaymentStatus
    paid_at: datetime | None = None


class OrderResponse(BaseModel):
    """Schema for order API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Order unique identifier")
    buyer_id: str = Field(description="Buyer user id")
    order_number: str = Field(description="Human-readable order number")
    status: OrderStatus = Field(description="Order status")
    subtotal: Decimal
    shipping_total: Decimal
    platform_fee_total: Decimal
    gst_total: Decimal
    total: Decimal
    shipping_address: AddressSnapshotSchema
    billing_address: AddressSnapshotSchema | None = None
    sub_orders: list[SubOrderResponse] = Field(default_factory=list)
    payment: PaymentResponse | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class OrderListResponse(BaseModel):
    """Schema for paginated order lists."""

    model_config = ConfigDict(from_attributes=True)

    data: list[OrderResponse] = Field(description="Orders on this page")
    total: int = Field(description="Total number of matching orders")
    page: int = Field(description="Current page (1-based)")
    page_size: int = Field(description="Page size")


OrderRole = Literal["buyer", "seller"]


class SubOrderStatusUpdate(BaseModel):
    """Schema for PATCH /orders/sub-orders/{id}/status."""

    status: SubOrderStatus = Field(description="Target fulfillment status")
