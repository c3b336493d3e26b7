"""Checkout Pydantic schemas for API request/response models.

Request models accept the storefront's camelCase keys as well as
snake_case. Field contents are validated by the checkout validation
step rather than by pydantic so that bad input maps onto the checkout
error taxonomy (400 with a short message).
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CheckoutInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CheckoutItem(_CheckoutInput):
    """A single cart line as submitted by the storefront."""

    product_id: str = Field(default="", description="Product UUID")
    variant_id: str = Field(default="", description="Product variant UUID")
    quantity: Any = Field(default=None, description="Requested quantity (positive integer)")


class CustomerInfo(_CheckoutInput):
    """Buyer contact details."""

    email: str = Field(default="", description="Receipt email")
    phone: str = Field(default="", description="Contact phone number")


class ShippingAddressInput(_CheckoutInput):
    """Delivery address as entered on the checkout form."""

    first_name: str = Field(default="", description="Recipient first name")
    last_name: str = Field(default="", description="Recipient last name")
    address: str = Field(default="", description="Street address")
    suburb: str = Field(default="", description="Suburb")
    state: str = Field(default="", description="Australian state or territory code")
    postcode: str = Field(default="", description="Four digit postcode")


class CheckoutRequest(_CheckoutInput):
    """Schema for POST /checkout."""

    items: list[CheckoutItem] = Field(default_factory=list, description="Cart lines")
    customer_info: CustomerInfo | None = Field(default=None, description="Buyer contact details")
    shipping_address: ShippingAddressInput | None = Field(default=None, description="Delivery address")


class CheckoutResponse(BaseModel):
    """Schema for a successful checkout: where to send the buyer."""

    url: str = Field(description="Stripe Checkout URL to redirect to")


class CheckoutSessionStatusResponse(BaseModel):
    """Schema for GET /checkout/session confirmation checks."""

    model_config = ConfigDict(from_attributes=True)

    status: str | None = Field(default=None, description="Stripe session status")
    payment_status: str | None = Field(default=None, description="Stripe payment status")
    paid: bool = Field(description="Payment confirmed by webhook and by Stripe")
    verified: bool = Field(description="Payment confirmation received via webhook")
