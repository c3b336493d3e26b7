"""Notification request schemas."""

from pydantic import BaseModel, ConfigDict, Field


class SellerAddress(BaseModel):
    street: str = Field(min_length=1)
    suburb: str = Field(min_length=1)
    state: str = Field(min_length=1)
    postcode: str = Field(min_length=1)
    country: str = Field(default="Australia")


class SellerRegistrationNotification(BaseModel):
    """Details of a newly registered seller, sent to the verification inbox."""

    model_config = ConfigDict(from_attributes=True)

    business_name: str = Field(min_length=1, description="Trading name")
    email: str = Field(min_length=3, description="Seller contact email")
    abn: str | None = Field(default=None, description="Australian Business Number")
    address: SellerAddress
    bio: str = Field(min_length=1, description="About the business")
    producer_id: str = Field(min_length=1, description="Producer record id")
    user_id: str = Field(min_length=1, description="Owning user id")
    full_legal_name: str | None = None
    seller_type: str | None = Field(default=None, description="'individual' or 'business'")
    phone_number: str | None = None
    beekeeper_registration_number: str | None = None
    registering_authority: str | None = None
    agent_email: str | None = Field(default=None, description="Override recipient")


class NotificationQueuedResponse(BaseModel):
    queued: bool = Field(default=True)
