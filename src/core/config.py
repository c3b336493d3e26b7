"""Application configuration management using Pydantic Settings."""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="hivejoy-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    max_request_body_size: int = Field(default=1_048_576, description="Maximum request body size in bytes")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # Public storefront URL used for Stripe redirects and email links
    app_base_url: str | None = Field(default=None, description="Public storefront base URL")

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    supabase_signing_key_jwk: str = Field(..., description="Supabase signing key JWK (JSON string) for JWT token verification")

    # Stripe
    stripe_secret_key: str = Field(default="", description="Stripe secret API key")
    stripe_webhook_secret: str = Field(default="", description="Stripe webhook signing secret")

    # Email (Resend)
    resend_api_key: str = Field(default="", description="Resend API key for sending emails")
    email_from_address: str = Field(
        default="Hive Joy <noreply@hivejoy.com>",
        description="From address for transactional emails",
    )
    seller_verification_email: str = Field(
        default="",
        description="Inbox that receives new seller registration notifications",
    )

    # Checkout business rules
    checkout_currency: str = Field(default="aud", description="ISO currency code for Stripe line items")
    checkout_shipping_total: Decimal = Field(
        default=Decimal("12.00"),
        ge=0,
        description="Flat shipping charged per order, split evenly across sellers",
    )
    platform_fee_rate: Decimal = Field(
        default=Decimal("0.10"),
        ge=0,
        le=1,
        description="Platform fee as a fraction of each seller subtotal",
    )
    gst_rate: Decimal = Field(default=Decimal("0.10"), ge=0, le=1, description="GST fraction reported per line item")
    checkout_payment_method_types: str = Field(
        default="card,afterpay_clearpay",
        description="Comma-separated Stripe payment method types",
    )
    checkout_cookie_max_age: int = Field(
        default=7200,
        description="Lifetime of checkout correlation cookies and registry entries in seconds",
    )
    checkout_reserve_stock: bool = Field(
        default=False,
        description="Decrement variant stock with compare-and-swap when the order is persisted",
    )
    guest_buyer_id: str = Field(
        default="00000000-0000-0000-0000-000000000001",
        description="Buyer id recorded for unauthenticated checkouts",
    )
    order_number_prefix: str = Field(default="HJ", description="Prefix for human-readable order numbers")
    shipping_country: str = Field(default="Australia", description="Country recorded on shipping snapshots")
    placeholder_payment_max_age_minutes: int = Field(
        default=30,
        description="Age after which orders with a placeholder payment session are purged",
    )

    @model_validator(mode="after")
    def require_base_url_in_production(self) -> "Settings":
        """Refuse to start in production without an explicit storefront URL."""
        if self.app_base_url is None and self.is_production:
            raise ValueError("APP_BASE_URL must be set in production")
        return self

    @property
    def base_url(self) -> str:
        """Storefront base URL without a trailing slash."""
        return (self.app_base_url or "http://localhost:3000").rstrip("/")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def payment_method_types(self) -> list[str]:
        """Parse Stripe payment method types into a list."""
        return [
            method.strip()
            for method in self.checkout_payment_method_types.split(",")
            if method.strip()
        ]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_stripe_test_mode(self) -> bool:
        """Check if using Stripe test keys."""
        return self.stripe_secret_key.startswith("sk_test_")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
