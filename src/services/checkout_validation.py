"""Field validation for checkout requests.

Runs before any lookup or write. All string fields are trimmed first and
every failure is reported as a client-correctable checkout error.
"""

import re
from dataclasses import dataclass
from typing import Any

from src.api.middleware.error_handler import (
    EmptyCartError,
    InvalidCustomerInfoError,
    InvalidShippingAddressError,
    MissingCheckoutDetailsError,
)
from src.models.order import AddressSnapshot
from src.schemas.checkout import CheckoutRequest
from src.services.catalog_service import CartLine

ALLOWED_STATES = frozenset({"NSW", "VIC", "QLD", "SA", "WA", "TAS", "NT", "ACT"})

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^[+\d ()-]+$")
POSTCODE_PATTERN = re.compile(r"^\d{4}$")

EMAIL_MAX_LENGTH = 200
PHONE_LENGTH = (8, 20)
NAME_LENGTH = (1, 50)
ADDRESS_LENGTH = (5, 120)
SUBURB_LENGTH = (2, 80)


@dataclass(frozen=True)
class ContactDetails:
    email: str
    phone: str


@dataclass(frozen=True)
class ShippingDetails:
    """Trimmed, validated delivery address."""

    first_name: str
    last_name: str
    address: str
    suburb: str
    state: str
    postcode: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_snapshot(self, country: str) -> AddressSnapshot:
        return {
            "street": self.address,
            "suburb": self.suburb,
            "state": self.state,
            "postcode": self.postcode,
            "country": country,
        }


@dataclass(frozen=True)
class ValidatedCheckout:
    items: list[CartLine]
    contact: ContactDetails
    shipping: ShippingDetails


def _normalize(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _within(value: str, bounds: tuple[int, int]) -> bool:
    low, high = bounds
    return low <= len(value) <= high


def _field_error(*loc: str, msg: str) -> dict[str, Any]:
    return {"loc": list(loc), "msg": msg, "type": "value_error"}


def is_valid_email(value: str) -> bool:
    return len(value) <= EMAIL_MAX_LENGTH and EMAIL_PATTERN.match(value) is not None


def is_valid_phone(value: str) -> bool:
    return _within(value, PHONE_LENGTH) and PHONE_PATTERN.match(value) is not None


def validate_checkout_request(request: CheckoutRequest) -> ValidatedCheckout:
    """Check a checkout request and return its trimmed contents.

    Raises:
        EmptyCartError: No items were submitted.
        MissingCheckoutDetailsError: Contact or address block is absent.
        InvalidCustomerInfoError: Email or phone is malformed.
        InvalidShippingAddressError: Any address field is out of bounds.
    """
    if not request.items:
        raise EmptyCartError()
    if request.customer_info is None or request.shipping_address is None:
        raise MissingCheckoutDetailsError()

    contact = ContactDetails(
        email=_normalize(request.customer_info.email),
        phone=_normalize(request.customer_info.phone),
    )
    contact_errors = []
    if not is_valid_email(contact.email):
        contact_errors.append(_field_error("customerInfo", "email", msg="must be a valid email address"))
    if not is_valid_phone(contact.phone):
        contact_errors.append(_field_error("customerInfo", "phone", msg="must be 8-20 digits, spaces, +, ( ) or -"))
    if contact_errors:
        raise InvalidCustomerInfoError(contact_errors)

    address = request.shipping_address
    shipping = ShippingDetails(
        first_name=_normalize(address.first_name),
        last_name=_normalize(address.last_name),
        address=_normalize(address.address),
        suburb=_normalize(address.suburb),
        state=_normalize(address.state),
        postcode=_normalize(address.postcode),
    )
    address_errors = []
    if not _within(shipping.first_name, NAME_LENGTH):
        address_errors.append(_field_error("shippingAddress", "firstName", msg="must be 1-50 characters"))
    if not _within(shipping.last_name, NAME_LENGTH):
        address_errors.append(_field_error("shippingAddress", "lastName", msg="must be 1-50 characters"))
    if not _within(shipping.address, ADDRESS_LENGTH):
        address_errors.append(_field_error("shippingAddress", "address", msg="must be 5-120 characters"))
    if not _within(shipping.suburb, SUBURB_LENGTH):
        address_errors.append(_field_error("shippingAddress", "suburb", msg="must be 2-80 characters"))
    if shipping.state not in ALLOWED_STATES:
        address_errors.append(_field_error("shippingAddress", "state", msg="must be an Australian state code"))
    if not POSTCODE_PATTERN.match(shipping.postcode):
        address_errors.append(_field_error("shippingAddress", "postcode", msg="must be 4 digits"))
    if address_errors:
        raise InvalidShippingAddressError(address_errors)

    items = [
        CartLine(
            product_id=_normalize(item.product_id),
            variant_id=_normalize(item.variant_id),
            quantity=item.quantity,
        )
        for item in request.items
    ]
    return ValidatedCheckout(items=items, contact=contact, shipping=shipping)
