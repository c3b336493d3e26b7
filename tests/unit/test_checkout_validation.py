"""Unit tests for checkout request validation."""

from typing import Any

import pytest

from src.api.middleware.error_handler import (
    EmptyCartError,
    InvalidCustomerInfoError,
    InvalidShippingAddressError,
    MissingCheckoutDetailsError,
)
from src.schemas.checkout import CheckoutRequest
from src.services.checkout_validation import is_valid_email, is_valid_phone, validate_checkout_request


def checkout_payload(**overrides: Any) -> dict[str, Any]:
    """A valid storefront checkout body in camelCase."""
    payload = {
        "items": [{"productId": "p1", "variantId": "v1", "quantity": 2}],
        "customerInfo": {"email": "buyer@example.com", "phone": "0412 345 678"},
        "shippingAddress": {
            "firstName": "Jane",
            "lastName": "Citizen",
            "address": "12 Honeycomb Lane",
            "suburb": "Fitzroy",
            "state": "VIC",
            "postcode": "3065",
        },
    }
    payload.update(overrides)
    return payload


def address(**overrides: str) -> dict[str, str]:
    fields = dict(checkout_payload()["shippingAddress"])
    fields.update(overrides)
    return fields


class TestValidateCheckoutRequest:
    """Tests for validate_checkout_request."""

    def test_valid_request(self) -> None:
        checkout = validate_checkout_request(CheckoutRequest.model_validate(checkout_payload()))

        assert checkout.contact.email == "buyer@example.com"
        assert checkout.shipping.full_name == "Jane Citizen"
        assert checkout.items[0].product_id == "p1"
        assert checkout.items[0].quantity == 2

    def test_trims_whitespace(self) -> None:
        payload = checkout_payload(
            customerInfo={"email": "  buyer@example.com ", "phone": " +61 412 345 678 "},
            shippingAddress=address(suburb="  Fitzroy  ", postcode=" 3065 "),
        )

        checkout = validate_checkout_request(CheckoutRequest.model_validate(payload))

        assert checkout.contact.email == "buyer@example.com"
        assert checkout.contact.phone == "+61 412 345 678"
        assert checkout.shipping.suburb == "Fitzroy"
        assert checkout.shipping.postcode == "3065"

    def test_accepts_snake_case_keys(self) -> None:
        request = CheckoutRequest.model_validate({
            "items": [{"product_id": "p1", "variant_id": "v1", "quantity": 1}],
            "customer_info": {"email": "buyer@example.com", "phone": "0412345678"},
            "shipping_address": {
                "first_name": "Jane",
                "last_name": "Citizen",
                "address": "12 Honeycomb Lane",
                "suburb": "Fitzroy",
                "state": "VIC",
                "postcode": "3065",
            },
        })

        checkout = validate_checkout_request(request)

        assert checkout.items[0].variant_id == "v1"

    def test_empty_cart(self) -> None:
        with pytest.raises(EmptyCartError) as exc_info:
            validate_checkout_request(CheckoutRequest.model_validate(checkout_payload(items=[])))

        assert exc_info.value.message == "No items in cart"
        assert exc_info.value.status_code == 400

    def test_missing_customer_info(self) -> None:
        payload = checkout_payload()
        del payload["customerInfo"]

        with pytest.raises(MissingCheckoutDetailsError):
            validate_checkout_request(CheckoutRequest.model_validate(payload))

    def test_missing_shipping_address(self) -> None:
        payload = checkout_payload()
        del payload["shippingAddress"]

        with pytest.raises(MissingCheckoutDetailsError):
            validate_checkout_request(CheckoutRequest.model_validate(payload))

    @pytest.mark.parametrize(
        "customer_info",
        [
            {"email": "not-an-email", "phone": "0412345678"},
            {"email": "buyer@example.com", "phone": "1234"},
            {"email": "buyer@example.com", "phone": "0412-ABC-678"},
            {"email": "", "phone": ""},
        ],
    )
    def test_invalid_customer_info(self, customer_info: dict[str, str]) -> None:
        payload = checkout_payload(customerInfo=customer_info)

        with pytest.raises(InvalidCustomerInfoError) as exc_info:
            validate_checkout_request(CheckoutRequest.model_validate(payload))

        assert exc_info.value.message == "Invalid customer info"
        assert exc_info.value.details

    @pytest.mark.parametrize(
        "overrides",
        [
            {"firstName": ""},
            {"lastName": "x" * 51},
            {"address": "1 A"},
            {"suburb": "F"},
            {"state": "Victoria"},
            {"state": "vic"},
            {"postcode": "306"},
            {"postcode": "30655"},
            {"postcode": "ABCD"},
        ],
    )
    def test_invalid_shipping_address(self, overrides: dict[str, str]) -> None:
        payload = checkout_payload(shippingAddress=address(**overrides))

        with pytest.raises(InvalidShippingAddressError) as exc_info:
            validate_checkout_request(CheckoutRequest.model_validate(payload))

        assert exc_info.value.message == "Invalid shipping address"

    def test_reports_every_bad_address_field(self) -> None:
        payload = checkout_payload(shippingAddress=address(state="XX", postcode="1"))

        with pytest.raises(InvalidShippingAddressError) as exc_info:
            validate_checkout_request(CheckoutRequest.model_validate(payload))

        locs = [detail["loc"][-1] for detail in exc_info.value.details]
        assert locs == ["state", "postcode"]

    def test_contact_checked_before_address(self) -> None:
        payload = checkout_payload(
            customerInfo={"email": "bad", "phone": "0412345678"},
            shippingAddress=address(state="XX"),
        )

        with pytest.raises(InvalidCustomerInfoError):
            validate_checkout_request(CheckoutRequest.model_validate(payload))


class TestFieldRules:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("buyer@example.com", True),
            ("first.last+tag@shop.com.au", True),
            ("buyer@example", False),
            ("buyer example@x.com", False),
            ("a" * 195 + "@x.com", False),
        ],
    )
    def test_email(self, value: str, expected: bool) -> None:
        assert is_valid_email(value) is expected

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("0412345678", True),
            ("+61 (4) 1234-5678", True),
            ("1234567", False),
            ("1" * 21, False),
            ("0412.345.678", False),
        ],
    )
    def test_phone(self, value: str, expected: bool) -> None:
        assert is_valid_phone(value) is expected
