"""Integration tests for checkout API endpoints."""

from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import stripe
from fastapi.testclient import TestClient

from src.api.middleware.error_handler import PaymentsNotConfiguredError, StockRaceLost
from src.services.checkout_service import CheckoutResult

ORDER_ID = "660e8400-e29b-41d4-a716-446655440000"
SELLER_ID = "aa0e8400-e29b-41d4-a716-446655440000"
PRODUCT_ID = "110e8400-e29b-41d4-a716-446655440000"
VARIANT_ID = "210e8400-e29b-41d4-a716-446655440000"
SESSION_URL = "https://checkout.stripe.com/c/pay/cs_test_123"

CHECKOUT_BODY = {
    "items": [{"productId": PRODUCT_ID, "variantId": VARIANT_ID, "quantity": 2}],
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


@pytest.fixture
def db() -> Generator[dict[str, MagicMock], None, None]:
    """Supabase tables behind the catalog and order services."""
    names = ("products", "product_variants", "orders", "payments", "sub_orders", "order_items", "users")
    tables = {name: MagicMock() for name in names}
    tables["products"].select.return_value.in_.return_value.execute.return_value = MagicMock(
        data=[{
            "id": PRODUCT_ID,
            "producer_id": SELLER_ID,
            "batch_id": None,
            "title": "Yellow Box Honey",
            "photos": [],
            "status": "approved",
        }]
    )
    tables["product_variants"].select.return_value.in_.return_value.execute.return_value = MagicMock(
        data=[{"id": VARIANT_ID, "product_id": PRODUCT_ID, "size": "250g", "price": 14.5, "stock": 3}]
    )
    tables["orders"].insert.return_value.execute.return_value = MagicMock(
        data=[{"id": ORDER_ID, "order_number": "HJ-20260119-0427"}]
    )
    tables["sub_orders"].insert.return_value.execute.return_value = MagicMock(data=[{"id": "sub-1"}])
    tables["payments"].update.return_value.eq.return_value.execute.return_value = MagicMock(
        data=[{"order_id": ORDER_ID, "stripe_checkout_session_id": "cs_test_123"}]
    )

    client = MagicMock()
    client.table.side_effect = lambda name: tables[name]
    with patch("src.services.catalog_service.get_supabase_client", return_value=client), \
            patch("src.services.order_service.get_supabase_client", return_value=client):
        yield tables


@pytest.fixture
def mock_stripe() -> Generator[MagicMock, None, None]:
    with patch("src.services.payment_session_service.get_stripe") as mock_get_stripe:
        mock_stripe = mock_get_stripe.return_value
        mock_stripe.checkout.Session.create.return_value = MagicMock(id="cs_test_123", url=SESSION_URL)
        yield mock_stripe


class TestCreateCheckout:
    """Tests for POST /api/v1/checkout."""

    def test_creates_order_and_returns_stripe_url(
        self,
        client: TestClient,
        db: dict[str, MagicMock],
        mock_stripe: MagicMock,
    ) -> None:
        response = client.post("/api/v1/checkout", json=CHECKOUT_BODY)

        assert response.status_code == 200
        assert response.json() == {"url": SESSION_URL}
        assert response.cookies["checkout_session"] == "cs_test_123"
        assert response.cookies["checkout_nonce"]

        payment_row = db["payments"].insert.call_args[0][0]
        assert payment_row["stripe_checkout_session_id"].startswith("pending_")
        db["payments"].update.assert_called_once_with({"stripe_checkout_session_id": "cs_test_123"})
        db["orders"].delete.assert_not_called()

        kwargs = mock_stripe.checkout.Session.create.call_args.kwargs
        assert kwargs["client_reference_id"] == response.cookies["checkout_nonce"]

    def test_insufficient_stock_creates_nothing(
        self,
        client: TestClient,
        db: dict[str, MagicMock],
        mock_stripe: MagicMock,
    ) -> None:
        body = {**CHECKOUT_BODY, "items": [{"productId": PRODUCT_ID, "variantId": VARIANT_ID, "quantity": 4}]}

        response = client.post("/api/v1/checkout", json=body)

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "Invalid quantity"
        assert data["code"] == "invalid_quantity"
        assert "timestamp" in data
        db["orders"].insert.assert_not_called()
        mock_stripe.checkout.Session.create.assert_not_called()

    def test_malformed_product_id_is_client_error(
        self,
        client: TestClient,
        db: dict[str, MagicMock],
        mock_stripe: MagicMock,
    ) -> None:
        body = {**CHECKOUT_BODY, "items": [{"productId": "abc", "variantId": VARIANT_ID, "quantity": 1}]}

        response = client.post("/api/v1/checkout", json=body)

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_cart_item"
        db["products"].select.assert_not_called()
        db["orders"].insert.assert_not_called()

    def test_stripe_failure_deletes_order(
        self,
        client: TestClient,
        db: dict[str, MagicMock],
        mock_stripe: MagicMock,
    ) -> None:
        mock_stripe.checkout.Session.create.side_effect = stripe.StripeError("api unavailable")

        response = client.post("/api/v1/checkout", json=CHECKOUT_BODY)

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to create checkout session"
        assert response.json()["code"] == "payment_session_failed"
        db["orders"].delete.return_value.eq.assert_called_once_with("id", ORDER_ID)
        assert "checkout_nonce" not in response.cookies

    def test_session_upgrade_failure_deletes_order(
        self,
        client: TestClient,
        db: dict[str, MagicMock],
        mock_stripe: MagicMock,
    ) -> None:
        db["payments"].update.return_value.eq.return_value.execute.return_value = MagicMock(data=[])

        response = client.post("/api/v1/checkout", json=CHECKOUT_BODY)

        assert response.status_code == 500
        assert response.json()["code"] == "payment_reconciliation_failed"
        db["orders"].delete.return_value.eq.assert_called_once_with("id", ORDER_ID)
        mock_stripe.checkout.Session.expire.assert_called_once_with("cs_test_123")

    def test_empty_cart(self, client: TestClient, db: dict[str, MagicMock]) -> None:
        response = client.post("/api/v1/checkout", json={**CHECKOUT_BODY, "items": []})

        assert response.status_code == 400
        assert response.json()["error"] == "No items in cart"

    def test_missing_details(self, client: TestClient, db: dict[str, MagicMock]) -> None:
        response = client.post("/api/v1/checkout", json={"items": CHECKOUT_BODY["items"]})

        assert response.status_code == 400
        assert response.json()["error"] == "Missing checkout details"

    def test_invalid_address(self, client: TestClient, db: dict[str, MagicMock]) -> None:
        body = {**CHECKOUT_BODY, "shippingAddress": {**CHECKOUT_BODY["shippingAddress"], "state": "Queensland"}}

        response = client.post("/api/v1/checkout", json=body)

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "Invalid shipping address"
        assert data["details"][0]["loc"] == ["shippingAddress", "state"]

    def test_malformed_body(self, client: TestClient, db: dict[str, MagicMock]) -> None:
        response = client.post("/api/v1/checkout", json={"items": "not-a-list"})

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    @patch("src.api.routes.checkout.CheckoutService")
    def test_stock_race_is_conflict(self, mock_service: MagicMock, client: TestClient) -> None:
        mock_service.return_value.create_checkout = AsyncMock(side_effect=StockRaceLost("v1"))

        response = client.post("/api/v1/checkout", json=CHECKOUT_BODY)

        assert response.status_code == 409
        assert response.json()["code"] == "stock_race_lost"

    @patch("src.api.routes.checkout.CheckoutService")
    def test_payments_not_configured(self, mock_service: MagicMock, client: TestClient) -> None:
        mock_service.return_value.create_checkout = AsyncMock(side_effect=PaymentsNotConfiguredError())

        response = client.post("/api/v1/checkout", json=CHECKOUT_BODY)

        assert response.status_code == 500
        assert response.json()["error"] == "Payments are not configured"

    @patch("src.api.routes.checkout.CheckoutService")
    def test_unusable_token_checks_out_as_guest(self, mock_service: MagicMock, client: TestClient) -> None:
        mock_service.return_value.create_checkout = AsyncMock(
            return_value=CheckoutResult(url=SESSION_URL, session_id="cs_test_123", nonce="n1", order_id=ORDER_ID)
        )

        response = client.post(
            "/api/v1/checkout",
            json=CHECKOUT_BODY,
            headers={"Authorization": "Bearer not-a-jwt"},
        )

        assert response.status_code == 200
        assert mock_service.return_value.create_checkout.call_args.kwargs["user"] is None

    def test_request_id_is_echoed_in_errors(self, client: TestClient, db: dict[str, MagicMock]) -> None:
        response = client.post(
            "/api/v1/checkout",
            json={**CHECKOUT_BODY, "items": []},
            headers={"X-Request-ID": "req-42"},
        )

        assert response.json()["request_id"] == "req-42"


class TestCheckoutSession:
    """Tests for GET /api/v1/checkout/session."""

    def test_missing_session_id(self, client: TestClient) -> None:
        response = client.get("/api/v1/checkout/session")

        assert response.status_code == 400
        assert response.json()["error"] == "Missing session_id"

    def test_missing_cookies(self, client: TestClient) -> None:
        response = client.get("/api/v1/checkout/session", params={"session_id": "cs_test_123"})

        assert response.status_code == 401
        assert response.json()["error"] == "Missing verification cookie"

    def test_cookie_for_other_session(self, client: TestClient) -> None:
        client.cookies.set("checkout_nonce", "n1")
        client.cookies.set("checkout_session", "cs_test_other")

        response = client.get("/api/v1/checkout/session", params={"session_id": "cs_test_123"})

        assert response.status_code == 403
        assert response.json()["error"] == "Session mismatch"

    @patch("src.api.routes.checkout.CheckoutService")
    def test_verified_session_clears_cookies(self, mock_service: MagicMock, client: TestClient) -> None:
        mock_service.return_value.get_session_status = AsyncMock(return_value={
            "status": "complete",
            "payment_status": "paid",
            "paid": True,
            "verified": True,
        })
        client.cookies.set("checkout_nonce", "n1")
        client.cookies.set("checkout_session", "cs_test_123")

        response = client.get("/api/v1/checkout/session", params={"session_id": "cs_test_123"})

        assert response.status_code == 200
        assert response.json() == {"status": "complete", "payment_status": "paid", "paid": True, "verified": True}
        mock_service.return_value.get_session_status.assert_awaited_once_with("cs_test_123", nonce="n1")
        set_cookies = response.headers.get_list("set-cookie")
        assert any(c.startswith("checkout_nonce=") and "Max-Age=0" in c for c in set_cookies)

    @patch("src.api.routes.checkout.CheckoutService")
    def test_unverified_session_keeps_cookies(self, mock_service: MagicMock, client: TestClient) -> None:
        mock_service.return_value.get_session_status = AsyncMock(return_value={
            "status": "complete",
            "payment_status": "unpaid",
            "paid": False,
            "verified": False,
        })
        client.cookies.set("checkout_nonce", "n1")
        client.cookies.set("checkout_session", "cs_test_123")

        response = client.get("/api/v1/checkout/session", params={"session_id": "cs_test_123"})

        assert response.status_code == 200
        assert response.json()["verified"] is False
        assert "set-cookie" not in response.headers
