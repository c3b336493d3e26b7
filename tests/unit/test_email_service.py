"""Unit tests for transactional emails and notification dispatch."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import BackgroundTasks

from src.schemas.notification import SellerRegistrationNotification
from src.services.email_service import EmailService
from src.services.notification_service import NotificationDispatcher, run_safely


def registration(**overrides) -> SellerRegistrationNotification:
    data = {
        "business_name": "Golden <Hive> Apiary",
        "email": "seller@example.com",
        "abn": "51 824 753 556",
        "address": {"street": "4 Bee St", "suburb": "Mudgee", "state": "NSW", "postcode": "2850"},
        "bio": "Small family apiary.",
        "producer_id": "producer-1",
        "user_id": "user-1",
        "seller_type": "individual",
    }
    data.update(overrides)
    return SellerRegistrationNotification.model_validate(data)


ORDER = {
    "id": "order-1",
    "order_number": "HJ-20260119-0427",
    "total": 57.0,
    "shipping_total": 12.0,
    "sub_orders": [
        {"items": [{"product_title": "Manuka Honey", "variant_size": "500g", "quantity": 2, "unit_price": 10.0}]},
        {"items": [{"product_title": "Clover Honey", "variant_size": "1kg", "quantity": 1, "unit_price": 25.0}]},
    ],
}


class TestSellerRegistrationEmail:
    @pytest.mark.asyncio
    @patch("src.services.email_service.resend")
    async def test_sends_to_verification_inbox(self, mock_resend: MagicMock) -> None:
        mock_resend.Emails.send.return_value = {"id": "email_123"}

        result = await EmailService().send_seller_registration_email(registration())

        assert result == {"success": True, "email_id": "email_123"}
        params = mock_resend.Emails.send.call_args[0][0]
        assert params["to"] == ["verify@hivejoy.test"]
        assert params["subject"] == "New Seller Registration: Golden <Hive> Apiary"
        assert "Golden &lt;Hive&gt; Apiary" in params["html"]
        assert "Individual beekeeper" in params["html"]
        assert "/admin/seller-applications/producer-1" in params["html"]
        assert "ABN: 51 824 753 556" in params["text"]

    @pytest.mark.asyncio
    @patch("src.services.email_service.resend")
    async def test_agent_email_overrides_inbox(self, mock_resend: MagicMock) -> None:
        mock_resend.Emails.send.return_value = {"id": "email_123"}

        await EmailService().send_seller_registration_email(registration(agent_email="agent@hivejoy.test"))

        assert mock_resend.Emails.send.call_args[0][0]["to"] == ["agent@hivejoy.test"]

    @pytest.mark.asyncio
    @patch("src.services.email_service.resend")
    async def test_no_recipient_configured(self, mock_resend: MagicMock) -> None:
        service = EmailService()
        service.settings = service.settings.model_copy(update={"seller_verification_email": ""})

        result = await service.send_seller_registration_email(registration())

        assert result["success"] is False
        mock_resend.Emails.send.assert_not_called()

    @pytest.mark.asyncio
    @patch("src.services.email_service.resend")
    async def test_send_failure_is_reported(self, mock_resend: MagicMock) -> None:
        mock_resend.Emails.send.side_effect = Exception("rate limited")

        result = await EmailService().send_seller_registration_email(registration())

        assert result == {"success": False, "error": "rate limited"}


class TestOrderConfirmationEmail:
    @pytest.mark.asyncio
    @patch("src.services.email_service.resend")
    async def test_lists_items_and_total(self, mock_resend: MagicMock) -> None:
        mock_resend.Emails.send.return_value = {"id": "email_456"}

        result = await EmailService().send_order_confirmation_email("buyer@example.com", ORDER)

        assert result["success"] is True
        params = mock_resend.Emails.send.call_args[0][0]
        assert params["to"] == ["buyer@example.com"]
        assert "HJ-20260119-0427" in params["subject"]
        assert "Manuka Honey - 500g x 2" in params["text"]
        assert "Total: $57.00" in params["text"]


class TestNotificationDispatcher:
    def test_queues_background_task(self) -> None:
        background_tasks = BackgroundTasks()

        NotificationDispatcher(background_tasks).order_confirmation("buyer@example.com", "order-1")

        assert len(background_tasks.tasks) == 1
        assert background_tasks.tasks[0].func is run_safely

    @pytest.mark.asyncio
    async def test_run_safely_swallows_errors(self) -> None:
        failing = AsyncMock(side_effect=RuntimeError("smtp down"))

        await run_safely("order_confirmation", failing, "buyer@example.com")

        failing.assert_awaited_once_with("buyer@example.com")

    @pytest.mark.asyncio
    async def test_order_confirmation_loads_order(self) -> None:
        background_tasks = BackgroundTasks()
        NotificationDispatcher(background_tasks).order_confirmation("buyer@example.com", "order-1")
        task = background_tasks.tasks[0]

        with patch("src.services.notification_service.OrderService") as mock_order_service, \
                patch("src.services.notification_service.EmailService") as mock_email_service:
            mock_order_service.return_value.get_order = AsyncMock(return_value=ORDER)
            mock_email_service.return_value.send_order_confirmation_email = AsyncMock(
                return_value={"success": True, "email_id": "email_456"}
            )
            await task()

        mock_email_service.return_value.send_order_confirmation_email.assert_awaited_once_with(
            "buyer@example.com", ORDER
        )

    @pytest.mark.asyncio
    async def test_order_confirmation_for_missing_order(self) -> None:
        background_tasks = BackgroundTasks()
        NotificationDispatcher(background_tasks).order_confirmation("buyer@example.com", "order-1")

        with patch("src.services.notification_service.OrderService") as mock_order_service, \
                patch("src.services.notification_service.EmailService") as mock_email_service:
            mock_order_service.return_value.get_order = AsyncMock(return_value=None)
            await background_tasks.tasks[0]()

        mock_email_service.assert_not_called()
