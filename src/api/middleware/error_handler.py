"""Global error handling for consistent error responses."""

import logging
import traceback
from typing import Any, Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors.

    Use this class to raise application-specific errors that should
    be returned to the client with a specific status code and message.
    """

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_type: str = "api_error",
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        """Initialize API error.

        Args:
            message: Human-readable error message.
            status_code: HTTP status code to return.
            error_type: Error category/type for client handling.
            details: Optional additional error details.
        """
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        self.details = details
        super().__init__(message)

    @property
    def is_client_error(self) -> bool:
        """Whether the caller can fix the request and retry."""
        return self.status_code < 500


class NotFoundError(APIError):
    """Resource not found error."""

    def __init__(self, message: str = "Resource not found", details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_type="not_found",
            details=details,
        )


class BadRequestError(APIError):
    """Client-correctable request error."""

    def __init__(
        self,
        message: str = "Bad request",
        error_type: str = "bad_request",
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_type=error_type,
            details=details,
        )


class AuthorizationError(APIError):
    """Authorization failure error."""

    def __init__(self, message: str = "Access denied", details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_type="authorization_error",
            details=details,
        )


# Checkout errors


class CheckoutError(APIError):
    """Base class for every failure of a checkout attempt."""


class CheckoutValidationError(CheckoutError):
    """Checkout request rejected before anything is written."""

    def __init__(
        self,
        message: str,
        error_type: str = "invalid_checkout",
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_type=error_type,
            details=details,
        )


class EmptyCartError(CheckoutValidationError):
    def __init__(self) -> None:
        super().__init__("No items in cart", error_type="empty_cart")


class MissingCheckoutDetailsError(CheckoutValidationError):
    def __init__(self) -> None:
        super().__init__("Missing checkout details", error_type="missing_checkout_details")


class InvalidCustomerInfoError(CheckoutValidationError):
    def __init__(self, details: list[dict[str, Any]] | None = None) -> None:
        super().__init__("Invalid customer info", error_type="invalid_customer_info", details=details)


class InvalidShippingAddressError(CheckoutValidationError):
    def __init__(self, details: list[dict[str, Any]] | None = None) -> None:
        super().__init__("Invalid shipping address", error_type="invalid_shipping_address", details=details)


class InvalidCartItem(CheckoutValidationError):
    """Product or variant is unknown, unpublished or malformed."""

    def __init__(self, product_id: str, variant_id: str, reason: str = "not found") -> None:
        super().__init__(
            "Invalid cart item",
            error_type="invalid_cart_item",
            details=[{
                "loc": ["items", product_id, variant_id],
                "msg": reason,
                "type": "invalid_cart_item",
            }],
        )
        self.product_id = product_id
        self.variant_id = variant_id


class InvalidQuantity(CheckoutValidationError):
    """Quantity is not a positive integer or exceeds available stock."""

    def __init__(self, variant_id: str, requested: Any, available: int | None = None) -> None:
        reason = (
            f"requested {requested}, available {available}"
            if available is not None
            else f"invalid quantity {requested!r}"
        )
        super().__init__(
            "Invalid quantity",
            error_type="invalid_quantity",
            details=[{"loc": ["items", variant_id, "quantity"], "msg": reason, "type": "invalid_quantity"}],
        )
        self.variant_id = variant_id
        self.requested = requested
        self.available = available


class StockRaceLost(CheckoutError):
    """Stock was taken by a concurrent checkout between resolution and persistence."""

    def __init__(self, variant_id: str) -> None:
        super().__init__(
            message="Insufficient stock",
            status_code=status.HTTP_409_CONFLICT,
            error_type="stock_race_lost",
            details=[{"loc": ["items", variant_id], "msg": "stock changed during checkout", "type": "stock_race_lost"}],
        )
        self.variant_id = variant_id


class PaymentsNotConfiguredError(CheckoutError):
    def __init__(self) -> None:
        super().__init__(
            message="Payments are not configured",
            error_type="payments_not_configured",
        )


class OrderPersistenceError(CheckoutError):
    """The order aggregate could not be written."""

    def __init__(self, message: str = "Failed to create checkout session") -> None:
        super().__init__(message=message, error_type="order_persistence_failed")


class PaymentSessionError(CheckoutError):
    """The payment provider refused or failed to create a checkout session."""

    def __init__(self, message: str = "Failed to create checkout session") -> None:
        super().__init__(message=message, error_type="payment_session_failed")


class PaymentReconciliationError(CheckoutError):
    """Provider session exists but the local payment row could not be upgraded."""

    def __init__(self) -> None:
        super().__init__(
            message="Failed to finalize checkout. Please try again.",
            error_type="payment_reconciliation_failed",
        )


def create_error_response(
    error_type: str,
    message: str,
    status_code: int,
    details: list[dict[str, Any]] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    """Create a standardized JSON error response.

    Args:
        error_type: Error category for client handling.
        message: Human-readable error description.
        status_code: HTTP status code.
        details: Optional error details.
        request_id: Optional request ID for tracing.

    Returns:
        JSONResponse: Formatted error response.
    """
    error_response = ErrorResponse.from_exception(
        error_type=error_type,
        message=message,
        details=details,
        request_id=request_id,
    )
    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json", exclude_none=True),
    )


async def error_handler_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Middleware to catch and format all exceptions.

    Logs full stack traces for server errors while returning safe
    messages to clients.

    Args:
        request: The incoming request.
        call_next: Next middleware or route handler.

    Returns:
        Response: Either the successful response or formatted error response.
    """
    request_id = request.headers.get("X-Request-ID")

    try:
        return await call_next(request)

    except APIError as e:
        if e.is_client_error:
            logger.warning(
                "API error: %s - %s",
                e.error_type,
                e.message,
                extra={"request_id": request_id, "status_code": e.status_code},
            )
        else:
            logger.error(
                "API error: %s - %s\n%s",
                e.error_type,
                e.message,
                traceback.format_exc(),
                extra={"request_id": request_id, "status_code": e.status_code},
            )
        return create_error_response(
            error_type=e.error_type,
            message=e.message,
            status_code=e.status_code,
            details=e.details,
            request_id=request_id,
        )

    except Exception as e:
        logger.error(
            "Unhandled exception: %s\n%s",
            str(e),
            traceback.format_exc(),
            extra={"request_id": request_id},
        )
        return create_error_response(
            error_type="internal_error",
            message="An unexpected error occurred",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            request_id=request_id,
        )


def register_exception_handlers(app: FastAPI) -> None:
    """Render framework-raised errors in the ErrorResponse shape."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        logger.warning("HTTP exception: %s - %s", exc.status_code, exc.detail)
        response = create_error_response(
            error_type="http_error",
            message=str(exc.detail),
            status_code=exc.status_code,
            request_id=request.headers.get("X-Request-ID"),
        )
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Malformed bodies are client-correctable, same as failed field checks
        details = [
            {
                "loc": [str(part) for part in error.get("loc", ())],
                "msg": error.get("msg", "invalid"),
                "type": error.get("type", "validation_error"),
            }
            for error in exc.errors()
        ]
        logger.warning("Request validation failed on %s: %d errors", request.url.path, len(details))
        return create_error_response(
            error_type="validation_error",
            message="Invalid request body",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
            request_id=request.headers.get("X-Request-ID"),
        )
