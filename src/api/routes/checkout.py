"""Checkout API routes."""

from typing import Annotated

from fastapi import APIRouter, Cookie, HTTPException, Query, Response, status

from src.api.deps import (
    CHECKOUT_NONCE_COOKIE,
    CHECKOUT_SESSION_COOKIE,
    CheckoutBuyer,
    clear_checkout_cookies,
    set_checkout_cookies,
)
from src.api.middleware.error_handler import AuthorizationError, BadRequestError
from src.schemas.checkout import CheckoutRequest, CheckoutResponse, CheckoutSessionStatusResponse
from src.services.checkout_service import CheckoutService

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post(
    "",
    response_model=CheckoutResponse,
    status_code=status.HTTP_200_OK,
    summary="Start checkout",
    description=(
        "Creates a pending multi-seller order and a Stripe Checkout session. "
        "Works for guests and signed-in buyers."
    ),
    responses={
        400: {"description": "Cart, contact details or address rejected"},
        409: {"description": "Stock sold out during checkout"},
        500: {"description": "Order or payment session could not be created"},
    },
)
async def create_checkout(
    data: CheckoutRequest,
    response: Response,
    buyer: CheckoutBuyer,
) -> CheckoutResponse:
    """Create the order and redirect target for a cart.

    Sets the checkout_nonce and checkout_session cookies so the
    confirmation page can prove the session belongs to this browser.
    """
    result = await CheckoutService().create_checkout(data, user=buyer)
    set_checkout_cookies(response, nonce=result.nonce, session_id=result.session_id)
    return CheckoutResponse(url=result.url)


@router.get(
    "/session",
    response_model=CheckoutSessionStatusResponse,
    summary="Check a returning checkout session",
    description="Used by the order confirmation page after Stripe redirects back.",
    responses={
        400: {"description": "session_id missing"},
        401: {"description": "Checkout cookies missing"},
        403: {"description": "Session does not belong to this browser"},
    },
)
async def get_checkout_session(
    response: Response,
    session_id: Annotated[str | None, Query()] = None,
    checkout_nonce: Annotated[str | None, Cookie(alias=CHECKOUT_NONCE_COOKIE)] = None,
    checkout_session: Annotated[str | None, Cookie(alias=CHECKOUT_SESSION_COOKIE)] = None,
) -> CheckoutSessionStatusResponse:
    """Return payment status for the buyer's own checkout session.

    Raises:
        BadRequestError: 400 if session_id is missing.
        HTTPException: 401 if either checkout cookie is missing.
        AuthorizationError: 403 if the cookies do not match the session.
    """
    if not session_id:
        raise BadRequestError("Missing session_id")

    if not checkout_nonce or not checkout_session:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing verification cookie",
        )

    if checkout_session != session_id:
        raise AuthorizationError("Session mismatch")

    result = await CheckoutService().get_session_status(session_id, nonce=checkout_nonce)
    if result["verified"]:
        clear_checkout_cookies(response)
    return CheckoutSessionStatusResponse(**result)
