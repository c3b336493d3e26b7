"""FastAPI dependency injection functions."""

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Response, status

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt, extract_bearer_token
from src.core.config import get_settings
from src.schemas.auth import UserContext

logger = logging.getLogger(__name__)

CHECKOUT_NONCE_COOKIE = "checkout_nonce"
CHECKOUT_SESSION_COOKIE = "checkout_session"


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Extract and validate the current user from the Authorization header.

    Args:
        authorization: The Authorization header value (Bearer token).

    Returns:
        UserContext: The authenticated user's context.

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired.
    """
    try:
        token = extract_bearer_token(authorization)
        return decode_jwt(token).to_user_context()
    except AuthError as e:
        detail = "Token has expired" if e.code == AuthErrorCode.TOKEN_EXPIRED else e.message
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_checkout_buyer(
    authorization: Annotated[str | None, Header()] = None,
) -> UserContext | None:
    """Identify the buyer for checkout without requiring a login.

    A missing or unusable token falls back to guest checkout instead of
    failing the request.
    """
    if not authorization:
        return None
    try:
        return decode_jwt(extract_bearer_token(authorization)).to_user_context()
    except AuthError as e:
        logger.info("Ignoring unusable token on checkout, continuing as guest: %s", e.message)
        return None


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[UserContext, Depends(get_current_user)]
CheckoutBuyer = Annotated[UserContext | None, Depends(get_checkout_buyer)]


# Checkout cookie utility functions


def get_checkout_cookie_config() -> dict:
    """Cookie attributes shared by both checkout correlation cookies."""
    settings = get_settings()
    return {
        "max_age": settings.checkout_cookie_max_age,
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "lax",
        "path": "/",
    }


def set_checkout_cookies(response: Response, nonce: str, session_id: str) -> None:
    """Bind the browser to its checkout so the confirmation page can verify it.

    Args:
        response: FastAPI response object.
        nonce: Reconciliation nonce of the checkout attempt.
        session_id: Stripe Checkout session id.
    """
    config = get_checkout_cookie_config()
    response.set_cookie(key=CHECKOUT_NONCE_COOKIE, value=nonce, **config)
    response.set_cookie(key=CHECKOUT_SESSION_COOKIE, value=session_id, **config)


def clear_checkout_cookies(response: Response) -> None:
    config = get_checkout_cookie_config()
    for key in (CHECKOUT_NONCE_COOKIE, CHECKOUT_SESSION_COOKIE):
        response.delete_cookie(
            key=key,
            path=config["path"],
            secure=config["secure"],
            httponly=config["httponly"],
            samesite=config["samesite"],
        )
