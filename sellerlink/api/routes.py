"""
FastAPI routes for linking a seller's eBay account.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, RedirectResponse

from sellerlink.clients.sqlite_store import TokenStoreError
from sellerlink.core.config import ConfigurationError
from sellerlink.dependencies import get_app_settings, get_auth_service
from sellerlink.schemas import (
    LinkedAccountData,
    LinkedAccountResponse,
    LoginResponse,
    LogoutRequest,
    StatusResponse,
    TokenData,
    TokenResponse,
)
from sellerlink.services.ebay_auth import (
    AccountNotFound,
    AuthError,
    NotLinked,
    ReauthorizationRequired,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _status(
    status_code: int, message: str, *, requires_reauth: Optional[bool] = None
) -> JSONResponse:
    body = StatusResponse(
        success=False, message=message, requires_reauth=requires_reauth
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


def _json(model: Any, *, exclude_none: bool = False) -> JSONResponse:
    return JSONResponse(
        content=model.model_dump(by_alias=True, mode="json", exclude_none=exclude_none)
    )


def _dashboard_redirect(client_url: str, **params: str) -> RedirectResponse:
    target = f"{client_url}/ebay-auth?{urlencode(params)}"
    return RedirectResponse(url=target, status_code=HTTPStatus.TEMPORARY_REDIRECT)


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/login", status_code=HTTPStatus.OK)
async def start_ebay_oauth_flow(
    auth_service: Annotated[Any, Depends(get_auth_service)],
) -> JSONResponse:
    """Issue a state token and return the eBay consent URL."""
    try:
        login = auth_service.initiate_login()
    except ConfigurationError as exc:
        logger.error("Cannot start OAuth flow: %s", exc)
        return _status(HTTPStatus.INTERNAL_SERVER_ERROR, "OAuth service not configured")
    except TokenStoreError:
        return _status(HTTPStatus.INTERNAL_SERVER_ERROR, "Failed to initiate OAuth flow")

    logger.info("Redirecting to eBay OAuth")
    return _json(LoginResponse(auth_url=login.auth_url, state=login.state))


@router.get("/auth/callback")
async def handle_ebay_oauth_callback(
    auth_service: Annotated[Any, Depends(get_auth_service)],
    settings: Annotated[Any, Depends(get_app_settings)],
    code: Optional[str] = Query(default=None, description="Authorization code from eBay."),
    state: Optional[str] = Query(default=None, description="State issued by /auth/login."),
    error: Optional[str] = Query(default=None, description="Error reported by eBay."),
) -> RedirectResponse:
    """Complete the OAuth exchange and send the browser back to the dashboard."""
    if error:
        logger.error("OAuth error from eBay: %s", error)
        return _dashboard_redirect(settings.client_url, message=f"OAuth error: {error}")

    try:
        account = await auth_service.handle_callback(code, state)
    except AuthError as exc:
        logger.error("OAuth callback failed: %s", exc)
        return _dashboard_redirect(settings.client_url, message=str(exc))
    except ConfigurationError as exc:
        logger.error("Cannot complete OAuth flow: %s", exc)
        return _dashboard_redirect(
            settings.client_url, message="OAuth service not configured"
        )
    except TokenStoreError:
        return _dashboard_redirect(
            settings.client_url, message="Failed to save eBay authorization"
        )

    return _dashboard_redirect(settings.client_url, userId=account.external_user_id)


@router.get("/auth/tokens")
async def get_ebay_tokens(
    auth_service: Annotated[Any, Depends(get_auth_service)],
    user_id: Optional[str] = Query(default=None, alias="userId"),
) -> JSONResponse:
    """Return a valid access token, refreshing it first when it has expired."""
    if not user_id:
        return _status(HTTPStatus.BAD_REQUEST, "User ID is required")

    try:
        token_set = await auth_service.get_valid_access_token(user_id)
    except NotLinked:
        return _status(HTTPStatus.NOT_FOUND, "No tokens found for user")
    except ReauthorizationRequired as exc:
        return _status(HTTPStatus.UNAUTHORIZED, str(exc), requires_reauth=True)
    except ConfigurationError:
        return _status(HTTPStatus.INTERNAL_SERVER_ERROR, "OAuth service not configured")
    except TokenStoreError:
        return _status(HTTPStatus.INTERNAL_SERVER_ERROR, "Failed to retrieve tokens")

    return _json(TokenResponse(data=TokenData.from_token_set(token_set)))


@router.get("/auth/user")
async def get_ebay_user(
    auth_service: Annotated[Any, Depends(get_auth_service)],
    user_id: Optional[str] = Query(default=None, alias="userId"),
) -> JSONResponse:
    """Return the cached identity of a linked eBay account."""
    if not user_id:
        return _status(HTTPStatus.BAD_REQUEST, "User ID is required")

    try:
        account = auth_service.get_linked_account(user_id)
    except AccountNotFound:
        return _status(HTTPStatus.NOT_FOUND, "User not found")
    except TokenStoreError:
        return _status(
            HTTPStatus.INTERNAL_SERVER_ERROR, "Failed to retrieve user information"
        )

    return _json(LinkedAccountResponse(data=LinkedAccountData.from_account(account)))


@router.post("/auth/logout")
async def logout_ebay_user(
    auth_service: Annotated[Any, Depends(get_auth_service)],
    payload: Optional[LogoutRequest] = None,
) -> JSONResponse:
    """Revoke the user's tokens at eBay and delete them locally."""
    user_id = payload.user_id if payload else None
    if not user_id:
        return _status(HTTPStatus.BAD_REQUEST, "User ID is required")

    try:
        await auth_service.logout(user_id)
    except ConfigurationError:
        return _status(HTTPStatus.INTERNAL_SERVER_ERROR, "OAuth service not configured")
    except TokenStoreError:
        logger.error("Logout failed for user %s", user_id)
        return _status(HTTPStatus.INTERNAL_SERVER_ERROR, "Failed to logout")

    return _json(
        StatusResponse(success=True, message="Logged out successfully"),
        exclude_none=True,
    )


@router.get("/auth/health")
async def ebay_oauth_health(
    settings: Annotated[Any, Depends(get_app_settings)],
) -> dict:
    """Report which eBay credentials are configured without exposing them."""
    ebay = settings.ebay
    return {
        "success": True,
        "message": "eBay OAuth service is healthy",
        "config": {
            "appId": "SET" if ebay.app_id else "NOT SET",
            "ruName": ebay.ru_name or "NOT SET",
            "actualRedirectUri": ebay.actual_redirect_uri or "NOT SET",
            "sandbox": ebay.sandbox,
        },
    }


__all__ = ["router"]
