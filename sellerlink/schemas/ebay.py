"""Typed views of the JSON bodies returned by eBay's identity endpoints."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from sellerlink.models.oauth import LinkedAccount, TokenGrant


class TokenEndpointPayload(BaseModel):
    """Body of a successful ``/identity/v1/oauth2/token`` response.

    ``refresh_token`` is optional here because eBay omits it on refresh;
    :meth:`to_grant` decides whether its absence is acceptable.
    """

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    expires_in: int = Field(..., gt=0)
    refresh_token: Optional[str] = None
    token_type: str = "User Access Token"

    def to_grant(
        self,
        *,
        issued_at: datetime,
        fallback_refresh_token: Optional[str] = None,
    ) -> TokenGrant:
        refresh_token = self.refresh_token or fallback_refresh_token
        if not refresh_token:
            raise ValueError("Token payload did not include a refresh token.")
        return TokenGrant(
            access_token=self.access_token,
            refresh_token=refresh_token,
            expires_in=self.expires_in,
            token_type=self.token_type or "User Access Token",
            expires_at=issued_at + timedelta(seconds=self.expires_in),
        )


class IdentityPayload(BaseModel):
    """Body of ``/commerce/identity/v1/user/``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1)
    username: str = Field(..., min_length=1)
    email: Optional[str] = None
    account_type: str = Field("INDIVIDUAL", alias="accountType")

    def to_account(self) -> LinkedAccount:
        return LinkedAccount(
            external_user_id=self.user_id,
            username=self.username,
            email=self.email or None,
            account_type=self.account_type or "INDIVIDUAL",
        )


def extract_error_description(body: Any) -> Optional[str]:
    """Pull a readable message out of an eBay error body.

    The token endpoints answer with ``{"error", "error_description"}`` while
    the REST APIs use ``{"errors": [{"message": ...}]}``.
    """
    if not isinstance(body, dict):
        return None
    description = body.get("error_description") or body.get("message")
    if description:
        return str(description)
    errors = body.get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        message = errors[0].get("longMessage") or errors[0].get("message")
        if message:
            return str(message)
    error = body.get("error")
    return str(error) if error else None


__all__ = ["IdentityPayload", "TokenEndpointPayload", "extract_error_description"]
