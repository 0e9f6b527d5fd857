"""Schemas for the account-linking HTTP surface.

Field names follow the dashboard's camelCase contract.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from sellerlink.models.oauth import LinkedAccount, TokenSet


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginResponse(CamelModel):
    success: bool = True
    auth_url: str
    state: str


class TokenData(CamelModel):
    access_token: str
    expires_at: datetime
    is_expired: bool = False

    @classmethod
    def from_token_set(cls, token_set: TokenSet) -> "TokenData":
        return cls(
            access_token=token_set.access_token,
            expires_at=token_set.expires_at,
            is_expired=token_set.is_expired(),
        )


class TokenResponse(CamelModel):
    success: bool = True
    data: TokenData


class LinkedAccountData(CamelModel):
    ebay_user_id: str
    username: str
    email: Optional[str] = None
    account_type: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_account(cls, account: LinkedAccount) -> "LinkedAccountData":
        return cls(
            ebay_user_id=account.external_user_id,
            username=account.username,
            email=account.email,
            account_type=account.account_type,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


class LinkedAccountResponse(CamelModel):
    success: bool = True
    data: LinkedAccountData


class LogoutRequest(CamelModel):
    """Body of ``POST /auth/logout``."""

    user_id: Optional[str] = Field(
        default=None, description="eBay user id whose tokens should be revoked."
    )


class StatusResponse(CamelModel):
    success: bool
    message: str
    requires_reauth: Optional[bool] = None


__all__ = [
    "LinkedAccountData",
    "LinkedAccountResponse",
    "LoginResponse",
    "LogoutRequest",
    "StatusResponse",
    "TokenData",
    "TokenResponse",
]
