"""
Domain models for eBay OAuth token persistence.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

REFRESH_BUFFER = timedelta(minutes=5)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def token_expired(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    """True once ``now`` has entered the refresh buffer before ``expires_at``."""
    current = ensure_utc(now) if now is not None else utcnow()
    return current > ensure_utc(expires_at) - REFRESH_BUFFER


class TokenGrant(BaseModel):
    """Tokens returned by the eBay token endpoint, not yet bound to a user."""

    access_token: str
    refresh_token: str
    expires_in: int = Field(..., gt=0)
    token_type: str = "User Access Token"
    expires_at: datetime

    def to_token_set(self, user_id: str) -> "TokenSet":
        return TokenSet(
            user_id=user_id,
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=self.expires_at,
        )


class TokenSet(BaseModel):
    """The single active credential pair stored for a linked eBay user."""

    user_id: str = Field(..., min_length=1)
    access_token: str
    refresh_token: str
    expires_at: datetime
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("expires_at", "created_at", "updated_at")
    @classmethod
    def normalize_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return token_expired(self.expires_at, now)


class LinkedAccount(BaseModel):
    """Locally cached identity of a linked eBay account."""

    external_user_id: str = Field(..., min_length=1)
    username: str
    email: Optional[str] = None
    account_type: str = "INDIVIDUAL"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


__all__ = [
    "REFRESH_BUFFER",
    "LinkedAccount",
    "TokenGrant",
    "TokenSet",
    "ensure_utc",
    "token_expired",
    "utcnow",
]
