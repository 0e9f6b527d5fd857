"""Public schema exports."""

from .auth import (
    LinkedAccountData,
    LinkedAccountResponse,
    LoginResponse,
    LogoutRequest,
    StatusResponse,
    TokenData,
    TokenResponse,
)
from .ebay import IdentityPayload, TokenEndpointPayload

__all__ = [
    "IdentityPayload",
    "LinkedAccountData",
    "LinkedAccountResponse",
    "LoginResponse",
    "LogoutRequest",
    "StatusResponse",
    "TokenData",
    "TokenEndpointPayload",
    "TokenResponse",
]
