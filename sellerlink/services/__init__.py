"""Service layer exports."""

from .ebay_auth import EbayAuthService, LoginStart
from .token_cipher import TokenCipherService

__all__ = [
    "EbayAuthService",
    "LoginStart",
    "TokenCipherService",
]
