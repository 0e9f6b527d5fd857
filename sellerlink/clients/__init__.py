"""Expose constructed client wrappers."""

from .ebay_oauth import EbayOAuthClient
from .sqlite_store import SQLiteTokenStore

__all__ = [
    "EbayOAuthClient",
    "SQLiteTokenStore",
]
