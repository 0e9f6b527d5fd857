"""
Construction of shared clients and services, plus FastAPI accessors for them.

Everything is built once by :func:`build_services` when the application is
created and stored on ``app.state.services``; the dependency functions below
only read it back from the request.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request

from sellerlink.clients import EbayOAuthClient, SQLiteTokenStore
from sellerlink.core.config import AppSettings
from sellerlink.services import EbayAuthService, TokenCipherService


@dataclass(frozen=True)
class ServiceContainer:
    """Process-wide collaborators shared by every request."""

    settings: AppSettings
    oauth_client: EbayOAuthClient
    token_store: SQLiteTokenStore
    auth_service: EbayAuthService


def build_services(
    settings: AppSettings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ServiceContainer:
    """Wire the OAuth client, encrypted token store and auth service together."""
    cipher = TokenCipherService(
        secret=settings.encryption_secret(),
        previous_secrets=settings.security.previous_secret_list,
    )
    oauth_client = EbayOAuthClient(settings.ebay, transport=transport)
    token_store = SQLiteTokenStore(settings.storage.db_path, cipher)
    auth_service = EbayAuthService(
        oauth_client=oauth_client,
        store=token_store,
        oauth_settings=settings.oauth,
    )
    return ServiceContainer(
        settings=settings,
        oauth_client=oauth_client,
        token_store=token_store,
        auth_service=auth_service,
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_auth_service(request: Request) -> EbayAuthService:
    """Provide the account-linking service built at startup."""
    return get_services(request).auth_service


__all__ = [
    "ServiceContainer",
    "build_services",
    "get_auth_service",
    "get_services",
]
