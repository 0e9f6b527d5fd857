"""
eBay OAuth utilities.

These helpers drive the authorization-code flow against eBay's identity
service: consent URL, code exchange, refresh, revocation and identity lookup.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Literal, Optional, Type
from urllib.parse import urlencode

import httpx

from sellerlink.core.config import ConfigurationError, EbaySettings
from sellerlink.core.logging import mask_token
from sellerlink.models.oauth import LinkedAccount, TokenGrant, token_expired, utcnow
from sellerlink.schemas.ebay import (
    IdentityPayload,
    TokenEndpointPayload,
    extract_error_description,
)
from sellerlink.utils.http import RetryConfig, request_with_retry

logger = logging.getLogger(__name__)

TokenKind = Literal["access_token", "refresh_token"]


class EbayOAuthError(Exception):
    """Base class for failed calls to eBay's OAuth and identity endpoints."""

    def __init__(self, description: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(description)
        self.description = description
        self.status_code = status_code


class OAuthExchangeError(EbayOAuthError):
    """Raised when an authorization code cannot be exchanged for tokens."""


class OAuthRefreshError(EbayOAuthError):
    """Raised when a refresh token is rejected or the refresh call fails."""


class IdentityFetchError(EbayOAuthError):
    """Raised when the identity endpoint does not return a usable user."""


class RevocationFailure(EbayOAuthError):
    """Describes a failed revocation; logged by the client, never raised."""


def _describe_response(response: httpx.Response) -> str:
    try:
        body: Any = response.json()
    except ValueError:
        body = None
    return (
        extract_error_description(body)
        or response.text.strip()
        or f"HTTP {response.status_code}"
    )


class EbayOAuthClient:
    """Build eBay authorization URLs and call the OAuth token endpoints."""

    SCOPE = "https://api.ebay.com/oauth/api_scope"

    def __init__(
        self,
        settings: EbaySettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_config: Optional[RetryConfig] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._retry = retry_config or RetryConfig()
        if settings.sandbox:
            self._api_base = "https://api.sandbox.ebay.com"
            self._auth_base = "https://auth.sandbox.ebay.com"
        else:
            self._api_base = "https://api.ebay.com"
            self._auth_base = "https://auth.ebay.com"

    @property
    def is_sandbox(self) -> bool:
        return self._settings.sandbox

    @property
    def authorize_url(self) -> str:
        return f"{self._auth_base}/oauth2/authorize"

    @property
    def token_url(self) -> str:
        return f"{self._api_base}/identity/v1/oauth2/token"

    @property
    def revoke_url(self) -> str:
        return f"{self._api_base}/identity/v1/oauth2/revoke"

    @property
    def identity_url(self) -> str:
        return f"{self._api_base}/commerce/identity/v1/user/"

    def ensure_configured(self) -> None:
        """Raise :class:`ConfigurationError` if credentials are incomplete."""
        missing = self._settings.missing_credentials()
        if missing:
            raise ConfigurationError(missing)

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._settings.http_timeout_seconds,
            transport=self._transport,
        )

    def _basic_auth(self) -> httpx.BasicAuth:
        return httpx.BasicAuth(self._settings.app_id, self._settings.client_secret)

    def build_authorization_url(self, state: Optional[str] = None) -> str:
        """Construct the eBay consent URL.

        eBay expects the RuName, not the public callback URL, as ``redirect_uri``.
        """
        params = {
            "client_id": self._settings.app_id,
            "redirect_uri": self._settings.ru_name,
            "response_type": "code",
            "scope": self.SCOPE,
        }
        if state:
            params["state"] = state
        return f"{self.authorize_url}?{urlencode(params)}"

    async def _token_request(
        self,
        payload: Dict[str, str],
        error_cls: Type[EbayOAuthError],
        *,
        fallback_refresh_token: Optional[str] = None,
    ) -> TokenGrant:
        issued_at: datetime = utcnow()
        try:
            async with self._http() as client:
                response = await client.post(
                    self.token_url, data=payload, auth=self._basic_auth()
                )
        except httpx.HTTPError as exc:
            raise error_cls(f"Token request failed: {exc}") from exc

        if not response.is_success:
            raise error_cls(_describe_response(response), status_code=response.status_code)

        try:
            body = TokenEndpointPayload.model_validate(response.json())
            return body.to_grant(
                issued_at=issued_at, fallback_refresh_token=fallback_refresh_token
            )
        except ValueError as exc:
            raise error_cls(
                "Incomplete token payload returned from eBay.",
                status_code=response.status_code,
            ) from exc

    async def exchange_code_for_tokens(self, code: str) -> TokenGrant:
        """Exchange an authorization code for an access/refresh token pair."""
        logger.info("Exchanging authorization code %s for tokens", mask_token(code))
        try:
            grant = await self._token_request(
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self._settings.ru_name,
                },
                OAuthExchangeError,
            )
        except OAuthExchangeError as exc:
            logger.error(
                "Failed to exchange code for tokens (status=%s): %s",
                exc.status_code,
                exc.description,
            )
            raise
        logger.info("Successfully exchanged code for tokens")
        return grant

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Refresh the access token, keeping ``refresh_token`` if eBay omits a new one."""
        logger.info("Refreshing access token")
        try:
            grant = await self._token_request(
                {
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                    "scope": self.SCOPE,
                },
                OAuthRefreshError,
                fallback_refresh_token=refresh_token,
            )
        except OAuthRefreshError as exc:
            logger.error(
                "Failed to refresh access token (status=%s): %s",
                exc.status_code,
                exc.description,
            )
            raise
        logger.info("Successfully refreshed access token")
        return grant

    async def get_user_info(self, access_token: str) -> LinkedAccount:
        """Fetch the identity of the account that granted ``access_token``."""
        logger.info("Fetching user information from eBay")
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        try:
            async with self._http() as client:
                response = await request_with_retry(
                    client.get,
                    self.identity_url,
                    headers=headers,
                    retry_config=self._retry,
                )
        except httpx.HTTPStatusError as exc:
            description = _describe_response(exc.response)
            logger.error(
                "Failed to fetch user information (status=%s): %s",
                exc.response.status_code,
                description,
            )
            raise IdentityFetchError(
                description, status_code=exc.response.status_code
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Failed to fetch user information: %s", exc)
            raise IdentityFetchError(f"Identity request failed: {exc}") from exc

        try:
            identity = IdentityPayload.model_validate(response.json())
        except ValueError as exc:
            raise IdentityFetchError(
                "Incomplete identity payload returned from eBay.",
                status_code=response.status_code,
            ) from exc
        return identity.to_account()

    async def revoke_token(self, token: str, kind: TokenKind = "access_token") -> bool:
        """Best-effort revocation. Returns ``False`` instead of raising."""
        logger.info("Revoking %s", kind)
        try:
            async with self._http() as client:
                response = await client.post(
                    self.revoke_url,
                    data={"token": token, "token_type_hint": kind},
                    auth=self._basic_auth(),
                )
        except httpx.HTTPError as exc:
            failure = RevocationFailure(f"Revocation request failed: {exc}")
        else:
            if response.is_success:
                logger.info("Successfully revoked %s", kind)
                return True
            failure = RevocationFailure(
                _describe_response(response), status_code=response.status_code
            )
        logger.warning(
            "Failed to revoke %s (status=%s): %s",
            kind,
            failure.status_code,
            failure.description,
        )
        return False

    def is_expired(self, expires_at: datetime, now: Optional[datetime] = None) -> bool:
        """True once ``now`` is within five minutes of ``expires_at``."""
        return token_expired(expires_at, now)


__all__ = [
    "EbayOAuthClient",
    "EbayOAuthError",
    "IdentityFetchError",
    "OAuthExchangeError",
    "OAuthRefreshError",
    "RevocationFailure",
    "TokenKind",
]
