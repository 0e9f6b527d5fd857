"""
Coordinates the eBay OAuth client and token store for the HTTP routes.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import AsyncIterator, Dict, Optional

from sellerlink.clients.ebay_oauth import EbayOAuthClient, EbayOAuthError
from sellerlink.clients.sqlite_store import SQLiteTokenStore
from sellerlink.core.config import OAuthSettings
from sellerlink.core.logging import mask_token
from sellerlink.models.oauth import LinkedAccount, TokenSet, utcnow

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Base class for account-linking failures surfaced to the routes."""


class MissingAuthorizationCode(AuthError):
    """The callback arrived without a ``code`` parameter."""


class InvalidAuthorizationState(AuthError):
    """The callback's ``state`` was missing, unknown, reused or expired."""


class AuthorizationFailed(AuthError):
    """Code exchange or identity lookup failed; nothing was persisted."""


class NotLinked(AuthError):
    """No token set is stored for the requested user."""


class ReauthorizationRequired(AuthError):
    """The stored token expired and could not be refreshed."""


class AccountNotFound(AuthError):
    """No linked account record exists for the requested user."""


@dataclass(frozen=True)
class LoginStart:
    auth_url: str
    state: str


class EbayAuthService:
    """Login, callback, token-retrieval and logout flows for linked eBay accounts."""

    def __init__(
        self,
        oauth_client: EbayOAuthClient,
        store: SQLiteTokenStore,
        oauth_settings: OAuthSettings,
    ) -> None:
        self._oauth = oauth_client
        self._store = store
        self._settings = oauth_settings
        self._refresh_locks: Dict[str, asyncio.Lock] = {}
        self._refresh_waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def _refresh_lock(self, user_id: str) -> AsyncIterator[None]:
        """Serialize refreshes per user, dropping the lock once it is idle."""
        lock = self._refresh_locks.setdefault(user_id, asyncio.Lock())
        self._refresh_waiters[user_id] = self._refresh_waiters.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refresh_waiters[user_id] -= 1
            if not self._refresh_waiters[user_id]:
                del self._refresh_waiters[user_id]
                del self._refresh_locks[user_id]

    def initiate_login(self) -> LoginStart:
        """Issue a single-use state and return the eBay consent URL for it."""
        self._oauth.ensure_configured()
        state = secrets.token_urlsafe(24)
        expires_at = utcnow() + timedelta(seconds=self._settings.state_ttl_seconds)
        self._store.put_state(state, expires_at)
        auth_url = self._oauth.build_authorization_url(state)
        logger.info("Issued OAuth state %s", mask_token(state, visible=6))
        return LoginStart(auth_url=auth_url, state=state)

    async def handle_callback(
        self, code: Optional[str], state: Optional[str] = None
    ) -> LinkedAccount:
        """Exchange ``code``, fetch the identity, then persist account and tokens."""
        if not code:
            raise MissingAuthorizationCode("Authorization code is required")

        if self._settings.enforce_state:
            if not state or not self._store.consume_state(state):
                raise InvalidAuthorizationState(
                    "OAuth state is missing, expired or was not issued by this server"
                )

        logger.info("Received OAuth callback with code %s", mask_token(code))
        try:
            grant = await self._oauth.exchange_code_for_tokens(code)
            account = await self._oauth.get_user_info(grant.access_token)
        except EbayOAuthError as exc:
            raise AuthorizationFailed(exc.description) from exc

        self._store.link(grant.to_token_set(account.external_user_id), account)
        logger.info("OAuth flow completed successfully for user %s", account.username)
        return account

    async def get_valid_access_token(self, user_id: str) -> TokenSet:
        """Return a usable token set for ``user_id``, refreshing it if expired."""
        token_set = self._store.get(user_id)
        if token_set is None:
            raise NotLinked(f"No tokens found for user {user_id}")
        if not self._oauth.is_expired(token_set.expires_at):
            return token_set

        async with self._refresh_lock(user_id):
            # Another request may have refreshed while this one waited.
            token_set = self._store.get(user_id)
            if token_set is None:
                raise NotLinked(f"No tokens found for user {user_id}")
            if not self._oauth.is_expired(token_set.expires_at):
                return token_set

            logger.info("Token expired for user %s, attempting refresh", user_id)
            try:
                grant = await self._oauth.refresh_access_token(token_set.refresh_token)
            except EbayOAuthError as exc:
                logger.warning("Token refresh failed for user %s: %s", user_id, exc)
                raise ReauthorizationRequired(
                    "Token expired and refresh failed. Please re-authenticate."
                ) from exc

            refreshed = grant.to_token_set(user_id)
            refreshed.created_at = token_set.created_at
            self._store.put(refreshed)
            return refreshed

    def get_linked_account(self, user_id: str) -> LinkedAccount:
        account = self._store.get_account(user_id)
        if account is None:
            raise AccountNotFound(f"User {user_id} not found")
        return account

    async def logout(self, user_id: str) -> bool:
        """Revoke and forget the user's tokens. Returns whether any were stored."""
        token_set = self._store.get(user_id)
        if token_set is None:
            logger.info("Logout requested for user %s with no stored tokens", user_id)
            return False

        await self._oauth.revoke_token(token_set.access_token, "access_token")
        await self._oauth.revoke_token(token_set.refresh_token, "refresh_token")
        self._store.delete(user_id)
        logger.info("User %s logged out successfully", user_id)
        return True

    def sweep_expired(self) -> int:
        return self._store.expire()


__all__ = [
    "AccountNotFound",
    "AuthError",
    "AuthorizationFailed",
    "EbayAuthService",
    "InvalidAuthorizationState",
    "LoginStart",
    "MissingAuthorizationCode",
    "NotLinked",
    "ReauthorizationRequired",
]
