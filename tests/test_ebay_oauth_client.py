from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from sellerlink.clients.ebay_oauth import (
    EbayOAuthClient,
    IdentityFetchError,
    OAuthExchangeError,
    OAuthRefreshError,
)
from sellerlink.core.config import ConfigurationError, EbaySettings
from sellerlink.utils.http import RetryConfig


def _form(request: httpx.Request) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


def _client(settings: EbaySettings, handler) -> EbayOAuthClient:
    return EbayOAuthClient(
        settings,
        transport=httpx.MockTransport(handler),
        retry_config=RetryConfig(attempts=3, backoff_seconds=0),
    )


def test_authorization_url_uses_runame_and_state(ebay_settings: EbaySettings) -> None:
    client = EbayOAuthClient(ebay_settings)

    url = urlparse(client.build_authorization_url("state-123"))
    params = parse_qs(url.query)

    assert url.netloc == "auth.sandbox.ebay.com"
    assert url.path == "/oauth2/authorize"
    assert params["client_id"] == ["app-id"]
    assert params["redirect_uri"] == ["Seller-App-SBX-runame"]
    assert params["response_type"] == ["code"]
    assert params["scope"] == ["https://api.ebay.com/oauth/api_scope"]
    assert params["state"] == ["state-123"]


def test_authorization_url_without_state_targets_production() -> None:
    settings = EbaySettings(app_id="app", client_secret="s", ru_name="ru", sandbox=False)
    client = EbayOAuthClient(settings)

    url = client.build_authorization_url()

    assert url.startswith("https://auth.ebay.com/oauth2/authorize?")
    assert "state=" not in url
    assert client.token_url == "https://api.ebay.com/identity/v1/oauth2/token"
    assert client.build_authorization_url() == url


def test_ensure_configured_lists_missing_credentials() -> None:
    client = EbayOAuthClient(EbaySettings(app_id="app", client_secret="", ru_name=""))

    with pytest.raises(ConfigurationError) as excinfo:
        client.ensure_configured()

    assert excinfo.value.missing == ["EBAY_CLIENT_SECRET", "EBAY_RUNAME"]


@pytest.mark.asyncio
async def test_exchange_posts_basic_auth_form_and_computes_expiry(
    ebay_settings: EbaySettings,
) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "access_token": "AT1",
                "refresh_token": "RT1",
                "expires_in": 7200,
                "refresh_token_expires_in": 47304000,
                "token_type": "User Access Token",
            },
        )

    client = _client(ebay_settings, handler)
    before = datetime.now(timezone.utc)
    grant = await client.exchange_code_for_tokens("abc123")
    after = datetime.now(timezone.utc)

    assert grant.access_token == "AT1"
    assert grant.refresh_token == "RT1"
    assert before + timedelta(seconds=7200) <= grant.expires_at <= after + timedelta(seconds=7200)

    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://api.sandbox.ebay.com/identity/v1/oauth2/token"
    expected_auth = base64.b64encode(b"app-id:client-secret").decode()
    assert request.headers["authorization"] == f"Basic {expected_auth}"
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"
    assert _form(request) == {
        "grant_type": "authorization_code",
        "code": "abc123",
        "redirect_uri": "Seller-App-SBX-runame",
    }


@pytest.mark.asyncio
async def test_exchange_surfaces_upstream_error_description(
    ebay_settings: EbaySettings,
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={"error": "invalid_grant", "error_description": "the code is expired"},
        )

    client = _client(ebay_settings, handler)

    with pytest.raises(OAuthExchangeError) as excinfo:
        await client.exchange_code_for_tokens("stale-code")

    assert excinfo.value.status_code == 400
    assert excinfo.value.description == "the code is expired"


@pytest.mark.asyncio
async def test_exchange_rejects_payload_without_refresh_token(
    ebay_settings: EbaySettings,
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"access_token": "AT1", "expires_in": 7200})

    client = _client(ebay_settings, handler)

    with pytest.raises(OAuthExchangeError):
        await client.exchange_code_for_tokens("abc123")


@pytest.mark.asyncio
async def test_refresh_carries_forward_refresh_token(ebay_settings: EbaySettings) -> None:
    seen: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(_form(request))
        return httpx.Response(200, json={"access_token": "AT2", "expires_in": 7200})

    client = _client(ebay_settings, handler)
    grant = await client.refresh_access_token("RT1")

    assert grant.access_token == "AT2"
    assert grant.refresh_token == "RT1"
    assert seen == [
        {
            "grant_type": "refresh_token",
            "refresh_token": "RT1",
            "scope": "https://api.ebay.com/oauth/api_scope",
        }
    ]


@pytest.mark.asyncio
async def test_refresh_uses_rotated_refresh_token_when_returned(
    ebay_settings: EbaySettings,
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"access_token": "AT2", "refresh_token": "RT2", "expires_in": 60}
        )

    grant = await _client(ebay_settings, handler).refresh_access_token("RT1")

    assert grant.refresh_token == "RT2"


@pytest.mark.asyncio
async def test_refresh_failures_raise_refresh_error(ebay_settings: EbaySettings) -> None:
    def rejected(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_grant"})

    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(OAuthRefreshError) as excinfo:
        await _client(ebay_settings, rejected).refresh_access_token("RT1")
    assert excinfo.value.description == "invalid_grant"

    with pytest.raises(OAuthRefreshError) as excinfo:
        await _client(ebay_settings, unreachable).refresh_access_token("RT1")
    assert excinfo.value.status_code is None


@pytest.mark.asyncio
async def test_get_user_info_parses_identity_and_retries_server_errors(
    ebay_settings: EbaySettings,
) -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503, text="unavailable")
        return httpx.Response(
            200,
            json={"userId": "u1", "username": "seller1", "accountType": "BUSINESS"},
        )

    account = await _client(ebay_settings, handler).get_user_info("AT1")

    assert len(calls) == 2
    assert calls[0].headers["authorization"] == "Bearer AT1"
    assert str(calls[0].url) == "https://api.sandbox.ebay.com/commerce/identity/v1/user/"
    assert account.external_user_id == "u1"
    assert account.username == "seller1"
    assert account.email is None
    assert account.account_type == "BUSINESS"


@pytest.mark.asyncio
async def test_get_user_info_does_not_retry_client_errors(
    ebay_settings: EbaySettings,
) -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(
            401, json={"errors": [{"errorId": 1001, "message": "Invalid access token"}]}
        )

    with pytest.raises(IdentityFetchError) as excinfo:
        await _client(ebay_settings, handler).get_user_info("bad")

    assert len(calls) == 1
    assert excinfo.value.status_code == 401
    assert excinfo.value.description == "Invalid access token"


@pytest.mark.asyncio
async def test_get_user_info_rejects_payload_without_user_id(
    ebay_settings: EbaySettings,
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"username": "seller1"})

    with pytest.raises(IdentityFetchError):
        await _client(ebay_settings, handler).get_user_info("AT1")


@pytest.mark.asyncio
async def test_revoke_token_reports_success_and_swallows_failures(
    ebay_settings: EbaySettings,
) -> None:
    hints: list[str] = []

    def ok(request: httpx.Request) -> httpx.Response:
        hints.append(_form(request)["token_type_hint"])
        return httpx.Response(200)

    def failing(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="oops")

    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    assert await _client(ebay_settings, ok).revoke_token("RT1", "refresh_token") is True
    assert hints == ["refresh_token"]
    assert await _client(ebay_settings, failing).revoke_token("AT1") is False
    assert await _client(ebay_settings, unreachable).revoke_token("AT1") is False


def test_is_expired_applies_five_minute_buffer(ebay_settings: EbaySettings) -> None:
    client = EbayOAuthClient(ebay_settings)
    expires_at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    threshold = expires_at - timedelta(minutes=5)

    assert client.is_expired(expires_at, now=threshold - timedelta(seconds=1)) is False
    assert client.is_expired(expires_at, now=threshold + timedelta(seconds=1)) is True
    assert client.is_expired(expires_at.replace(tzinfo=None), now=expires_at) is True
    assert client.is_expired(datetime.now(timezone.utc) + timedelta(hours=2)) is False
