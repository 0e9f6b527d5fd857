"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from sellerlink.clients.sqlite_store import SQLiteTokenStore
from sellerlink.core.config import (
    AppSettings,
    EbaySettings,
    OAuthSettings,
    SecuritySettings,
    StorageSettings,
)
from sellerlink.services.token_cipher import TokenCipherService


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def ebay_settings() -> EbaySettings:
    return EbaySettings(
        app_id="app-id",
        client_secret="client-secret",
        ru_name="Seller-App-SBX-runame",
        sandbox=True,
    )


@pytest.fixture
def app_settings(tmp_path, ebay_settings) -> AppSettings:
    return AppSettings(
        client_url="https://dashboard.example.com/",
        ebay=ebay_settings,
        oauth=OAuthSettings(),
        security=SecuritySettings(token_encryption_secret="store-secret"),
        storage=StorageSettings(db_path=str(tmp_path / "data" / "tokens.db")),
    )


@pytest.fixture
def token_store(tmp_path) -> SQLiteTokenStore:
    cipher = TokenCipherService(secret="store-secret")
    return SQLiteTokenStore(str(tmp_path / "tokens.db"), cipher)
