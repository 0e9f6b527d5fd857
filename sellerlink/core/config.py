"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app and the maintenance
scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path

import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class ConfigurationError(RuntimeError):
    """Raised when required eBay credentials are missing."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(
            "Missing eBay OAuth configuration: " + ", ".join(self.missing)
        )


_SETTINGS_CONFIG = SettingsConfigDict(populate_by_name=True, extra="ignore")


class EbaySettings(BaseSettings):
    """Credentials and endpoints for the eBay developer application."""

    model_config = _SETTINGS_CONFIG

    app_id: str = Field("", validation_alias="EBAY_APP_ID")
    client_secret: str = Field("", validation_alias="EBAY_CLIENT_SECRET")
    ru_name: str = Field(
        "",
        validation_alias="EBAY_RUNAME",
        description="eBay RuName registered for the app; sent as redirect_uri.",
    )
    actual_redirect_uri: str = Field(
        "http://localhost:3000/api/ebay/auth/callback",
        validation_alias="EBAY_ACTUAL_REDIRECT_URI",
        description="Public callback URL the RuName is configured to redirect to.",
    )
    sandbox: bool = Field(False, validation_alias="EBAY_SANDBOX")
    http_timeout_seconds: float = Field(15.0, validation_alias="EBAY_HTTP_TIMEOUT")

    def missing_credentials(self) -> list[str]:
        """Return the environment keys that still need a value."""
        required = {
            "EBAY_APP_ID": self.app_id,
            "EBAY_CLIENT_SECRET": self.client_secret,
            "EBAY_RUNAME": self.ru_name,
        }
        return [key for key, value in required.items() if not value.strip()]


class OAuthSettings(BaseSettings):
    """OAuth flow configuration."""

    model_config = _SETTINGS_CONFIG

    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    enforce_state: bool = Field(
        True,
        validation_alias="OAUTH_ENFORCE_STATE",
        description="Reject callbacks whose state was not issued by /auth/login.",
    )

    @field_validator("state_ttl_seconds")
    @classmethod
    def positive_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("OAUTH_STATE_TTL must be positive.")
        return value


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = _SETTINGS_CONFIG

    token_encryption_secret: str = Field(
        "",
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )
    previous_secrets: str = Field(
        "",
        validation_alias="TOKEN_ENCRYPTION_PREVIOUS_SECRETS",
        description="Comma-separated retired secrets still accepted for decryption.",
    )

    @property
    def previous_secret_list(self) -> tuple[str, ...]:
        return tuple(
            secret.strip() for secret in self.previous_secrets.split(",") if secret.strip()
        )


class StorageSettings(BaseSettings):
    """Location of the SQLite database holding tokens and linked accounts."""

    model_config = _SETTINGS_CONFIG

    db_path: str = Field("./data/ebay_manager.db", validation_alias="DB_PATH")


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = _SETTINGS_CONFIG

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    client_url: str = Field(
        "http://localhost:3000",
        validation_alias="CLIENT_URL",
        description="Dashboard URL that receives the browser after the callback.",
    )
    ebay: EbaySettings = Field(default_factory=EbaySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @field_validator("client_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def encryption_secret(self) -> str:
        """Secret for token encryption, falling back to the eBay client secret."""
        return self.security.token_encryption_secret or self.ebay.client_secret


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()


__all__ = [
    "AppSettings",
    "ConfigurationError",
    "EbaySettings",
    "OAuthSettings",
    "SecuritySettings",
    "StorageSettings",
    "get_settings",
]
