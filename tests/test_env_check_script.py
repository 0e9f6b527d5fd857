"""Tests for the pre-deploy configuration check."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from scripts import check_env
from sellerlink.clients.sqlite_store import SQLiteTokenStore
from sellerlink.models.oauth import TokenSet
from sellerlink.services.token_cipher import TokenCipherService

SETTINGS_ENV_KEYS = [
    "EBAY_APP_ID",
    "EBAY_CLIENT_SECRET",
    "EBAY_RUNAME",
    "EBAY_ACTUAL_REDIRECT_URI",
    "EBAY_SANDBOX",
    "TOKEN_ENCRYPTION_SECRET",
    "TOKEN_ENCRYPTION_PREVIOUS_SECRETS",
    "DB_PATH",
    "CLIENT_URL",
]


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # setenv first so keys the env file introduces are removed again on teardown.
    for key in SETTINGS_ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


def _write_env(env_path: Path, **values: str) -> Path:
    contents = "\n".join(f"{key}={value}" for key, value in values.items())
    env_path.write_text(contents + "\n", encoding="utf-8")
    return env_path


def _sandbox_env(tmp_path: Path, **overrides: str) -> Path:
    values = {
        "EBAY_APP_ID": "Seller-App-SBX-1234abcd",
        "EBAY_CLIENT_SECRET": "SBX-secret",
        "EBAY_RUNAME": "Seller-Seller-App-SBX-runame",
        "EBAY_ACTUAL_REDIRECT_URI": "https://seller.example.com/api/ebay/auth/callback",
        "EBAY_SANDBOX": "true",
        "TOKEN_ENCRYPTION_SECRET": "check-secret",
        "DB_PATH": str(tmp_path / "data" / "tokens.db"),
    }
    values.update(overrides)
    return _write_env(tmp_path / ".env", **values)


def test_missing_env_file_is_a_runtime_error(tmp_path: Path) -> None:
    exit_code = check_env.main(["--env-file", str(tmp_path / ".missing-env")])

    assert exit_code == check_env.EXIT_RUNTIME_ERROR


def test_complete_sandbox_configuration_passes(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    env_file = _sandbox_env(tmp_path)

    exit_code = check_env.main(["--env-file", str(env_file), "--strict"])

    captured = capsys.readouterr()
    assert exit_code == check_env.EXIT_OK
    assert "eBay sandbox credentials present for app Seller-App-SBX-1234abcd." in captured.out
    assert captured.err == ""


def test_missing_credentials_are_named(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    env_file = _write_env(
        tmp_path / ".env",
        EBAY_APP_ID="Seller-App-SBX-1234abcd",
        EBAY_SANDBOX="true",
    )

    exit_code = check_env.main(["--env-file", str(env_file)])

    assert exit_code == check_env.EXIT_VALIDATION_ERROR
    err = capsys.readouterr().err
    assert "EBAY_CLIENT_SECRET" in err
    assert "EBAY_RUNAME" in err


def test_malformed_values_fail_validation(tmp_path: Path) -> None:
    env_file = _sandbox_env(tmp_path, EBAY_SANDBOX="sometimes")

    exit_code = check_env.main(["--env-file", str(env_file)])

    assert exit_code == check_env.EXIT_VALIDATION_ERROR


def test_production_keys_with_sandbox_flag_warn(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    env_file = _write_env(
        tmp_path / ".env",
        EBAY_APP_ID="Seller-App-PRD-1234abcd",
        EBAY_CLIENT_SECRET="PRD-secret",
        EBAY_RUNAME="Seller-Seller-App-PRD-runame",
        EBAY_ACTUAL_REDIRECT_URI="https://seller.example.com/ebay/callback",
        EBAY_SANDBOX="true",
    )

    lenient = check_env.main(["--env-file", str(env_file)])
    err = capsys.readouterr().err
    strict = check_env.main(["--env-file", str(env_file), "--strict"])

    assert lenient == check_env.EXIT_OK
    assert strict == check_env.EXIT_VALIDATION_ERROR
    assert "EBAY_APP_ID looks like a production key" in err
    assert "EBAY_RUNAME looks like a production key" in err
    assert "EBAY_ACTUAL_REDIRECT_URI" in err
    assert "TOKEN_ENCRYPTION_SECRET is empty" in err


def test_check_db_accepts_tokens_encrypted_with_previous_secret(tmp_path: Path) -> None:
    env_file = _sandbox_env(tmp_path, TOKEN_ENCRYPTION_PREVIOUS_SECRETS="retired-secret")
    db_path = str(tmp_path / "data" / "tokens.db")
    SQLiteTokenStore(db_path, TokenCipherService(secret="retired-secret")).put(
        TokenSet(
            user_id="u1",
            access_token="AT1",
            refresh_token="RT1",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=2),
        )
    )

    exit_code = check_env.main(["--env-file", str(env_file), "--check-db"])

    assert exit_code == check_env.EXIT_OK


def test_check_db_reports_unreadable_tokens(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    env_file = _sandbox_env(tmp_path)
    db_path = str(tmp_path / "data" / "tokens.db")
    SQLiteTokenStore(db_path, TokenCipherService(secret="lost-secret")).put(
        TokenSet(
            user_id="u1",
            access_token="AT1",
            refresh_token="RT1",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=2),
        )
    )

    exit_code = check_env.main(["--env-file", str(env_file), "--check-db"])

    assert exit_code == check_env.EXIT_UNREADABLE_TOKENS
    assert "u1" in capsys.readouterr().err
