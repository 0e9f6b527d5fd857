"""Pre-deploy check for the SellerLink eBay OAuth configuration.

Loads ``AppSettings`` (optionally from a ``.env`` file) and reports anything
that would make ``/api/ebay/auth/login`` answer 500 or send sellers to the
wrong eBay environment:

* missing ``EBAY_APP_ID`` / ``EBAY_CLIENT_SECRET`` / ``EBAY_RUNAME``;
* an app id or RuName issued for production while ``EBAY_SANDBOX`` is on
  (or the reverse);
* a callback URL that does not point at ``/api/ebay/auth/callback`` and a
  dashboard URL that is not http(s);
* token encryption silently falling back to the client secret.

With ``--check-db`` it also opens the token database and confirms every
stored token set still decrypts with the configured secrets, which is worth
running before removing a secret from ``TOKEN_ENCRYPTION_PREVIOUS_SECRETS``.

Example usages::

    python -m scripts.check_env --env-file /opt/sellerlink/.env
    python -m scripts.check_env --env-file /opt/sellerlink/.env --check-db --strict
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from sellerlink.clients.sqlite_store import TokenStoreError
from sellerlink.core.config import AppSettings, ConfigurationError, _load_env_file
from sellerlink.dependencies import build_services

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_UNREADABLE_TOKENS = 4
EXIT_RUNTIME_ERROR = 5

CALLBACK_PATH = "/api/ebay/auth/callback"


def _environment_mismatches(settings: AppSettings) -> list[str]:
    """Flag eBay keys whose SBX/PRD marker contradicts ``EBAY_SANDBOX``."""
    ebay = settings.ebay
    wrong_marker = "-PRD-" if ebay.sandbox else "-SBX-"
    mode = "sandbox" if ebay.sandbox else "production"
    return [
        f"{name} looks like a {'production' if ebay.sandbox else 'sandbox'} key "
        f"but EBAY_SANDBOX selects {mode}."
        for name, value in (("EBAY_APP_ID", ebay.app_id), ("EBAY_RUNAME", ebay.ru_name))
        if wrong_marker in value
    ]


def _collect_warnings(settings: AppSettings) -> list[str]:
    warnings = _environment_mismatches(settings)
    if not settings.ebay.actual_redirect_uri.rstrip("/").endswith(CALLBACK_PATH):
        warnings.append(
            "EBAY_ACTUAL_REDIRECT_URI does not end with "
            f"{CALLBACK_PATH}; eBay will redirect sellers elsewhere."
        )
    if not settings.client_url.startswith(("http://", "https://")):
        warnings.append("CLIENT_URL is not an http(s) URL; callback redirects will break.")
    if not settings.security.token_encryption_secret:
        warnings.append(
            "TOKEN_ENCRYPTION_SECRET is empty; tokens are encrypted with "
            "EBAY_CLIENT_SECRET and become unreadable if it is rotated."
        )
    return warnings


def _unreadable_token_users(settings: AppSettings) -> list[str]:
    """Return user ids whose stored tokens do not decrypt with current secrets."""
    store = build_services(settings).token_store
    unreadable = []
    for user_id in store.user_ids():
        try:
            store.get(user_id)
        except (ConfigurationError, ValueError):
            unreadable.append(user_id)
    return unreadable


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate SellerLink's eBay OAuth settings before deploying."
    )
    parser.add_argument(
        "--env-file",
        default=None,
        type=Path,
        help="Environment file to load first; values already exported win.",
    )
    parser.add_argument(
        "--check-db",
        action="store_true",
        help="Confirm stored tokens decrypt with the configured secrets.",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat warnings as validation failures.",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_file: Optional[Path] = args.env_file
    if env_file is not None:
        if not env_file.exists():
            print(
                f"Environment file {env_file} does not exist. "
                "Ensure the path is correct or omit --env-file.",
                file=sys.stderr,
            )
            return EXIT_RUNTIME_ERROR
        _load_env_file(str(env_file))

    try:
        settings = AppSettings()
    except ValidationError as exc:
        print(
            "Settings validation failed. Malformed values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR

    missing = settings.ebay.missing_credentials()
    if missing:
        print(f"Settings validation failed. {ConfigurationError(missing)}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    warnings = _collect_warnings(settings)
    for warning in warnings:
        print(f"warning: {warning}", file=sys.stderr)
    if warnings and args.strict:
        return EXIT_VALIDATION_ERROR

    environment = "sandbox" if settings.ebay.sandbox else "production"
    print(f"eBay {environment} credentials present for app {settings.ebay.app_id}.")

    if args.check_db:
        try:
            unreadable = _unreadable_token_users(settings)
        except TokenStoreError as exc:
            print(f"Could not read token database: {exc}", file=sys.stderr)
            return EXIT_RUNTIME_ERROR
        if unreadable:
            print(
                "Stored tokens cannot be decrypted for user(s): "
                + ", ".join(unreadable),
                file=sys.stderr,
            )
            return EXIT_UNREADABLE_TOKENS
        print(f"Stored tokens readable in {settings.storage.db_path}.")

    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
