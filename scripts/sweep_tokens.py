"""Housekeeping for the token database.

Deletes token records that expired without being refreshed, drops stale
OAuth states and, with ``--reencrypt``, rewrites stored tokens under the
current ``TOKEN_ENCRYPTION_SECRET`` after a secret rotation.

Example usage (e.g. from cron)::

    python -m scripts.sweep_tokens --db-path /opt/sellerlink/data/ebay_manager.db
"""

from __future__ import annotations

import argparse
import logging
import sys

from sellerlink.clients.sqlite_store import TokenStoreError
from sellerlink.core.config import ConfigurationError, get_settings
from sellerlink.core.logging import configure_logging
from sellerlink.dependencies import build_services

EXIT_OK = 0
EXIT_RUNTIME_ERROR = 5

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Prune expired eBay tokens.")
    parser.add_argument(
        "--db-path",
        default=None,
        help="SQLite database to sweep (default: DB_PATH from the environment).",
    )
    parser.add_argument(
        "--reencrypt",
        action="store_true",
        help="Re-encrypt remaining tokens with the current encryption secret.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    settings = get_settings()
    if args.db_path:
        settings = settings.model_copy(
            update={
                "storage": settings.storage.model_copy(update={"db_path": args.db_path})
            }
        )
    configure_logging(settings.log_level)

    try:
        services = build_services(settings)
        removed = services.auth_service.sweep_expired()
        rewritten = services.token_store.reencrypt_tokens() if args.reencrypt else 0
    except (ConfigurationError, TokenStoreError, ValueError) as exc:
        logger.error("Token sweep failed: %s", exc)
        return EXIT_RUNTIME_ERROR

    print(f"Removed {removed} expired token record(s).")
    if args.reencrypt:
        print(f"Re-encrypted tokens for {rewritten} user(s).")
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
