"""SQLite-backed storage for eBay tokens, linked accounts and OAuth states."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Optional

from sellerlink.models.oauth import (
    REFRESH_BUFFER,
    LinkedAccount,
    TokenSet,
    ensure_utc,
    utcnow,
)

if TYPE_CHECKING:
    from sellerlink.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)


class TokenStoreError(RuntimeError):
    """Raised when the underlying database rejects an operation."""


def _to_db(value: datetime) -> str:
    # Fixed-width UTC strings so SQL comparisons order chronologically.
    return ensure_utc(value).isoformat(timespec="microseconds")


def _from_db(value: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(value))


class SQLiteTokenStore:
    """Keyed token and account storage with last-write-wins upserts per user."""

    def __init__(self, db_path: str, cipher: TokenCipherService) -> None:
        self._db_path = Path(db_path)
        self._cipher = cipher
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection whose statements commit or roll back together."""
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise TokenStoreError(f"Could not open token database: {exc}") from exc
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            logger.error("Token store operation failed: %s", exc)
            raise TokenStoreError(str(exc)) from exc
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS ebay_tokens (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL UNIQUE,
                    access_token TEXT NOT NULL,
                    refresh_token TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS ebay_users (
                    id TEXT PRIMARY KEY,
                    ebay_user_id TEXT NOT NULL UNIQUE,
                    username TEXT NOT NULL,
                    email TEXT,
                    account_type TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS oauth_states (
                    state TEXT PRIMARY KEY,
                    issued_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                )
                """
            )
        logger.info("Token storage tables initialized at %s", self._db_path)

    # Tokens

    def _write_tokens(self, conn: sqlite3.Connection, token_set: TokenSet) -> None:
        conn.execute(
            """
            INSERT INTO ebay_tokens
                (id, user_id, access_token, refresh_token, expires_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                access_token = excluded.access_token,
                refresh_token = excluded.refresh_token,
                expires_at = excluded.expires_at,
                updated_at = excluded.updated_at
            """,
            (
                f"tokens_{token_set.user_id}",
                token_set.user_id,
                self._cipher.encrypt(token_set.access_token),
                self._cipher.encrypt(token_set.refresh_token),
                _to_db(token_set.expires_at),
                _to_db(token_set.created_at),
                _to_db(token_set.updated_at),
            ),
        )

    def put(self, token_set: TokenSet) -> None:
        """Insert or replace the token set for ``token_set.user_id``."""
        with self._transaction() as conn:
            self._write_tokens(conn, token_set)
        logger.info("Stored tokens for user %s", token_set.user_id)

    def get(self, user_id: str) -> Optional[TokenSet]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM ebay_tokens WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if not row:
            return None
        return TokenSet(
            user_id=row["user_id"],
            access_token=self._cipher.decrypt(row["access_token"]),
            refresh_token=self._cipher.decrypt(row["refresh_token"]),
            expires_at=_from_db(row["expires_at"]),
            created_at=_from_db(row["created_at"]),
            updated_at=_from_db(row["updated_at"]),
        )

    def user_ids(self) -> list[str]:
        """Return every user id that currently has a stored token set."""
        with self._transaction() as conn:
            rows = conn.execute("SELECT user_id FROM ebay_tokens ORDER BY user_id").fetchall()
        return [row["user_id"] for row in rows]

    def delete(self, user_id: str) -> bool:
        """Remove the token set for ``user_id``; a missing row is not an error."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM ebay_tokens WHERE user_id = ?",
                (user_id,),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted tokens for user %s", user_id)
        return deleted

    # Linked accounts

    def _write_account(self, conn: sqlite3.Connection, account: LinkedAccount) -> None:
        conn.execute(
            """
            INSERT INTO ebay_users
                (id, ebay_user_id, username, email, account_type, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(ebay_user_id) DO UPDATE SET
                username = excluded.username,
                email = excluded.email,
                account_type = excluded.account_type,
                updated_at = excluded.updated_at
            """,
            (
                f"user_{account.external_user_id}",
                account.external_user_id,
                account.username,
                account.email,
                account.account_type,
                _to_db(account.created_at),
                _to_db(account.updated_at),
            ),
        )

    def put_account(self, account: LinkedAccount) -> None:
        with self._transaction() as conn:
            self._write_account(conn, account)
        logger.info("Stored linked account %s", account.username)

    def get_account(self, external_user_id: str) -> Optional[LinkedAccount]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM ebay_users WHERE ebay_user_id = ?",
                (external_user_id,),
            ).fetchone()
        if not row:
            return None
        return LinkedAccount(
            external_user_id=row["ebay_user_id"],
            username=row["username"],
            email=row["email"],
            account_type=row["account_type"],
            created_at=_from_db(row["created_at"]),
            updated_at=_from_db(row["updated_at"]),
        )

    def link(self, token_set: TokenSet, account: LinkedAccount) -> None:
        """Persist a freshly authorized account and its tokens in one transaction."""
        if token_set.user_id != account.external_user_id:
            raise ValueError("Token set and linked account belong to different users.")
        with self._transaction() as conn:
            self._write_account(conn, account)
            self._write_tokens(conn, token_set)
        logger.info("Linked eBay account %s (%s)", account.username, account.external_user_id)

    # OAuth states

    def put_state(self, state: str, expires_at: datetime) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO oauth_states (state, issued_at, expires_at) VALUES (?, ?, ?)",
                (state, _to_db(utcnow()), _to_db(expires_at)),
            )

    def consume_state(self, state: str, now: Optional[datetime] = None) -> bool:
        """Delete ``state`` and report whether it was issued and still fresh."""
        current = _to_db(now or utcnow())
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM oauth_states WHERE state = ? AND expires_at >= ?",
                (state, current),
            )
            consumed = cursor.rowcount == 1
            if not consumed:
                conn.execute("DELETE FROM oauth_states WHERE state = ?", (state,))
        return consumed

    # Housekeeping

    def expire(self, now: Optional[datetime] = None) -> int:
        """Delete token rows past the refresh buffer and stale OAuth states.

        Returns the number of token rows removed.
        """
        current = now or utcnow()
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM ebay_tokens WHERE expires_at < ?",
                (_to_db(current - REFRESH_BUFFER),),
            )
            removed = cursor.rowcount
            conn.execute(
                "DELETE FROM oauth_states WHERE expires_at < ?",
                (_to_db(current),),
            )
        logger.info("Cleaned up %s expired token record(s)", removed)
        return removed

    def reencrypt_tokens(self) -> int:
        """Re-encrypt every stored token under the current encryption secret."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT user_id, access_token, refresh_token FROM ebay_tokens"
            ).fetchall()
            for row in rows:
                conn.execute(
                    "UPDATE ebay_tokens SET access_token = ?, refresh_token = ? WHERE user_id = ?",
                    (
                        self._cipher.rotate(row["access_token"]),
                        self._cipher.rotate(row["refresh_token"]),
                        row["user_id"],
                    ),
                )
        logger.info("Re-encrypted tokens for %s user(s)", len(rows))
        return len(rows)


__all__ = ["SQLiteTokenStore", "TokenStoreError"]
