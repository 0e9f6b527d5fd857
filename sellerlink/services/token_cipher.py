"""Symmetric encryption utilities for protecting stored tokens."""

from __future__ import annotations

import base64
import hashlib
from typing import Iterable, Optional

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from sellerlink.core.config import ConfigurationError


def _derive_fernet(secret: str) -> Fernet:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


class TokenCipherService:
    """Encrypt and decrypt eBay tokens using Fernet keys derived from secrets.

    New ciphertext is always produced with ``secret``; ``previous_secrets``
    are only tried when decrypting, so a retired secret can be phased out by
    re-encrypting rows with :meth:`rotate`.

    Keys are derived on first use. Without a secret the service can still be
    constructed, but every operation raises :class:`ConfigurationError`.
    """

    def __init__(self, *, secret: str, previous_secrets: Iterable[str] = ()) -> None:
        self._secret = secret
        self._previous_secrets = tuple(old for old in previous_secrets if old)
        self._multi: Optional[MultiFernet] = None

    @property
    def configured(self) -> bool:
        return bool(self._secret)

    @property
    def _fernet(self) -> MultiFernet:
        if self._multi is None:
            if not self._secret:
                raise ConfigurationError(["TOKEN_ENCRYPTION_SECRET"])
            keys = [_derive_fernet(self._secret)]
            keys.extend(_derive_fernet(old) for old in self._previous_secrets)
            self._multi = MultiFernet(keys)
        return self._multi

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext string and return the ciphertext."""
        token = self._fernet.encrypt(plaintext.encode("utf-8"))
        return token.decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a ciphertext string and return the plaintext."""
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise ValueError(
                "Failed to decrypt token; invalid ciphertext provided."
            ) from exc
        return plaintext.decode("utf-8")

    def rotate(self, ciphertext: str) -> str:
        """Re-encrypt ``ciphertext`` under the current secret."""
        try:
            token = self._fernet.rotate(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise ValueError(
                "Failed to rotate token; invalid ciphertext provided."
            ) from exc
        return token.decode("utf-8")


__all__ = ["TokenCipherService"]
