"""Symmetric protection of stored connection passwords."""

from __future__ import annotations

import base64
import binascii
import logging
import os
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import DecryptionError
from .models import ConnectionParams

LOG = logging.getLogger(__name__)

ENCRYPTED_PREFIX = "enc:"
KEY_BITS = 256
NONCE_LENGTH = 12
_ASSOCIATED_DATA = b"tomedb-credential"


def is_protected(value: str | None) -> bool:
    """Return True when the value carries the encrypted-value marker."""

    return value is not None and value.startswith(ENCRYPTED_PREFIX)


class CredentialVault:
    """Encrypts passwords into `enc:<token>` strings and back.

    Both directions are no-ops for empty input. `protect` leaves tagged values
    alone so repeated saves never double-wrap, and `reveal` passes untagged
    values through so records saved before encryption keep working.
    """

    def __init__(self, key: bytes) -> None:
        if len(key) * 8 != KEY_BITS:
            raise ValueError(f"Vault key must be {KEY_BITS // 8} bytes, got {len(key)}.")
        self._cipher = AESGCM(key)

    @classmethod
    def generate(cls) -> "CredentialVault":
        """Vault with a fresh in-memory key (tests, throwaway sessions)."""

        return cls(AESGCM.generate_key(bit_length=KEY_BITS))

    @classmethod
    def from_key_file(cls, path: Path) -> "CredentialVault":
        return cls(load_or_create_key(path))

    def protect(self, plaintext: str | None) -> str | None:
        if not plaintext or is_protected(plaintext):
            return plaintext
        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._cipher.encrypt(nonce, plaintext.encode("utf-8"), _ASSOCIATED_DATA)
        token = base64.urlsafe_b64encode(nonce + sealed).decode("ascii")
        return f"{ENCRYPTED_PREFIX}{token}"

    def reveal(self, value: str | None) -> str | None:
        if not value or not is_protected(value):
            return value
        token = value[len(ENCRYPTED_PREFIX):]
        try:
            blob = base64.urlsafe_b64decode(token.encode("ascii"))
        except (binascii.Error, ValueError) as exc:
            raise DecryptionError("Stored credential is not valid ciphertext.") from exc
        if len(blob) <= NONCE_LENGTH:
            raise DecryptionError("Stored credential is truncated.")
        nonce, sealed = blob[:NONCE_LENGTH], blob[NONCE_LENGTH:]
        try:
            plain = self._cipher.decrypt(nonce, sealed, _ASSOCIATED_DATA)
        except InvalidTag as exc:
            raise DecryptionError("Stored credential could not be decrypted with the current key.") from exc
        return plain.decode("utf-8")

    def protect_params(self, params: ConnectionParams) -> ConnectionParams:
        """Return a copy of the params with the password encrypted."""

        return params.with_password(self.protect(params.password))

    def reveal_params(self, params: ConnectionParams) -> ConnectionParams:
        """Return a copy of the params with the password decrypted."""

        return params.with_password(self.reveal(params.password))


def load_or_create_key(path: Path) -> bytes:
    """Read the base64 vault key at `path`, creating it with 0600 permissions if missing."""

    try:
        encoded = path.read_text().strip()
    except FileNotFoundError:
        key = AESGCM.generate_key(bit_length=KEY_BITS)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(base64.b64encode(key).decode("ascii") + "\n")
        try:
            path.chmod(0o600)
        except OSError:  # pragma: no cover - platform dependent
            LOG.warning("Could not restrict vault key permissions", extra={"path": str(path)})
        LOG.info("Created vault key", extra={"path": str(path)})
        return key
    try:
        key = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecryptionError(f"Vault key file '{path}' is not valid base64.") from exc
    if len(key) * 8 != KEY_BITS:
        raise DecryptionError(f"Vault key file '{path}' does not hold a {KEY_BITS}-bit key.")
    return key


__all__ = [
    "CredentialVault",
    "ENCRYPTED_PREFIX",
    "is_protected",
    "load_or_create_key",
]
