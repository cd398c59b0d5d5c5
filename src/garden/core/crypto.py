"""AES-256-GCM envelopes for stored site credentials.

An envelope is ``iv.tag.ciphertext`` with each part base64 encoded.
"""

from __future__ import annotations

import base64
import binascii
import os
from typing import Self

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from garden.errors import ConfigurationError, DecryptionError

KEY_ENV_VAR = "APP_ENC_KEY_BASE64"
KEY_SIZE = 32
IV_SIZE = 12
TAG_SIZE = 16


class SecretCipher:
    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_SIZE:
            raise ConfigurationError(f"{KEY_ENV_VAR} must be {KEY_SIZE} bytes (base64-encoded).")
        self._aead = AESGCM(key)

    @classmethod
    def from_base64(cls, key_base64: str | None) -> Self:
        if not key_base64:
            raise ConfigurationError(f"{KEY_ENV_VAR} is required to encrypt or decrypt secrets.")
        try:
            key = base64.b64decode(key_base64, validate=True)
        except binascii.Error as e:
            raise ConfigurationError(f"{KEY_ENV_VAR} is not valid base64.") from e
        return cls(key)

    def encrypt(self, value: str) -> str:
        iv = os.urandom(IV_SIZE)
        sealed = self._aead.encrypt(iv, value.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return ".".join(base64.b64encode(part).decode("ascii") for part in (iv, tag, ciphertext))

    def decrypt(self, envelope: str) -> str:
        parts = envelope.split(".")
        if len(parts) != 3 or not all(parts):
            raise DecryptionError("Invalid encrypted payload.")
        try:
            iv, tag, ciphertext = (base64.b64decode(part, validate=True) for part in parts)
        except binascii.Error as e:
            raise DecryptionError("Invalid encrypted payload.") from e

        try:
            plaintext = self._aead.decrypt(iv, ciphertext + tag, None)
        except (InvalidTag, ValueError) as e:
            raise DecryptionError("Encrypted payload could not be authenticated; is the key correct?") from e
        return plaintext.decode("utf-8")


def generate_key() -> str:
    """Return a fresh base64 key suitable for ``APP_ENC_KEY_BASE64``."""
    return base64.b64encode(AESGCM.generate_key(bit_length=256)).decode("ascii")
