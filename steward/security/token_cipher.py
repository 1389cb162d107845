"""Authenticated encryption for OAuth tokens at rest (AES-256-GCM).

Wire format: "v1.<iv>.<tag>.<ciphertext>", each part unpadded base64url.
"""

from __future__ import annotations

import base64
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from steward.config import ConfigurationError

_VERSION = "v1"
_IV_BYTES = 12
_TAG_BYTES = 16


class TokenCipherError(Exception):
    """Raised when an encrypted blob is malformed or fails authentication."""


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def _b64url_decode_strict(text: str) -> bytes:
    # Reject non-canonical encodings so every character of the blob is significant
    data = base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))
    if _b64url_encode(data) != text:
        raise ValueError("non-canonical base64url")
    return data


class TokenCipher:
    def __init__(self, key: bytes) -> None:
        if len(key) != 32:
            raise ConfigurationError("TOKEN_ENCRYPTION_KEY must decode to 32 bytes")
        self._aead = AESGCM(key)

    @classmethod
    def from_key_string(cls, raw_key: str) -> "TokenCipher":
        """Build from a base64url-encoded 32-byte key (the TOKEN_ENCRYPTION_KEY setting)."""
        if not raw_key:
            raise ConfigurationError("Missing TOKEN_ENCRYPTION_KEY")
        try:
            key = _b64url_decode(raw_key.strip())
        except (ValueError, TypeError) as exc:
            raise ConfigurationError("TOKEN_ENCRYPTION_KEY is not valid base64url") from exc
        return cls(key)

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(_IV_BYTES)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-_TAG_BYTES], sealed[-_TAG_BYTES:]
        return ".".join(
            [_VERSION, _b64url_encode(iv), _b64url_encode(tag), _b64url_encode(ciphertext)]
        )

    def decrypt(self, token: str) -> str:
        parts = token.split(".")
        if len(parts) != 4 or parts[0] != _VERSION:
            raise TokenCipherError("Invalid encrypted token format")

        try:
            iv = _b64url_decode_strict(parts[1])
            tag = _b64url_decode_strict(parts[2])
            ciphertext = _b64url_decode_strict(parts[3])
        except (ValueError, TypeError) as exc:
            raise TokenCipherError("Invalid encrypted token encoding") from exc

        if len(iv) != _IV_BYTES or len(tag) != _TAG_BYTES:
            raise TokenCipherError("Invalid encrypted token format")

        try:
            plaintext = self._aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as exc:
            raise TokenCipherError("Encrypted token failed authentication") from exc
        return plaintext.decode("utf-8")
