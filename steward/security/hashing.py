"""Salted one-way hashing for the owner claim code.

The pepper is a deployment secret that is never stored. It keys an
HMAC-SHA256 of the code, and that digest is what bcrypt hashes, which keeps
the input under bcrypt's 72-byte limit whatever the code length.
"""

from __future__ import annotations

import base64
import hashlib
import hmac

import bcrypt


def _peppered(secret: str, pepper: str) -> bytes:
    digest = hmac.new(pepper.encode("utf-8"), secret.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest)


def hash_secret(secret: str, pepper: str) -> str:
    """Hash a secret using bcrypt with a fresh salt."""
    return bcrypt.hashpw(_peppered(secret, pepper), bcrypt.gensalt()).decode("utf-8")


def verify_secret(secret: str, pepper: str, encoded_hash: str) -> bool:
    """Check a candidate secret against a bcrypt hash. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(_peppered(secret, pepper), encoded_hash.encode("utf-8"))
    except ValueError:
        return False
