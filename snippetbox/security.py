"""Password hashing and token helpers."""
from __future__ import annotations

import secrets
import threading
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_hasher = PasswordHasher()
_dummy_hash: Optional[str] = None
_dummy_lock = threading.Lock()


def hash_password(password: str) -> str:
    """Return an Argon2id hash for ``password``."""

    if not password:
        raise ValueError("Password must not be empty")
    return _hasher.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not password or not hashed:
        return False
    try:
        return _hasher.verify(hashed, password)
    except (VerificationError, InvalidHashError):
        return False


def needs_rehash(hashed: str) -> bool:
    try:
        return _hasher.check_needs_rehash(hashed)
    except InvalidHashError:
        return True


def burn_verification(password: str) -> None:
    """Spend the cost of one verification against a throwaway hash.

    Lookups for unknown accounts call this so they take about as long as a
    failed password check on a real account.
    """

    global _dummy_hash
    with _dummy_lock:
        if _dummy_hash is None:
            _dummy_hash = _hasher.hash(secrets.token_urlsafe(16))
        hashed = _dummy_hash
    verify_password(password or "-", hashed)


def generate_token(nbytes: int = 32) -> str:
    return secrets.token_urlsafe(nbytes)


def tokens_match(provided: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison that treats missing values as a mismatch."""

    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


__all__ = [
    "burn_verification",
    "generate_token",
    "hash_password",
    "needs_rehash",
    "tokens_match",
    "verify_password",
]
