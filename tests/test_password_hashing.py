"""Tests for credential hashing and token helpers."""

from __future__ import annotations

import pytest
from argon2 import PasswordHasher

from snippetbox.security import (
    burn_verification,
    generate_token,
    hash_password,
    needs_rehash,
    tokens_match,
    verify_password,
)


def test_hash_and_verify() -> None:
    hashed = hash_password("supersecurepassword")

    assert hashed.startswith("$argon2id$")
    assert "supersecurepassword" not in hashed
    assert verify_password("supersecurepassword", hashed)
    assert not verify_password("wrong-password", hashed)


def test_hashes_are_salted() -> None:
    assert hash_password("same-password") != hash_password("same-password")


def test_empty_password_cannot_be_hashed() -> None:
    with pytest.raises(ValueError):
        hash_password("")


def test_verify_rejects_malformed_hash() -> None:
    assert verify_password("anything", "not-a-hash") is False
    assert verify_password("", hash_password("x" * 12)) is False


def test_needs_rehash_detects_weaker_parameters() -> None:
    weak = PasswordHasher(time_cost=1, memory_cost=8192, parallelism=1).hash("password123")

    assert needs_rehash(weak)
    assert not needs_rehash(hash_password("password123"))
    assert needs_rehash("garbage")


def test_burn_verification_returns_nothing() -> None:
    assert burn_verification("whatever") is None
    assert burn_verification("") is None


def test_tokens() -> None:
    token = generate_token()

    assert len(token) >= 32
    assert token != generate_token()
    assert tokens_match(token, token)
    assert not tokens_match(token, generate_token())
    assert not tokens_match(None, token)
    assert not tokens_match(token, None)
    assert not tokens_match("", "")
