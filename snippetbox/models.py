"""Domain models and storage contracts for the snippet service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Protocol


class ModelError(Exception):
    """Base class for errors raised by the storage layer."""


class NoRecordError(ModelError):
    def __init__(self, message: str = "No matching record found") -> None:
        super().__init__(message)


class InvalidCredentialsError(ModelError):
    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message)


class DuplicateEmailError(ModelError):
    def __init__(self, message: str = "A user with that email already exists") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class User:
    """Represents a registered account."""

    id: int
    name: str
    email: str
    created_at: datetime
    active: bool = True


@dataclass(frozen=True)
class Snippet:
    """A short-lived text snippet."""

    id: int
    title: str
    content: str
    created_at: datetime
    expires_at: datetime


class UserStore(Protocol):
    def insert_user(self, name: str, email: str, password: str) -> int: ...

    def authenticate(self, email: str, password: str) -> int: ...

    def get_user(self, user_id: int) -> User: ...

    def change_password(self, user_id: int, current_password: str, new_password: str) -> None: ...


class SnippetStore(Protocol):
    def insert_snippet(self, title: str, content: str, expires_days: int) -> int: ...

    def get_snippet(self, snippet_id: int) -> Snippet: ...

    def latest_snippets(self, limit: int = 10) -> List[Snippet]: ...


__all__ = [
    "DuplicateEmailError",
    "InvalidCredentialsError",
    "ModelError",
    "NoRecordError",
    "Snippet",
    "SnippetStore",
    "User",
    "UserStore",
]
