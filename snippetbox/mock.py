"""In-memory storage seeded with fixed data, used by tests and demos."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List

from .models import DuplicateEmailError, InvalidCredentialsError, NoRecordError, Snippet, User
from .security import burn_verification, hash_password, verify_password

SEED_USER_NAME = "Mims"
SEED_USER_EMAIL = "mims@meeklife.net"
SEED_USER_PASSWORD = "pa$$word-for-mims"

SEED_SNIPPET_TITLE = "An old silent pond"
SEED_SNIPPET_CONTENT = "An old silent pond...\nA frog jumps into the pond,\nsplash! Silence again."


@dataclass
class _StoredUser:
    user: User
    hashed_password: str


class MemoryDatabase:
    """Thread-safe stand-in for :class:`~snippetbox.database.Database`.

    Starts with one active user (id 1) and one snippet (id 1).
    """

    def __init__(self, *, seed: bool = True) -> None:
        self._lock = threading.Lock()
        self._users: Dict[int, _StoredUser] = {}
        self._snippets: Dict[int, Snippet] = {}
        self._next_user_id = 1
        self._next_snippet_id = 1
        if seed:
            self.insert_user(SEED_USER_NAME, SEED_USER_EMAIL, SEED_USER_PASSWORD)
            self.insert_snippet(SEED_SNIPPET_TITLE, SEED_SNIPPET_CONTENT, 7)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def insert_user(self, name: str, email: str, password: str) -> int:
        normalized = email.strip().lower()
        hashed = hash_password(password)
        with self._lock:
            if any(stored.user.email == normalized for stored in self._users.values()):
                raise DuplicateEmailError()
            user_id = self._next_user_id
            self._next_user_id += 1
            user = User(id=user_id, name=name.strip(), email=normalized, created_at=self._now())
            self._users[user_id] = _StoredUser(user=user, hashed_password=hashed)
        return user_id

    def authenticate(self, email: str, password: str) -> int:
        normalized = email.strip().lower()
        with self._lock:
            match = next(
                (stored for stored in self._users.values() if stored.user.email == normalized),
                None,
            )
        if match is None:
            burn_verification(password)
            raise InvalidCredentialsError()
        if not verify_password(password, match.hashed_password) or not match.user.active:
            raise InvalidCredentialsError()
        return match.user.id

    def get_user(self, user_id: int) -> User:
        with self._lock:
            stored = self._users.get(user_id)
        if stored is None:
            raise NoRecordError()
        return stored.user

    def change_password(self, user_id: int, current_password: str, new_password: str) -> None:
        with self._lock:
            stored = self._users.get(user_id)
        if stored is None:
            burn_verification(current_password)
            raise InvalidCredentialsError()
        if not verify_password(current_password, stored.hashed_password):
            raise InvalidCredentialsError()
        hashed = hash_password(new_password)
        with self._lock:
            stored.hashed_password = hashed

    def set_user_active(self, user_id: int, active: bool) -> None:
        with self._lock:
            stored = self._users.get(user_id)
            if stored is None:
                raise NoRecordError()
            stored.user = replace(stored.user, active=active)

    def insert_snippet(self, title: str, content: str, expires_days: int) -> int:
        if expires_days < 1:
            raise ValueError("Snippets must expire at least one day after creation")
        created_at = self._now()
        with self._lock:
            snippet_id = self._next_snippet_id
            self._next_snippet_id += 1
            self._snippets[snippet_id] = Snippet(
                id=snippet_id,
                title=title,
                content=content,
                created_at=created_at,
                expires_at=created_at + timedelta(days=expires_days),
            )
        return snippet_id

    def get_snippet(self, snippet_id: int) -> Snippet:
        with self._lock:
            snippet = self._snippets.get(snippet_id)
        if snippet is None or snippet.expires_at <= self._now():
            raise NoRecordError()
        return snippet

    def latest_snippets(self, limit: int = 10) -> List[Snippet]:
        now = self._now()
        with self._lock:
            live = [snippet for snippet in self._snippets.values() if snippet.expires_at > now]
        live.sort(key=lambda snippet: (snippet.created_at, snippet.id), reverse=True)
        return live[:limit]


__all__ = ["MemoryDatabase", "SEED_USER_EMAIL", "SEED_USER_NAME", "SEED_USER_PASSWORD"]
