"""In-memory session handling for the snippet web interface."""

from __future__ import annotations

import secrets
import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, Optional

import anyio

AUTHENTICATED_USER_ID = "authenticated_user_id"
CSRF_TOKEN = "csrf_token"
FLASH = "flash"
REDIRECT_AFTER_LOGIN = "redirect_after_login"

_MISSING = object()


@dataclass
class _SessionRecord:
    values: Dict[str, Any]
    expires_at: datetime
    mutex: threading.Lock = field(default_factory=threading.Lock)


@dataclass
class _TokenLock:
    lock: anyio.Lock
    holders: int = 0


class Session:
    """Request-scoped working copy of a stored session.

    Changes stay local until :meth:`SessionStore.commit` applies them, so a
    request that fails part way through leaves the stored session untouched.
    """

    def __init__(self, token: Optional[str], values: Dict[str, Any]) -> None:
        self._token = token
        self._values = dict(values)
        self.modified = False
        self.renewed = False
        self.destroyed = False

    @property
    def token(self) -> Optional[str]:
        """Token the client presented, or ``None`` for a brand new session."""

        return self._token

    @property
    def is_new(self) -> bool:
        return self._token is None

    def values(self) -> Dict[str, Any]:
        return dict(self._values)

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def put(self, key: str, value: Any) -> None:
        self._values[key] = value
        self.modified = True

    def pop(self, key: str, default: Any = None) -> Any:
        """Read a value once; it is gone for every later request."""

        value = self._values.pop(key, _MISSING)
        if value is _MISSING:
            return default
        self.modified = True
        return value

    def remove(self, key: str) -> None:
        if key in self._values:
            del self._values[key]
            self.modified = True

    def renew(self) -> None:
        """Move the data to a fresh token when the request completes."""

        self.renewed = True
        self.modified = True

    def destroy(self) -> None:
        self._values.clear()
        self.destroyed = True
        self.modified = True


class SessionStore:
    """Generate, resolve, renew and destroy sessions keyed by opaque tokens."""

    def __init__(self, *, lifetime: timedelta = timedelta(hours=12), purge_every: int = 100) -> None:
        if purge_every < 1:
            raise ValueError("purge_every must be at least 1")
        self._lifetime = lifetime
        self._purge_every = purge_every
        self._created = 0
        self._records: Dict[str, _SessionRecord] = {}
        self._guard = threading.Lock()
        self._locks: Dict[str, _TokenLock] = {}

    @property
    def lifetime(self) -> timedelta:
        return self._lifetime

    @property
    def cookie_max_age(self) -> int:
        return int(self._lifetime.total_seconds())

    def __len__(self) -> int:
        with self._guard:
            return len(self._records)

    # ------------------------------------------------------------------
    # Token-level operations
    # ------------------------------------------------------------------
    def load(self, token: Optional[str]) -> Session:
        """Return a working copy for ``token``.

        Unknown, expired or missing tokens yield an empty new session; loading
        never fails. A live session's idle timer is reset.
        """

        record = self._resolve(token)
        if record is None or token is None:
            return Session(None, {})
        with record.mutex:
            record.expires_at = self._now() + self._lifetime
            return Session(token, record.values)

    def get(self, token: str, key: str, default: Any = None) -> Any:
        record = self._resolve(token)
        if record is None:
            return default
        with record.mutex:
            return record.values.get(key, default)

    def put(self, token: str, key: str, value: Any) -> None:
        record = self._require(token)
        with record.mutex:
            record.values[key] = value

    def get_once(self, token: str, key: str, default: Any = None) -> Any:
        record = self._resolve(token)
        if record is None:
            return default
        with record.mutex:
            return record.values.pop(key, default)

    def remove(self, token: str, key: str) -> None:
        record = self._resolve(token)
        if record is None:
            return
        with record.mutex:
            record.values.pop(key, None)

    def create(self, values: Optional[Dict[str, Any]] = None) -> str:
        """Store a new session; every ``purge_every`` creations also drop expired ones."""

        with self._guard:
            self._created += 1
            due = self._created % self._purge_every == 0
        if due:
            self.purge_expired()

        token = secrets.token_urlsafe(32)
        record = _SessionRecord(values=dict(values or {}), expires_at=self._now() + self._lifetime)
        with self._guard:
            self._records[token] = record
        return token

    def renew(self, token: str) -> str:
        """Move the session stored under ``token`` to a new token."""

        with self._guard:
            record = self._records.pop(token, None)
        values: Dict[str, Any] = {}
        if record is not None:
            with record.mutex:
                values = dict(record.values)
        return self.create(values)

    def destroy(self, token: str) -> None:
        with self._guard:
            self._records.pop(token, None)

    def purge_expired(self) -> int:
        now = self._now()
        with self._guard:
            expired = [token for token, record in self._records.items() if record.expires_at <= now]
            for token in expired:
                self._records.pop(token, None)
        return len(expired)

    # ------------------------------------------------------------------
    # Request integration
    # ------------------------------------------------------------------
    def commit(self, session: Session) -> Optional[str]:
        """Persist a working copy and return the token the client should hold.

        ``None`` means the client should not hold a session cookie at all.
        """

        token = session.token
        if session.destroyed:
            if token is not None:
                self.destroy(token)
            return None

        if token is not None and session.renewed:
            token = self.renew(token)

        record = self._resolve(token) if token is not None else None
        if record is None:
            if not session.values() and not session.renewed:
                return None
            return self.create(session.values())

        with record.mutex:
            record.values = session.values()
            record.expires_at = self._now() + self._lifetime
        return token

    @asynccontextmanager
    async def lock(self, token: Optional[str]) -> AsyncIterator[None]:
        """Serialise requests that carry the same token."""

        if not token:
            yield
            return

        with self._guard:
            entry = self._locks.get(token)
            if entry is None:
                entry = self._locks[token] = _TokenLock(lock=anyio.Lock())
            entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0 and self._locks.get(token) is entry:
                    del self._locks[token]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _resolve(self, token: Optional[str]) -> Optional[_SessionRecord]:
        if not token:
            return None
        now = self._now()
        with self._guard:
            record = self._records.get(token)
            if record is None:
                return None
            if record.expires_at <= now:
                self._records.pop(token, None)
                return None
            return record

    def _require(self, token: str) -> _SessionRecord:
        record = self._resolve(token)
        if record is None:
            raise KeyError("Unknown session token")
        return record

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)


__all__ = [
    "AUTHENTICATED_USER_ID",
    "CSRF_TOKEN",
    "FLASH",
    "REDIRECT_AFTER_LOGIN",
    "Session",
    "SessionStore",
]
