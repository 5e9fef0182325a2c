"""SQLite-backed persistence for users and snippets."""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from .models import DuplicateEmailError, InvalidCredentialsError, NoRecordError, Snippet, User
from .security import burn_verification, hash_password, needs_rehash, verify_password

logger = logging.getLogger("snippetbox.database")


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "snippetbox.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class Database:
    """Simple wrapper around SQLite for persisting users and snippets."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    hashed_password TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    active INTEGER NOT NULL DEFAULT 1
                );

                CREATE TABLE IF NOT EXISTS snippets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_snippets_created_at ON snippets(created_at);
                """
            )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def insert_user(self, name: str, email: str, password: str) -> int:
        """Create a new user and return its id."""

        hashed = hash_password(password)
        with self._connection() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO users (name, email, hashed_password, created_at, active)
                    VALUES (?, ?, ?, ?, 1)
                    """,
                    (
                        name.strip(),
                        _normalize_email(email),
                        hashed,
                        _serialize_datetime(_current_timestamp()),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateEmailError() from exc
            user_id = int(cursor.lastrowid)

        logger.info("Created user #%s", user_id)
        return user_id

    def authenticate(self, email: str, password: str) -> int:
        """Return the id of the active user matching ``email`` and ``password``.

        Unknown emails, inactive accounts and wrong passwords all raise the same
        :class:`InvalidCredentialsError`.
        """

        with self._connection() as conn:
            row = conn.execute(
                "SELECT id, hashed_password, active FROM users WHERE email = ?",
                (_normalize_email(email),),
            ).fetchone()

        if row is None:
            burn_verification(password)
            raise InvalidCredentialsError()

        stored_hash = row["hashed_password"]
        if not verify_password(password, stored_hash) or not row["active"]:
            raise InvalidCredentialsError()

        if needs_rehash(stored_hash):
            self._store_password_hash(int(row["id"]), hash_password(password))
        return int(row["id"])

    def get_user(self, user_id: int) -> User:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT id, name, email, created_at, active FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            raise NoRecordError()
        return self._row_to_user(row)

    def change_password(self, user_id: int, current_password: str, new_password: str) -> None:
        """Replace the password after re-verifying the current one."""

        with self._connection() as conn:
            row = conn.execute(
                "SELECT hashed_password FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()

        if row is None:
            burn_verification(current_password)
            raise InvalidCredentialsError()
        if not verify_password(current_password, row["hashed_password"]):
            raise InvalidCredentialsError()

        self._store_password_hash(user_id, hash_password(new_password))
        logger.info("Password changed for user #%s", user_id)

    def set_user_active(self, user_id: int, active: bool) -> None:
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE users SET active = ? WHERE id = ?",
                (1 if active else 0, user_id),
            )
            updated = cursor.rowcount
        if updated == 0:
            raise NoRecordError()

    def _store_password_hash(self, user_id: int, hashed: str) -> None:
        with self._connection() as conn:
            conn.execute(
                "UPDATE users SET hashed_password = ? WHERE id = ?",
                (hashed, user_id),
            )

    # ------------------------------------------------------------------
    # Snippets
    # ------------------------------------------------------------------
    def insert_snippet(self, title: str, content: str, expires_days: int) -> int:
        if expires_days < 1:
            raise ValueError("Snippets must expire at least one day after creation")

        created_at = _current_timestamp()
        expires_at = created_at + timedelta(days=expires_days)
        with self._connection() as conn:
            cursor = conn.execute(
                "INSERT INTO snippets (title, content, created_at, expires_at) VALUES (?, ?, ?, ?)",
                (title, content, _serialize_datetime(created_at), _serialize_datetime(expires_at)),
            )
            return int(cursor.lastrowid)

    def get_snippet(self, snippet_id: int) -> Snippet:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM snippets WHERE id = ? AND expires_at > ?",
                (snippet_id, _serialize_datetime(_current_timestamp())),
            ).fetchone()
        if row is None:
            raise NoRecordError()
        return self._row_to_snippet(row)

    def latest_snippets(self, limit: int = 10) -> List[Snippet]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM snippets
                 WHERE expires_at > ?
                 ORDER BY created_at DESC, id DESC
                 LIMIT ?
                """,
                (_serialize_datetime(_current_timestamp()), limit),
            ).fetchall()
        return [self._row_to_snippet(row) for row in rows]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            created_at=_parse_datetime(row["created_at"]),
            active=bool(row["active"]),
        )

    @staticmethod
    def _row_to_snippet(row: sqlite3.Row) -> Snippet:
        return Snippet(
            id=int(row["id"]),
            title=str(row["title"]),
            content=str(row["content"]),
            created_at=_parse_datetime(row["created_at"]),
            expires_at=_parse_datetime(row["expires_at"]),
        )


__all__ = ["Database", "resolve_database_path"]
