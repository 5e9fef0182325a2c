from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import Iterator, Optional

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from snippetbox.database import Database
from snippetbox.mock import (
    SEED_SNIPPET_CONTENT,
    SEED_SNIPPET_TITLE,
    SEED_USER_EMAIL,
    SEED_USER_NAME,
    SEED_USER_PASSWORD,
    MemoryDatabase,
)
from snippetbox.service import create_app
from snippetbox.sessions import SessionStore

EMAIL = SEED_USER_EMAIL
PASSWORD = SEED_USER_PASSWORD

_CSRF_PATTERN = re.compile(r'name="csrf_token" value="([^"]+)"')


def seeded_database(path: Path) -> Database:
    database = Database(path)
    database.initialize()
    database.insert_user(SEED_USER_NAME, SEED_USER_EMAIL, SEED_USER_PASSWORD)
    database.insert_snippet(SEED_SNIPPET_TITLE, SEED_SNIPPET_CONTENT, 7)
    return database


@pytest.fixture(params=["sqlite", "memory"])
def store(request: pytest.FixtureRequest, tmp_path: Path):
    """A seeded storage backend: one user (id 1) and one snippet (id 1)."""

    if request.param == "sqlite":
        return seeded_database(tmp_path / "snippetbox.sqlite3")
    return MemoryDatabase()


@pytest.fixture()
def sessions() -> SessionStore:
    return SessionStore()


@pytest.fixture()
def client(store, sessions: SessionStore) -> Iterator[TestClient]:
    app = create_app(users=store, snippets=store, sessions=sessions, secure_cookies=False)
    with TestClient(app) as test_client:
        yield test_client


def extract_csrf_token(html: str) -> str:
    match = _CSRF_PATTERN.search(html)
    assert match is not None, "page does not carry a forgery token"
    return match.group(1)


def fetch_csrf_token(client: TestClient, path: str = "/user/login") -> str:
    response = client.get(path, follow_redirects=False)
    assert response.status_code == 200
    return extract_csrf_token(response.text)


def login(
    client: TestClient,
    email: str = EMAIL,
    password: str = PASSWORD,
    *,
    token: Optional[str] = None,
):
    token = token or fetch_csrf_token(client)
    return client.post(
        "/user/login",
        data={"email": email, "password": password, "csrf_token": token},
        follow_redirects=False,
    )
