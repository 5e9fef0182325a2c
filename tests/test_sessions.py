from __future__ import annotations

from datetime import timedelta
from typing import List

import anyio
import pytest

from snippetbox.sessions import Session, SessionStore


def test_unknown_token_loads_empty_session() -> None:
    store = SessionStore()

    for token in (None, "", "not-a-real-token"):
        session = store.load(token)
        assert session.is_new
        assert session.values() == {}


def test_empty_new_session_is_not_persisted() -> None:
    store = SessionStore()
    session = store.load(None)

    assert store.commit(session) is None
    assert len(store) == 0


def test_commit_persists_values() -> None:
    store = SessionStore()
    session = store.load(None)
    session.put("colour", "green")

    token = store.commit(session)

    assert token is not None
    assert store.get(token, "colour") == "green"
    reloaded = store.load(token)
    assert not reloaded.is_new
    assert reloaded.get("colour") == "green"


def test_uncommitted_changes_are_discarded() -> None:
    store = SessionStore()
    token = store.create({"colour": "green"})

    session = store.load(token)
    session.put("colour", "red")
    session.remove("colour")

    assert store.get(token, "colour") == "green"


def test_pop_reads_once() -> None:
    store = SessionStore()
    token = store.create({"flash": "Saved!"})

    session = store.load(token)
    assert session.pop("flash") == "Saved!"
    assert session.pop("flash") is None
    store.commit(session)

    assert store.load(token).get("flash") is None


def test_get_once_and_remove() -> None:
    store = SessionStore()
    token = store.create({"flash": "Hello", "other": 1})

    assert store.get_once(token, "flash") == "Hello"
    assert store.get_once(token, "flash") is None
    store.remove(token, "other")
    assert store.get(token, "other") is None


def test_put_requires_live_token() -> None:
    store = SessionStore()

    with pytest.raises(KeyError):
        store.put("missing", "key", "value")

    token = store.create()
    store.put(token, "key", "value")
    assert store.get(token, "key") == "value"


def test_renew_moves_data_to_new_token() -> None:
    store = SessionStore()
    token = store.create({"authenticated_user_id": 1})

    new_token = store.renew(token)

    assert new_token != token
    assert store.load(token).is_new
    assert store.get(new_token, "authenticated_user_id") == 1


def test_commit_renewed_session_rotates_token() -> None:
    store = SessionStore()
    token = store.create({"csrf_token": "abc"})

    session = store.load(token)
    session.renew()
    session.put("authenticated_user_id", 7)
    new_token = store.commit(session)

    assert new_token not in (None, token)
    assert store.load(token).is_new
    assert store.load(new_token).values() == {"csrf_token": "abc", "authenticated_user_id": 7}


def test_renewing_a_new_session_creates_one() -> None:
    store = SessionStore()
    session = store.load(None)
    session.renew()

    assert store.commit(session) is not None
    assert len(store) == 1


def test_destroy() -> None:
    store = SessionStore()
    token = store.create({"authenticated_user_id": 1})

    session = store.load(token)
    session.destroy()

    assert store.commit(session) is None
    assert store.load(token).is_new
    assert len(store) == 0


def test_expired_sessions_are_purged() -> None:
    store = SessionStore(lifetime=timedelta(seconds=-1))
    store.create({"a": 1})
    store.create({"b": 2})

    assert store.purge_expired() == 2
    assert len(store) == 0


def test_creation_purges_expired_sessions_periodically() -> None:
    store = SessionStore(lifetime=timedelta(seconds=-1), purge_every=10)

    for index in range(25):
        store.create({"n": index})

    # Creations 10 and 20 purge before storing; 20 through 25 remain.
    assert len(store) == 6


def test_purge_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        SessionStore(purge_every=0)


def test_expired_session_does_not_resolve() -> None:
    store = SessionStore(lifetime=timedelta(seconds=-1))
    token = store.create({"a": 1})

    assert store.load(token).is_new
    assert store.get(token, "a") is None


def test_cookie_max_age_matches_lifetime() -> None:
    assert SessionStore().cookie_max_age == 12 * 60 * 60
    assert SessionStore(lifetime=timedelta(minutes=5)).cookie_max_age == 300


def test_session_flags() -> None:
    session = Session("token", {"a": 1})

    assert not session.modified
    assert "a" in session
    session.remove("missing")
    assert not session.modified
    session.put("b", 2)
    assert session.modified
    assert session.values() == {"a": 1, "b": 2}


def _run_pair(first_token: str, second_token: str) -> List[str]:
    store = SessionStore()
    events: List[str] = []

    async def worker(name: str, token: str) -> None:
        async with store.lock(token):
            events.append(f"{name}-in")
            await anyio.sleep(0.05)
            events.append(f"{name}-out")

    async def main() -> None:
        async with anyio.create_task_group() as tg:
            tg.start_soon(worker, "a", first_token)
            await anyio.sleep(0.01)
            tg.start_soon(worker, "b", second_token)

    anyio.run(main)
    assert store._locks == {}
    return events


def test_same_token_requests_are_serialised() -> None:
    assert _run_pair("shared", "shared") == ["a-in", "a-out", "b-in", "b-out"]


def test_distinct_tokens_run_concurrently() -> None:
    assert _run_pair("one", "two") == ["a-in", "b-in", "a-out", "b-out"]
