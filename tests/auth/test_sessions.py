from __future__ import annotations

from datetime import timedelta

import pytest
from sqlmodel import select

from pawboard import database
from pawboard.auth.credentials import create_user_with_credential
from pawboard.auth.models import AuthSession
from pawboard.auth.sessions import SessionStore


def _make_user(email: str = "owner@example.com") -> str:
    with database.SessionLocal() as session:
        return create_user_with_credential(session, email, "not-a-real-hash").id


def _session_rows() -> list[AuthSession]:
    with database.SessionLocal() as session:
        return list(session.exec(select(AuthSession)).all())


def test_create_issues_unique_high_entropy_ids(db_url, session_store: SessionStore) -> None:
    user_id = _make_user()
    with database.SessionLocal() as session:
        issued = [session_store.create(session, user_id) for _ in range(20)]

    ids = {item.id for item in issued}
    assert len(ids) == 20
    # 32 random bytes encode to 43 url-safe characters.
    assert all(len(session_id) >= 43 for session_id in ids)
    assert all(item.user_id == user_id for item in issued)
    assert all(item.fresh for item in issued)


def test_validate_returns_user_until_invalidated(db_url, session_store: SessionStore) -> None:
    user_id = _make_user("someone@example.com")
    with database.SessionLocal() as session:
        issued = session_store.create(session, user_id)

    with database.SessionLocal() as session:
        validated = session_store.validate(session, issued.id)
    assert validated is not None
    assert validated.user.id == user_id
    assert validated.user.email == "someone@example.com"
    assert validated.session.fresh is False

    with database.SessionLocal() as session:
        session_store.invalidate(session, issued.id)
        # A second invalidation is a no-op.
        session_store.invalidate(session, issued.id)
        session_store.invalidate(session, "never-issued")

    with database.SessionLocal() as session:
        assert session_store.validate(session, issued.id) is None
    assert _session_rows() == []


@pytest.mark.parametrize("session_id", [None, "", "unknown-id"])
def test_validate_unknown_ids(db_url, session_store: SessionStore, session_id) -> None:
    with database.SessionLocal() as session:
        assert session_store.validate(session, session_id) is None


def test_expired_session_is_rejected_and_removed(db_url, session_store, clock) -> None:
    user_id = _make_user()
    with database.SessionLocal() as session:
        issued = session_store.create(session, user_id)

    clock.advance(days=30, seconds=1)

    with database.SessionLocal() as session:
        assert session_store.validate(session, issued.id) is None
    assert _session_rows() == []

    # Time does not run backwards for a deleted row.
    clock.advance(days=-10)
    with database.SessionLocal() as session:
        assert session_store.validate(session, issued.id) is None


def test_validation_slides_expiry_in_second_half(db_url, session_store, clock) -> None:
    user_id = _make_user()
    with database.SessionLocal() as session:
        issued = session_store.create(session, user_id)
    assert issued.max_age == 30 * 86400

    clock.advance(days=10)
    with database.SessionLocal() as session:
        early = session_store.validate(session, issued.id)
    assert early is not None
    assert early.session.fresh is False
    assert early.session.expires_at == issued.expires_at
    assert early.session.max_age == 20 * 86400

    clock.advance(days=10)
    with database.SessionLocal() as session:
        late = session_store.validate(session, issued.id)
    assert late is not None
    assert late.session.fresh is True
    assert late.session.expires_at == clock.now + timedelta(days=30)
    # Cookie lifetime is measured on the store clock, not the wall clock.
    assert late.session.max_age == 30 * 86400

    # The renewed expiry is persisted: well past the original one it still works.
    clock.advance(days=25)
    with database.SessionLocal() as session:
        assert session_store.validate(session, issued.id) is not None


def test_create_retries_on_id_collision(db_url, session_store, monkeypatch) -> None:
    user_id = _make_user()
    candidates = iter(["a" * 43, "a" * 43, "b" * 43])
    monkeypatch.setattr(session_store, "_generate_id", lambda: next(candidates))

    with database.SessionLocal() as session:
        first = session_store.create(session, user_id)
    with database.SessionLocal() as session:
        second = session_store.create(session, user_id)

    assert first.id == "a" * 43
    assert second.id == "b" * 43
    assert {row.id for row in _session_rows()} == {"a" * 43, "b" * 43}


def test_invalidate_user_sessions_and_delete_expired(db_url, session_store, clock) -> None:
    alice = _make_user("alice@example.com")
    bob = _make_user("bob@example.com")
    with database.SessionLocal() as session:
        session_store.create(session, alice)
        session_store.create(session, alice)
        kept = session_store.create(session, bob)

    with database.SessionLocal() as session:
        assert session_store.invalidate_user_sessions(session, alice) == 2
    assert [row.id for row in _session_rows()] == [kept.id]

    clock.advance(days=31)
    with database.SessionLocal() as session:
        assert session_store.delete_expired(session) == 1
    assert _session_rows() == []


def test_store_rejects_short_identifiers() -> None:
    with pytest.raises(ValueError):
        SessionStore(lifetime=timedelta(days=1), id_bytes=8)
    with pytest.raises(ValueError):
        SessionStore(lifetime=timedelta(0))
