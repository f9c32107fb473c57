from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pawboard import database
from pawboard import listings  # noqa: F401  registers the listings table
from pawboard.auth.passwords import PasswordHasher
from pawboard.auth.policy import RegistrationPolicy
from pawboard.auth.service import AuthService, init_auth_storage
from pawboard.auth.sessions import SessionStore
from pawboard.config import settings


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture()
def db_url(tmp_path):
    original_url = settings.DATABASE_URL
    db_path = tmp_path / "pawboard.sqlite3"
    url = f"sqlite:///{db_path}"
    database.reset_session_factory(url)
    init_auth_storage()
    try:
        yield url
    finally:
        database.reset_session_factory(original_url)


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture()
def policy() -> RegistrationPolicy:
    return RegistrationPolicy.from_settings(settings)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def session_store(clock: FakeClock) -> SessionStore:
    return SessionStore(lifetime=timedelta(days=30), time_provider=clock)


@pytest.fixture()
def auth_service(db_url, hasher, policy, session_store) -> AuthService:
    return AuthService(
        session_factory=database.session_factory,
        hasher=hasher,
        sessions=session_store,
        policy=policy,
        retry_backoff=0,
        sleep=lambda _seconds: None,
    )


@pytest.fixture()
def client(auth_service: AuthService):
    from pawboard.main import create_app

    app = create_app(auth=auth_service)
    with TestClient(app, base_url="https://testserver") as test_client:
        yield test_client
