"""Engine and session plumbing for the Pawboard store."""
from __future__ import annotations

from typing import Any, Dict, Iterator

from sqlalchemy import event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlmodel import Session, create_engine

from .config import settings


def _is_sqlite(url: URL) -> bool:
    return url.get_backend_name() == "sqlite"


def _engine_options(url: URL) -> Dict[str, Any]:
    """Bound every store round trip by ``STORE_TIMEOUT_SECONDS``."""

    if _is_sqlite(url):
        # The busy timeout is how long a writer waits on a locked database.
        return {
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.STORE_TIMEOUT_SECONDS,
            }
        }
    return {
        "pool_timeout": settings.STORE_TIMEOUT_SECONDS,
        "pool_pre_ping": True,
    }


def _prepare_sqlite_file(url: URL) -> None:
    if url.database in (None, "", ":memory:"):
        return
    path = settings.resolve_data_path(url.database)
    path.parent.mkdir(parents=True, exist_ok=True)


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _build_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    if _is_sqlite(url):
        _prepare_sqlite_file(url)
    built = create_engine(url, future=True, **_engine_options(url))
    if _is_sqlite(url):
        event.listen(built, "connect", _enable_sqlite_foreign_keys)
    return built


def _build_sessionmaker(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, class_=Session, autocommit=False, autoflush=False)


engine = _build_engine(settings.DATABASE_URL)
SessionLocal = _build_sessionmaker(engine)


def reset_session_factory(database_url: str | None = None) -> None:
    """Point the module at ``database_url`` (or the configured URL again).

    Used by tests and the management CLI to switch stores at runtime.
    """

    global engine, SessionLocal

    if database_url is not None:
        settings.DATABASE_URL = database_url
    previous = engine
    engine = _build_engine(settings.DATABASE_URL)
    SessionLocal = _build_sessionmaker(engine)
    previous.dispose()


def session_factory() -> Session:
    """Open a session on whichever engine is current."""

    return SessionLocal()


def get_session() -> Iterator[Session]:
    """FastAPI dependency yielding a request scoped session."""

    with SessionLocal() as session:
        yield session


__all__ = [
    "SessionLocal",
    "engine",
    "get_session",
    "reset_session_factory",
    "session_factory",
]
