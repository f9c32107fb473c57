"""Durable login sessions keyed by opaque random identifiers.

A session is ``ACTIVE`` until its expiry passes or it is invalidated. Both
outcomes delete the row, and identifiers are never reissued, so a terminal
session can never validate again.

Expiry slides: once less than half of the lifetime remains, a successful
validation pushes the expiry to a full lifetime from now and marks the
result ``fresh`` so the transport re-issues the cookie.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .errors import TransientStoreFailure, translate_store_errors
from .models import AuthSession, CurrentUser, User

logger = logging.getLogger(__name__)

_TimeProvider = Callable[[], datetime]

MIN_SESSION_ID_BYTES = 16
MAX_CREATE_ATTEMPTS = 3


def _default_time_provider() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class IssuedSession:
    """A session handle as seen by the transport."""

    id: str
    user_id: str
    expires_at: datetime
    fresh: bool = False
    # Seconds left at issue time, measured on the store clock.
    max_age: Optional[int] = None


@dataclass(frozen=True)
class ValidatedSession:
    session: IssuedSession
    user: CurrentUser


class SessionStore:
    """Create, validate and invalidate rows in the ``sessions`` table."""

    def __init__(
        self,
        *,
        lifetime: timedelta,
        id_bytes: int = 32,
        time_provider: Optional[_TimeProvider] = None,
    ) -> None:
        if lifetime <= timedelta(0):
            raise ValueError("lifetime must be positive")
        if id_bytes < MIN_SESSION_ID_BYTES:
            raise ValueError(
                f"id_bytes must be at least {MIN_SESSION_ID_BYTES} (128 bits)"
            )
        self.lifetime = lifetime
        self._id_bytes = id_bytes
        self._time_provider: _TimeProvider = time_provider or _default_time_provider

    def _now(self) -> datetime:
        return self._time_provider()

    def _generate_id(self) -> str:
        return secrets.token_urlsafe(self._id_bytes)

    def create(self, session: Session, user_id: str) -> IssuedSession:
        """Persist a new session for ``user_id`` and return it."""

        for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
            now = self._now()
            session_id = self._generate_id()
            row = AuthSession(
                id=session_id,
                user_id=user_id,
                created_at=now,
                expires_at=now + self.lifetime,
            )
            with translate_store_errors("session create"):
                session.add(row)
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    logger.warning(
                        "Session id collision on attempt %d; regenerating", attempt
                    )
                    continue
            return IssuedSession(
                id=session_id,
                user_id=user_id,
                expires_at=now + self.lifetime,
                fresh=True,
                max_age=int(self.lifetime.total_seconds()),
            )
        raise TransientStoreFailure("could not allocate a unique session id")

    def validate(self, session: Session, session_id: Optional[str]) -> Optional[ValidatedSession]:
        """Return the session and its user, or ``None`` if it is not active."""

        if not session_id:
            return None
        now = self._now()
        with translate_store_errors("session validate"):
            result = session.exec(
                select(AuthSession, User)
                .join(User, User.id == AuthSession.user_id)
                .where(AuthSession.id == session_id)
            ).first()
            if result is None:
                return None
            row, user = result
            owner_id = row.user_id
            caller = CurrentUser.from_user(user)
            expires_at = _as_utc(row.expires_at)
            if expires_at <= now:
                session.exec(delete(AuthSession).where(AuthSession.id == session_id))
                session.commit()
                return None

            fresh = False
            if expires_at - now < self.lifetime / 2:
                renewed = now + self.lifetime
                outcome = session.exec(
                    update(AuthSession)
                    .where(AuthSession.id == session_id)
                    .where(AuthSession.expires_at > now)
                    .values(expires_at=renewed)
                )
                session.commit()
                if outcome.rowcount == 0:
                    # Invalidated or expired between the read and the write.
                    return None
                expires_at = renewed
                fresh = True

        issued = IssuedSession(
            id=session_id,
            user_id=owner_id,
            expires_at=expires_at,
            fresh=fresh,
            max_age=int((expires_at - now).total_seconds()),
        )
        return ValidatedSession(session=issued, user=caller)

    def invalidate(self, session: Session, session_id: Optional[str]) -> None:
        """Remove ``session_id``; unknown or already removed ids are ignored."""

        if not session_id:
            return
        with translate_store_errors("session invalidate"):
            session.exec(delete(AuthSession).where(AuthSession.id == session_id))
            session.commit()

    def invalidate_user_sessions(self, session: Session, user_id: str) -> int:
        """Remove every session belonging to ``user_id``."""

        with translate_store_errors("session invalidate user"):
            outcome = session.exec(
                delete(AuthSession).where(AuthSession.user_id == user_id)
            )
            session.commit()
        return outcome.rowcount or 0

    def delete_expired(self, session: Session) -> int:
        """Purge expired rows and return how many were removed."""

        with translate_store_errors("session purge"):
            outcome = session.exec(
                delete(AuthSession).where(AuthSession.expires_at <= self._now())
            )
            session.commit()
        removed = outcome.rowcount or 0
        if removed:
            logger.info("Removed %d expired sessions", removed)
        return removed


__all__ = ["IssuedSession", "SessionStore", "ValidatedSession"]
