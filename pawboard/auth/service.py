"""Registration, login, logout and caller resolution."""
from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, TypeVar

from sqlmodel import Session, SQLModel

from .. import database
from .credentials import (
    create_user_with_credential,
    get_credential,
    login_key_for,
    normalize_email,
)
from .errors import (
    DisposableEmail,
    EmailTaken,
    InvalidCredentials,
    PasswordTooLong,
    TooManyAttempts,
    TransientStoreFailure,
    WeakPassword,
    translate_store_errors,
)
from .models import AuditLog, AuthSession, CurrentUser
from .passwords import PasswordHasher
from .policy import RegistrationPolicy
from .sessions import IssuedSession, SessionStore, ValidatedSession
from .throttling import LoginRateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")
SessionFactory = Callable[[], Session]


class AuthService:
    """Entry point for everything that proves or resolves identity.

    Built once at startup and handed to request handlers; each store step
    runs in its own database session and is retried once on a transient
    store failure.
    """

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        hasher: PasswordHasher,
        sessions: SessionStore,
        policy: RegistrationPolicy,
        rate_limiter: Optional[LoginRateLimiter] = None,
        retry_backoff: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session_factory = session_factory
        self.hasher = hasher
        self.sessions = sessions
        self.policy = policy
        self.rate_limiter = rate_limiter
        self._retry_backoff = retry_backoff
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Store plumbing ----------------------------------------------------

    def _run(self, operation: str, func: Callable[[Session], T]) -> T:
        try:
            with self._session_factory() as session:
                return func(session)
        except TransientStoreFailure as exc:
            logger.warning("Transient store failure during %s; retrying once: %s", operation, exc)
        self._sleep(self._retry_backoff)
        with self._session_factory() as session:
            return func(session)

    def _audit(
        self,
        action: str,
        *,
        actor_id: Optional[str] = None,
        summary: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        def _write(session: Session) -> None:
            with translate_store_errors("audit"):
                record_audit_event(
                    session,
                    actor_id=actor_id,
                    action=action,
                    summary=summary,
                    data=data,
                    commit=True,
                )

        try:
            self._run("audit", _write)
        except TransientStoreFailure:
            logger.exception("Could not persist audit event %s", action)

    # ------------------------------------------------------------------
    # Operations --------------------------------------------------------

    def register(
        self,
        email: str,
        password: str,
        *,
        client: Optional[str] = None,
    ) -> IssuedSession:
        """Create an account and return its first session."""

        normalized = normalize_email(email)
        login_key = login_key_for(normalized)

        existing = self._run(
            "credential lookup", lambda session: get_credential(session, login_key)
        )
        if existing is not None:
            logger.info("Registration rejected: %s already has a credential", login_key)
            raise EmailTaken(f"credential {login_key} exists")
        if self.policy.is_password_too_long(password):
            logger.info("Registration rejected for %s: password too long", login_key)
            raise PasswordTooLong()
        if self.policy.is_common_password(password):
            logger.info("Registration rejected for %s: common password", login_key)
            raise WeakPassword()
        if self.policy.is_disposable_email(normalized):
            logger.info("Registration rejected for %s: disposable domain", login_key)
            raise DisposableEmail()

        hashed = self.hasher.hash(password)
        try:
            user = self._run(
                "account create",
                lambda session: create_user_with_credential(session, normalized, hashed),
            )
        except EmailTaken:
            logger.info("Registration lost a race for %s", login_key)
            raise
        user_id = user.id

        issued = self._run(
            "session create", lambda session: self.sessions.create(session, user_id)
        )
        logger.info("Registered user %s", user_id)
        self._audit(
            "register",
            actor_id=user_id,
            summary=f"User {normalized} registered",
            data={"ip": client or "unknown"},
        )
        return issued

    def login(
        self,
        email: str,
        password: str,
        *,
        client: Optional[str] = None,
    ) -> IssuedSession:
        """Verify ``email``/``password`` and return a new session.

        Unknown emails and wrong passwords raise the same
        :class:`InvalidCredentials` after the same amount of hashing work.
        """

        normalized = normalize_email(email)
        login_key = login_key_for(normalized)
        limiter = self.rate_limiter if client else None

        if limiter is not None:
            state = limiter.status(client)
            if state.blocked:
                self._audit(
                    "login_rate_limited",
                    summary=f"Rate limit hit for {normalized}",
                    data={"email": normalized, "ip": client, "retry_after": state.retry_after},
                )
                raise TooManyAttempts(state.retry_after)

        credential = self._run(
            "credential lookup", lambda session: get_credential(session, login_key)
        )
        if credential is None or not credential.hashed_password:
            self.hasher.dummy_verify(password)
            verified = False
        else:
            verified = self.hasher.verify(credential.hashed_password, password)

        if not verified:
            reason = "unknown login" if credential is None else "password mismatch"
            failure = limiter.register_failure(client) if limiter is not None else None
            logger.info("Login failed for %s: %s", login_key, reason)
            self._audit(
                "login_failed",
                actor_id=credential.user_id if credential is not None else None,
                summary=f"Failed login for {normalized}",
                data={
                    "email": normalized,
                    "ip": client or "unknown",
                    "reason": reason,
                    "rate_limited": bool(failure and failure.blocked),
                },
            )
            if failure is not None and failure.blocked:
                raise TooManyAttempts(failure.retry_after)
            raise InvalidCredentials()

        if limiter is not None:
            limiter.register_success(client)
        user_id = credential.user_id

        issued = self._run(
            "session create", lambda session: self.sessions.create(session, user_id)
        )
        self._audit(
            "login_success",
            actor_id=user_id,
            summary=f"User {normalized} signed in",
            data={"ip": client or "unknown"},
        )
        return issued

    def logout(self, session_id: Optional[str], *, client: Optional[str] = None) -> None:
        """Invalidate ``session_id``. Never raises."""

        if not session_id:
            return

        def _end(session: Session) -> Optional[str]:
            with translate_store_errors("session lookup"):
                row = session.get(AuthSession, session_id)
                owner = row.user_id if row is not None else None
            self.sessions.invalidate(session, session_id)
            return owner

        try:
            actor_id = self._run("session invalidate", _end)
        except TransientStoreFailure:
            logger.exception("Could not invalidate session during logout")
            return
        if actor_id is not None:
            self._audit(
                "logout",
                actor_id=actor_id,
                summary="User signed out",
                data={"ip": client or "unknown"},
            )

    def resolve_session(self, session_id: Optional[str]) -> Optional[ValidatedSession]:
        """Return the validated session for ``session_id`` or ``None``."""

        if not session_id:
            return None
        try:
            return self._run(
                "session validate",
                lambda session: self.sessions.validate(session, session_id),
            )
        except TransientStoreFailure:
            logger.exception("Session validation unavailable; treating caller as anonymous")
            return None

    def resolve_caller(self, session_id: Optional[str]) -> Optional[CurrentUser]:
        """Return who is calling, or ``None`` for anonymous callers."""

        validated = self.resolve_session(session_id)
        return validated.user if validated is not None else None


def build_auth_service(settings, *, session_factory: Optional[SessionFactory] = None) -> AuthService:
    """Assemble an :class:`AuthService` from startup configuration."""

    return AuthService(
        session_factory=session_factory or database.session_factory,
        hasher=PasswordHasher.from_settings(settings),
        sessions=SessionStore(
            lifetime=timedelta(days=settings.SESSION_LIFETIME_DAYS),
            id_bytes=settings.SESSION_ID_BYTES,
        ),
        policy=RegistrationPolicy.from_settings(settings),
        rate_limiter=LoginRateLimiter.from_settings(settings),
        retry_backoff=settings.STORE_RETRY_BACKOFF_SECONDS,
    )


def init_auth_storage(auth: Optional[AuthService] = None) -> None:
    """Ensure tables exist and purge sessions that expired while offline."""

    SQLModel.metadata.create_all(database.engine)
    if auth is None:
        return
    with database.SessionLocal() as session:
        auth.sessions.delete_expired(session)


def record_audit_event(
    session: Session,
    *,
    actor_id: Optional[str],
    action: str,
    summary: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
    commit: bool = False,
) -> AuditLog:
    """Persist an :class:`AuditLog` entry."""

    entry = AuditLog(
        actor_id=actor_id,
        action=action,
        summary=summary,
        data=data or {},
    )
    session.add(entry)
    session.flush()
    if commit:
        session.commit()
        session.refresh(entry)
    return entry


__all__ = [
    "AuthService",
    "build_auth_service",
    "init_auth_storage",
    "record_audit_event",
]
