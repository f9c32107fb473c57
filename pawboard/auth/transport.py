"""Session cookie encoding; the only module aware of the wire format."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from starlette.requests import HTTPConnection
from starlette.responses import Response

from ..config import settings
from .sessions import IssuedSession

SESSION_COOKIE_PATH = "/"
SESSION_COOKIE_SAMESITE = "lax"


def read_session_id(request: HTTPConnection) -> Optional[str]:
    """Return the raw session id from ``request`` or ``None`` when anonymous."""

    value = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not value:
        return None
    return value.strip() or None


def set_session_cookie(
    response: Response,
    issued: IssuedSession,
    *,
    request: Optional[HTTPConnection] = None,
) -> None:
    """Attach ``issued`` to ``response`` as a secure cookie."""

    remaining = issued.max_age
    if remaining is None:
        remaining = int((issued.expires_at - datetime.now(timezone.utc)).total_seconds())
    max_age = max(remaining, 0)
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        issued.id,
        max_age=max_age,
        expires=max_age,
        path=SESSION_COOKIE_PATH,
        httponly=True,
        secure=_session_cookie_secure(request),
        samesite=SESSION_COOKIE_SAMESITE,
    )


def clear_session_cookie(
    response: Response,
    *,
    request: Optional[HTTPConnection] = None,
) -> None:
    """Overwrite the session cookie on ``response`` with an expired blank."""

    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        "",
        max_age=0,
        expires=0,
        path=SESSION_COOKIE_PATH,
        httponly=True,
        secure=_session_cookie_secure(request),
        samesite=SESSION_COOKIE_SAMESITE,
    )


def _session_cookie_secure(request: Optional[HTTPConnection]) -> bool:
    if request is not None:
        scheme = request.url.scheme
    else:
        scheme = "https" if settings.PUBLIC_BASE.startswith("https://") else "http"
    return settings.session_cookie_secure(scheme)


__all__ = [
    "SESSION_COOKIE_PATH",
    "SESSION_COOKIE_SAMESITE",
    "clear_session_cookie",
    "read_session_id",
    "set_session_cookie",
]
