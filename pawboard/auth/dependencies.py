"""FastAPI dependencies for authentication."""
from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from .models import CurrentUser
from .service import AuthService
from .transport import read_session_id


def get_auth_service(request: Request) -> AuthService:
    """Return the service built at startup."""

    return request.app.state.auth


def get_caller(
    request: Request,
    auth: AuthService = Depends(get_auth_service),
) -> Optional[CurrentUser]:
    """Return the calling user, or ``None`` for anonymous requests."""

    validated = auth.resolve_session(read_session_id(request))
    if validated is None:
        request.state.user = None
        return None

    request.state.user = validated.user
    if validated.session.fresh:
        # Picked up by the middleware in ``main`` to re-issue the cookie.
        request.state.renewed_session = validated.session
    return validated.user


def require_caller(caller: Optional[CurrentUser] = Depends(get_caller)) -> CurrentUser:
    """Return the authenticated caller or raise ``401``."""

    if caller is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Authentication required")
    return caller


__all__ = ["get_auth_service", "get_caller", "require_caller"]
