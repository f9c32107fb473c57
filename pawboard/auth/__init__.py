"""Accounts, sessions and ownership checks.

The rest of the application goes through ``AuthService`` (``register``,
``login``, ``logout``, ``resolve_caller``) and ``authorize``; credential and
session rows are not touched outside this package.
"""

from .errors import (
    AccessDenied,
    AuthError,
    DisposableEmail,
    EmailTaken,
    Forbidden,
    HashingError,
    InvalidCredentials,
    PasswordTooLong,
    RegistrationError,
    TooManyAttempts,
    TransientStoreFailure,
    Unauthenticated,
    WeakPassword,
)
from .guard import Decision, DenyReason, authorize, ensure_authenticated, ensure_authorized
from .models import CurrentUser
from .service import AuthService, build_auth_service, init_auth_storage
from .transport import clear_session_cookie, read_session_id, set_session_cookie

__all__ = [
    "AccessDenied",
    "AuthError",
    "AuthService",
    "CurrentUser",
    "Decision",
    "DenyReason",
    "DisposableEmail",
    "EmailTaken",
    "Forbidden",
    "HashingError",
    "InvalidCredentials",
    "PasswordTooLong",
    "RegistrationError",
    "TooManyAttempts",
    "TransientStoreFailure",
    "Unauthenticated",
    "WeakPassword",
    "authorize",
    "build_auth_service",
    "clear_session_cookie",
    "ensure_authenticated",
    "ensure_authorized",
    "init_auth_storage",
    "read_session_id",
    "set_session_cookie",
]
