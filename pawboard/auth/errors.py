"""Error types raised by the authentication subsystem.

Every error carries a ``public_message`` that is safe to show to the caller.
Internal detail (which constraint fired, which check failed) is logged
server-side and never placed in the public message.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError


class AuthError(Exception):
    """Base class for authentication and authorization failures."""

    public_message = "Authentication failed"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.public_message)
        self.detail = detail


class RegistrationError(AuthError):
    public_message = "Registration failed"


class EmailTaken(RegistrationError):
    public_message = "Email already registered"


class WeakPassword(RegistrationError):
    public_message = "The chosen password is too common"


class DisposableEmail(RegistrationError):
    public_message = "Email domain not accepted"


class PasswordTooLong(RegistrationError):
    public_message = "Password too long"


class InvalidCredentials(AuthError):
    public_message = "Invalid credentials"


class TooManyAttempts(AuthError):
    public_message = "Too many login attempts. Try again shortly."

    def __init__(self, retry_after: int, detail: str | None = None) -> None:
        super().__init__(detail)
        self.retry_after = retry_after


class AccessDenied(AuthError):
    public_message = "Not permitted"


class Unauthenticated(AccessDenied):
    public_message = "Authentication required"


class Forbidden(AccessDenied):
    public_message = "Not permitted"


class TransientStoreFailure(AuthError):
    """The durable store did not answer in time; safe to retry."""

    public_message = "Service temporarily unavailable, try again shortly"


class HashingError(AuthError):
    """Password hashing is unavailable; the deployment is misconfigured."""

    public_message = "Service unavailable"


@contextmanager
def translate_store_errors(operation: str) -> Iterator[None]:
    """Re-raise driver level availability errors as ``TransientStoreFailure``."""

    try:
        yield
    except (OperationalError, PoolTimeoutError) as exc:
        raise TransientStoreFailure(f"{operation}: {exc}") from exc


__all__ = [
    "AccessDenied",
    "AuthError",
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
    "translate_store_errors",
]
