"""Credential lookups and atomic account creation."""
from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from .errors import EmailTaken, translate_store_errors
from .models import Credential, User

EMAIL_LOGIN_METHOD = "email"


def normalize_email(email: str) -> str:
    """Return ``email`` trimmed and lowercased."""

    return (email or "").strip().lower()


def login_key_for(email: str, method: str = EMAIL_LOGIN_METHOD) -> str:
    return f"{method}:{normalize_email(email)}"


def get_credential(session: Session, login_key: str) -> Optional[Credential]:
    with translate_store_errors("credential lookup"):
        return session.get(Credential, login_key)


def create_user_with_credential(
    session: Session,
    email: str,
    hashed_password: str,
) -> User:
    """Insert a user and its primary password credential in one transaction.

    A duplicate email or login key rolls back both rows and raises
    :class:`EmailTaken`.
    """

    normalized = normalize_email(email)
    if not normalized:
        raise ValueError("email cannot be empty")

    user = User(email=normalized)
    with translate_store_errors("account create"):
        try:
            session.add(user)
            session.flush()
            session.add(
                Credential(
                    login_key=login_key_for(normalized),
                    user_id=user.id,
                    hashed_password=hashed_password,
                    primary=True,
                )
            )
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise EmailTaken(f"unique constraint rejected {normalized}") from exc
        except Exception:
            session.rollback()
            raise
        session.refresh(user)
    return user


__all__ = [
    "EMAIL_LOGIN_METHOD",
    "create_user_with_credential",
    "get_credential",
    "login_key_for",
    "normalize_email",
]
