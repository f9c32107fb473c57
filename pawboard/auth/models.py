"""SQLModel tables for accounts, credentials and login sessions."""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.sql import func
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def _new_user_id() -> str:
    return uuid.uuid4().hex


def _timestamp_column(*, onupdate: bool = False) -> Column:
    return Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now() if onupdate else None,
    )


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(
        default_factory=_new_user_id,
        sa_column=Column(String(32), primary_key=True),
    )
    email: str = Field(
        sa_column=Column(String(254), unique=True, index=True, nullable=False)
    )
    created_at: datetime = Field(default_factory=_utcnow, sa_column=_timestamp_column())


class Credential(SQLModel, table=True):
    """A login method owned by a user, keyed by ``method:identifier``."""

    __tablename__ = "credentials"

    login_key: str = Field(sa_column=Column(String(280), primary_key=True))
    user_id: str = Field(foreign_key="users.id", index=True, nullable=False)
    hashed_password: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), nullable=True),
    )
    primary: bool = Field(default=False, nullable=False)


class AuthSession(SQLModel, table=True):
    __tablename__ = "sessions"

    id: str = Field(sa_column=Column(String(64), primary_key=True))
    user_id: str = Field(foreign_key="users.id", index=True, nullable=False)
    created_at: datetime = Field(default_factory=_utcnow, sa_column=_timestamp_column())
    expires_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    actor_id: Optional[str] = Field(default=None, foreign_key="users.id")
    action: str = Field(sa_column=Column(String(120), nullable=False))
    summary: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), nullable=True),
    )
    data: Dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False, default=dict),
    )
    created_at: datetime = Field(default_factory=_utcnow, sa_column=_timestamp_column())


@dataclass(frozen=True)
class CurrentUser:
    """The caller identity handed to pages and CRUD code."""

    id: str
    email: str

    @classmethod
    def from_user(cls, user: User) -> "CurrentUser":
        return cls(id=user.id, email=user.email)


__all__ = [
    "AuditLog",
    "AuthSession",
    "Credential",
    "CurrentUser",
    "User",
]
