"""Ownership checks for mutating operations."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import Forbidden, Unauthenticated
from .models import CurrentUser


class DenyReason(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenyReason) -> "Decision":
        return cls(allowed=False, reason=reason)

    def __bool__(self) -> bool:
        return self.allowed


ALLOWED = Decision.allow()


def authorize(caller: Optional[CurrentUser], owner_id: Optional[str]) -> Decision:
    """Decide whether ``caller`` may mutate a resource owned by ``owner_id``.

    A missing owner (for instance a resource that does not exist) is treated
    the same as somebody else's resource.
    """

    if caller is None:
        return Decision.deny(DenyReason.UNAUTHENTICATED)
    if owner_id is None or caller.id != owner_id:
        return Decision.deny(DenyReason.FORBIDDEN)
    return ALLOWED


def ensure_authorized(caller: Optional[CurrentUser], owner_id: Optional[str]) -> CurrentUser:
    """Return ``caller`` when allowed, otherwise raise the matching denial."""

    decision = authorize(caller, owner_id)
    if decision.reason is DenyReason.UNAUTHENTICATED:
        raise Unauthenticated()
    assert caller is not None
    if not decision.allowed:
        raise Forbidden(f"caller {caller.id} does not own the resource")
    return caller


def ensure_authenticated(caller: Optional[CurrentUser]) -> CurrentUser:
    """Return ``caller`` or raise :class:`Unauthenticated` for anonymous calls."""

    if caller is None:
        raise Unauthenticated()
    return caller


__all__ = [
    "ALLOWED",
    "Decision",
    "DenyReason",
    "authorize",
    "ensure_authenticated",
    "ensure_authorized",
]
