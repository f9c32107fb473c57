"""Password hashing helpers."""
from __future__ import annotations

import secrets

from argon2.exceptions import HashingError as Argon2HashingError
from passlib.context import CryptContext

from .errors import HashingError

EMPTY_PASSWORD_STANDIN = "-"


class PasswordHasher:
    """Argon2id hashing with one-way, constant-time verification."""

    def __init__(
        self,
        *,
        time_cost: int = 3,
        memory_cost: int = 65536,
        parallelism: int = 4,
    ) -> None:
        self._context = CryptContext(
            schemes=["argon2"],
            deprecated="auto",
            argon2__type="ID",
            argon2__time_cost=time_cost,
            argon2__memory_cost=memory_cost,
            argon2__parallelism=parallelism,
        )
        # Verified against when the login identifier is unknown so both
        # branches pay for one Argon2 evaluation.
        self._decoy_hash = self.hash(secrets.token_urlsafe(32))

    @classmethod
    def from_settings(cls, settings) -> "PasswordHasher":
        return cls(
            time_cost=settings.ARGON2_TIME_COST,
            memory_cost=settings.ARGON2_MEMORY_COST,
            parallelism=settings.ARGON2_PARALLELISM,
        )

    def hash(self, password: str) -> str:
        """Hash ``password`` with a fresh random salt."""

        if not isinstance(password, str):
            raise TypeError("password must be a string")
        try:
            return self._context.hash(password)
        except (MemoryError, RuntimeError, Argon2HashingError) as exc:
            # RuntimeError covers passlib's MissingBackendError.
            raise HashingError(f"argon2 hashing failed: {exc}") from exc

    def verify(self, hashed_password: str | None, password: str) -> bool:
        """Return ``True`` if ``password`` matches ``hashed_password``.

        Malformed or unrecognised hashes read as a failed verification. An
        empty password still costs one Argon2 evaluation against a real hash.
        """

        if not hashed_password:
            return False
        try:
            matched = self._context.verify(
                password or EMPTY_PASSWORD_STANDIN, hashed_password
            )
        except (ValueError, TypeError):
            return False
        return bool(matched and password)

    def dummy_verify(self, password: str) -> bool:
        """Spend one verification on the decoy hash; always ``False``."""

        self.verify(self._decoy_hash, password)
        return False


__all__ = ["PasswordHasher"]
