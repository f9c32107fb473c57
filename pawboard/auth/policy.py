"""Registration policy backed by configurable denylists."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Iterable, Optional

logger = logging.getLogger(__name__)


def load_denylist(path: Optional[Path]) -> FrozenSet[str]:
    """Read a newline-delimited list, skipping blanks and ``#`` comments."""

    if path is None:
        return frozenset()
    if not path.exists():
        logger.warning("Denylist file %s not found; using an empty list", path)
        return frozenset()
    entries = set()
    for line in path.read_text(encoding="utf-8").splitlines():
        cleaned = line.split("#", 1)[0].strip().lower()
        if cleaned:
            entries.add(cleaned)
    return frozenset(entries)


@dataclass(frozen=True)
class RegistrationPolicy:
    common_passwords: FrozenSet[str] = field(default_factory=frozenset)
    disposable_domains: FrozenSet[str] = field(default_factory=frozenset)
    max_password_bytes: int = 72

    @classmethod
    def from_lists(
        cls,
        common_passwords: Iterable[str] = (),
        disposable_domains: Iterable[str] = (),
        max_password_bytes: int = 72,
    ) -> "RegistrationPolicy":
        return cls(
            common_passwords=frozenset(p.strip().lower() for p in common_passwords if p.strip()),
            disposable_domains=frozenset(
                d.strip().lower().lstrip("@") for d in disposable_domains if d.strip()
            ),
            max_password_bytes=max_password_bytes,
        )

    @classmethod
    def from_settings(cls, settings) -> "RegistrationPolicy":
        return cls(
            common_passwords=load_denylist(settings.COMMON_PASSWORDS_FILE),
            disposable_domains=load_denylist(settings.DISPOSABLE_DOMAINS_FILE),
            max_password_bytes=settings.PASSWORD_MAX_BYTES,
        )

    def is_password_too_long(self, password: str) -> bool:
        """Length is counted in UTF-8 bytes."""

        return len((password or "").encode("utf-8")) > self.max_password_bytes

    def is_common_password(self, password: str) -> bool:
        return (password or "").lower() in self.common_passwords

    def is_disposable_email(self, email: str) -> bool:
        """Return ``True`` when the domain, or a parent of it, is denylisted."""

        _, _, domain = (email or "").strip().lower().rpartition("@")
        if not domain:
            return False
        labels = domain.split(".")
        return any(
            ".".join(labels[index:]) in self.disposable_domains
            for index in range(len(labels))
        )


__all__ = ["RegistrationPolicy", "load_denylist"]
