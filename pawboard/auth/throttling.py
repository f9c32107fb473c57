"""Throttling for repeated failed logins.

State is process-local: each worker keeps its own counters. The durable
session store is shared, the failure counters are not.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Callable, Deque, Dict, Optional


_TimeProvider = Callable[[], datetime]


def _default_time_provider() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RateLimitState:
    """Whether an identifier is currently blocked and for how long."""

    blocked: bool
    retry_after: int = 0


@dataclass
class _Bucket:
    failures: Deque[datetime] = field(default_factory=deque)
    blocked_until: Optional[datetime] = None


class LoginRateLimiter:
    """Block an identifier for a cooldown after too many failures in a window."""

    def __init__(
        self,
        *,
        max_attempts: int,
        window_seconds: int,
        block_seconds: int,
        time_provider: Optional[_TimeProvider] = None,
        sweep_interval: int = 256,
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be greater than zero")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be greater than zero")
        if block_seconds <= 0:
            raise ValueError("block_seconds must be greater than zero")
        if sweep_interval <= 0:
            raise ValueError("sweep_interval must be greater than zero")

        self._max_attempts = max_attempts
        self._window = timedelta(seconds=window_seconds)
        self._block = timedelta(seconds=block_seconds)
        self._time_provider: _TimeProvider = time_provider or _default_time_provider
        self._buckets: Dict[str, _Bucket] = {}
        self._sweep_interval = sweep_interval
        self._failures_since_sweep = 0
        self._lock = Lock()

    @classmethod
    def from_settings(cls, settings) -> Optional["LoginRateLimiter"]:
        """Build a limiter from settings, or ``None`` when throttling is off."""

        if settings.LOGIN_ATTEMPT_LIMIT <= 0:
            return None
        return cls(
            max_attempts=settings.LOGIN_ATTEMPT_LIMIT,
            window_seconds=settings.LOGIN_ATTEMPT_WINDOW,
            block_seconds=settings.LOGIN_BACKOFF_SECONDS,
        )

    def _blocked_state(self, until: datetime, now: datetime) -> RateLimitState:
        retry_after = int((until - now).total_seconds())
        return RateLimitState(blocked=True, retry_after=max(retry_after, 1))

    def _refresh(self, identifier: str, now: datetime) -> Optional[_Bucket]:
        bucket = self._buckets.get(identifier)
        if bucket is None:
            return None
        if bucket.blocked_until and bucket.blocked_until <= now:
            bucket.blocked_until = None
        threshold = now - self._window
        while bucket.failures and bucket.failures[0] < threshold:
            bucket.failures.popleft()
        if not bucket.failures and bucket.blocked_until is None:
            del self._buckets[identifier]
            return None
        return bucket

    def _sweep(self, now: datetime) -> None:
        """Drop every bucket whose failures and block have lapsed."""

        for identifier in list(self._buckets):
            self._refresh(identifier, now)
        self._failures_since_sweep = 0

    def status(self, identifier: str) -> RateLimitState:
        """Return the current rate-limit status for ``identifier``."""

        with self._lock:
            now = self._time_provider()
            bucket = self._refresh(identifier, now)
            if bucket and bucket.blocked_until:
                return self._blocked_state(bucket.blocked_until, now)
            return RateLimitState(blocked=False)

    def register_failure(self, identifier: str) -> RateLimitState:
        """Record a failed attempt and return the updated status."""

        with self._lock:
            now = self._time_provider()
            self._failures_since_sweep += 1
            if self._failures_since_sweep >= self._sweep_interval:
                self._sweep(now)
            bucket = self._refresh(identifier, now)
            if bucket is None:
                bucket = self._buckets.setdefault(identifier, _Bucket())
            if bucket.blocked_until:
                return self._blocked_state(bucket.blocked_until, now)

            bucket.failures.append(now)
            if len(bucket.failures) < self._max_attempts:
                return RateLimitState(blocked=False)

            bucket.failures.clear()
            bucket.blocked_until = now + self._block
            return self._blocked_state(bucket.blocked_until, now)

    def register_success(self, identifier: str) -> None:
        """Forget failures for ``identifier`` after a successful login."""

        with self._lock:
            self._buckets.pop(identifier, None)


__all__ = ["LoginRateLimiter", "RateLimitState"]
