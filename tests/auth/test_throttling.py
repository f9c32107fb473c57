from __future__ import annotations

from types import SimpleNamespace

import pytest

from pawboard.auth.throttling import LoginRateLimiter


def _limiter(clock, **overrides) -> LoginRateLimiter:
    options = dict(max_attempts=3, window_seconds=60, block_seconds=120)
    options.update(overrides)
    return LoginRateLimiter(time_provider=clock, **options)


def test_blocks_after_limit_and_recovers(clock) -> None:
    limiter = _limiter(clock)

    assert not limiter.register_failure("10.0.0.1").blocked
    assert not limiter.register_failure("10.0.0.1").blocked
    blocked = limiter.register_failure("10.0.0.1")
    assert blocked.blocked
    assert blocked.retry_after == 120

    clock.advance(seconds=100)
    state = limiter.status("10.0.0.1")
    assert state.blocked
    assert state.retry_after == 20

    clock.advance(seconds=21)
    assert not limiter.status("10.0.0.1").blocked


def test_failures_outside_window_are_forgotten(clock) -> None:
    limiter = _limiter(clock)

    limiter.register_failure("10.0.0.1")
    limiter.register_failure("10.0.0.1")
    clock.advance(seconds=61)

    assert not limiter.register_failure("10.0.0.1").blocked
    assert not limiter.register_failure("10.0.0.1").blocked
    assert limiter.register_failure("10.0.0.1").blocked


def test_success_resets_failures(clock) -> None:
    limiter = _limiter(clock)

    limiter.register_failure("10.0.0.1")
    limiter.register_failure("10.0.0.1")
    limiter.register_success("10.0.0.1")

    assert not limiter.register_failure("10.0.0.1").blocked
    assert not limiter.status("10.0.0.1").blocked


def test_identifiers_are_independent(clock) -> None:
    limiter = _limiter(clock, max_attempts=1)

    assert limiter.register_failure("10.0.0.1").blocked
    assert not limiter.status("10.0.0.2").blocked


def test_lapsed_one_off_identifiers_are_swept(clock) -> None:
    limiter = _limiter(clock, sweep_interval=5)

    for index in range(20):
        limiter.register_failure(f"192.0.2.{index}")
    assert len(limiter._buckets) == 20

    clock.advance(seconds=61)
    for _ in range(2):
        limiter.register_failure("10.0.0.99")
    # Every fifth recorded failure sweeps lapsed buckets.
    for _ in range(3):
        limiter.register_failure("10.0.0.98")

    assert set(limiter._buckets) == {"10.0.0.98", "10.0.0.99"}


def test_sweep_keeps_blocked_identifiers(clock) -> None:
    limiter = _limiter(clock, max_attempts=1, sweep_interval=2)

    assert limiter.register_failure("10.0.0.1").blocked
    clock.advance(seconds=61)
    limiter.register_failure("10.0.0.2")

    assert limiter.status("10.0.0.1").blocked


def test_from_settings_can_disable_throttling() -> None:
    disabled = SimpleNamespace(
        LOGIN_ATTEMPT_LIMIT=0, LOGIN_ATTEMPT_WINDOW=60, LOGIN_BACKOFF_SECONDS=60
    )
    enabled = SimpleNamespace(
        LOGIN_ATTEMPT_LIMIT=5, LOGIN_ATTEMPT_WINDOW=60, LOGIN_BACKOFF_SECONDS=60
    )

    assert LoginRateLimiter.from_settings(disabled) is None
    assert isinstance(LoginRateLimiter.from_settings(enabled), LoginRateLimiter)


@pytest.mark.parametrize(
    "options",
    [
        dict(max_attempts=0, window_seconds=60, block_seconds=60),
        dict(max_attempts=3, window_seconds=0, block_seconds=60),
        dict(max_attempts=3, window_seconds=60, block_seconds=0),
        dict(max_attempts=3, window_seconds=60, block_seconds=60, sweep_interval=0),
    ],
)
def test_rejects_invalid_configuration(options) -> None:
    with pytest.raises(ValueError):
        LoginRateLimiter(**options)
