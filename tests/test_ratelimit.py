# tests/test_ratelimit.py
from __future__ import annotations

import pytest

from mindchat_auth.security.ratelimit import (
    RATE_LIMITS,
    InMemoryRateLimitStore,
    RateLimitConfig,
    RateLimiter,
    RateLimitType,
    rate_limit_key,
)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_default_limits() -> None:
    assert RATE_LIMITS[RateLimitType.REGISTRATION] == RateLimitConfig(5, 3600)
    assert RATE_LIMITS[RateLimitType.LOGIN] == RateLimitConfig(10, 3600)
    assert RATE_LIMITS[RateLimitType.LOGOUT] == RateLimitConfig(10, 3600)
    assert RATE_LIMITS[RateLimitType.PASSWORD_RESET] == RateLimitConfig(3, 3600)


def test_registration_allows_five_then_blocks() -> None:
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)

    results = [limiter.check(RateLimitType.REGISTRATION, "1.2.3.4") for _ in range(6)]

    assert [r.is_limited for r in results] == [False] * 5 + [True]
    assert [r.remaining_attempts for r in results] == [4, 3, 2, 1, 0, 0]
    assert all(r.limit == 5 for r in results)
    assert results[0].reset_time == clock.now + 3600


@pytest.mark.parametrize("kind", list(RateLimitType))
def test_every_type_allows_max_attempts_then_blocks(kind: RateLimitType) -> None:
    limiter = RateLimiter(clock=FakeClock())
    max_attempts = RATE_LIMITS[kind].max_attempts

    results = [limiter.check(kind, "1.2.3.4") for _ in range(max_attempts + 2)]

    assert [r.is_limited for r in results] == [False] * max_attempts + [True, True]
    assert [r.remaining_attempts for r in results] == (
        list(range(max_attempts - 1, -1, -1)) + [0, 0]
    )
    assert all(r.limit == max_attempts for r in results)


def test_window_is_fixed_not_sliding() -> None:
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)
    first = limiter.check(RateLimitType.LOGIN, "ip")
    clock.now += 1800
    second = limiter.check(RateLimitType.LOGIN, "ip")
    assert second.reset_time == first.reset_time


def test_window_resets_after_expiry() -> None:
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)
    for _ in range(4):
        limiter.check(RateLimitType.PASSWORD_RESET, "ip")
    assert limiter.check(RateLimitType.PASSWORD_RESET, "ip").is_limited

    # still inside the window at exactly reset_time
    clock.now += 3600
    assert limiter.check(RateLimitType.PASSWORD_RESET, "ip").is_limited

    clock.now += 1
    fresh = limiter.check(RateLimitType.PASSWORD_RESET, "ip")
    assert not fresh.is_limited
    assert fresh.remaining_attempts == 2


def test_keys_are_scoped_by_operation_and_identifier() -> None:
    limiter = RateLimiter()
    for _ in range(5):
        limiter.check(RateLimitType.REGISTRATION, "a")
    assert limiter.check(RateLimitType.REGISTRATION, "a").is_limited
    assert not limiter.check(RateLimitType.REGISTRATION, "b").is_limited
    assert not limiter.check(RateLimitType.LOGIN, "a").is_limited
    assert rate_limit_key(RateLimitType.LOGIN, "a") == "LOGIN:a"


def test_sweep_removes_only_expired_entries() -> None:
    clock = FakeClock()
    store = InMemoryRateLimitStore()
    limiter = RateLimiter(store, clock=clock)
    limiter.check(RateLimitType.LOGIN, "old")
    clock.now += 3000
    limiter.check(RateLimitType.LOGIN, "new")
    clock.now += 700

    assert limiter.sweep() == 1
    assert len(store) == 1
    assert store.get("LOGIN:new") is not None


def test_rate_limit_headers() -> None:
    clock = FakeClock(0.0)
    limiter = RateLimiter(clock=clock)
    result = limiter.check(RateLimitType.LOGIN, "ip")
    headers = limiter.headers(result)
    assert headers == {
        "X-RateLimit-Limit": "10",
        "X-RateLimit-Remaining": "9",
        "X-RateLimit-Reset": "1970-01-01T01:00:00.000Z",
    }
    assert limiter.retry_after_seconds(result) == 3600
