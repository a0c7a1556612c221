from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, Optional, Protocol, Tuple

from mindchat_auth.logs import get_logger
from mindchat_auth.util.time import epoch_to_iso


log = get_logger(__name__)

HOUR_SECONDS = 60 * 60


class RateLimitType(str, Enum):
    REGISTRATION = "REGISTRATION"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    PASSWORD_RESET = "PASSWORD_RESET"


@dataclass(frozen=True)
class RateLimitConfig:
    max_attempts: int
    window_seconds: float


RATE_LIMITS: Dict[RateLimitType, RateLimitConfig] = {
    RateLimitType.REGISTRATION: RateLimitConfig(max_attempts=5, window_seconds=HOUR_SECONDS),
    RateLimitType.LOGIN: RateLimitConfig(max_attempts=10, window_seconds=HOUR_SECONDS),
    RateLimitType.LOGOUT: RateLimitConfig(max_attempts=10, window_seconds=HOUR_SECONDS),
    RateLimitType.PASSWORD_RESET: RateLimitConfig(max_attempts=3, window_seconds=HOUR_SECONDS),
}


@dataclass
class RateLimitEntry:
    count: int
    reset_time: float  # epoch seconds


@dataclass(frozen=True)
class RateLimitResult:
    is_limited: bool
    remaining_attempts: int
    reset_time: float
    limit: int


class RateLimitStore(Protocol):
    """Key/value storage for rate limit windows.

    The default is a process-local dict. A multi-instance deployment can plug
    in a shared store (e.g. Redis with TTL) without touching RateLimiter.
    """

    def get(self, key: str) -> Optional[RateLimitEntry]: ...

    def set(self, key: str, entry: RateLimitEntry) -> None: ...

    def delete(self, key: str) -> None: ...

    def items(self) -> Iterable[Tuple[str, RateLimitEntry]]: ...


class InMemoryRateLimitStore:
    def __init__(self) -> None:
        self._data: Dict[str, RateLimitEntry] = {}

    def get(self, key: str) -> Optional[RateLimitEntry]:
        return self._data.get(key)

    def set(self, key: str, entry: RateLimitEntry) -> None:
        self._data[key] = entry

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def items(self) -> Iterable[Tuple[str, RateLimitEntry]]:
        # Snapshot so callers can delete while iterating.
        return list(self._data.items())

    def __len__(self) -> int:
        return len(self._data)


def rate_limit_key(kind: RateLimitType, identifier: str) -> str:
    return f"{RateLimitType(kind).value}:{identifier}"


class RateLimiter:
    """Fixed-window counter keyed by (operation type, client identifier).

    Handlers run on a thread pool, so each read-modify-write of an entry
    happens under one lock.
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        *,
        limits: Optional[Dict[RateLimitType, RateLimitConfig]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store: RateLimitStore = store if store is not None else InMemoryRateLimitStore()
        self.limits = dict(limits or RATE_LIMITS)
        self._clock = clock
        self._lock = threading.Lock()

    def limit_for(self, kind: RateLimitType) -> RateLimitConfig:
        return self.limits[RateLimitType(kind)]

    def check(self, kind: RateLimitType, identifier: str) -> RateLimitResult:
        limit = self.limit_for(kind)
        key = rate_limit_key(kind, identifier)

        with self._lock:
            now = self._clock()
            entry = self.store.get(key)

            if entry is None or now > entry.reset_time:
                entry = RateLimitEntry(count=1, reset_time=now + limit.window_seconds)
                self.store.set(key, entry)
                return RateLimitResult(
                    is_limited=False,
                    remaining_attempts=limit.max_attempts - 1,
                    reset_time=entry.reset_time,
                    limit=limit.max_attempts,
                )

            entry = RateLimitEntry(count=entry.count + 1, reset_time=entry.reset_time)
            self.store.set(key, entry)

        return RateLimitResult(
            is_limited=entry.count > limit.max_attempts,
            remaining_attempts=max(0, limit.max_attempts - entry.count),
            reset_time=entry.reset_time,
            limit=limit.max_attempts,
        )

    def sweep(self) -> int:
        """Delete expired windows. Returns the number of entries removed."""
        removed = 0
        with self._lock:
            now = self._clock()
            for key, entry in self.store.items():
                if now > entry.reset_time:
                    self.store.delete(key)
                    removed += 1
        return removed

    def headers(self, result: RateLimitResult) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining_attempts),
            "X-RateLimit-Reset": epoch_to_iso(result.reset_time),
        }

    def retry_after_seconds(self, result: RateLimitResult) -> int:
        return max(0, math.ceil(result.reset_time - self._clock()))


class RateLimitSweeper:
    """Background thread that calls `RateLimiter.sweep()` on an interval."""

    def __init__(self, limiter: RateLimiter, *, interval_seconds: float = 15 * 60) -> None:
        self.limiter = limiter
        self.interval_seconds = max(1.0, float(interval_seconds))
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="rate-limit-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                removed = self.limiter.sweep()
                if removed:
                    log.debug("rate limit sweep removed %d expired entries", removed)
            except Exception:
                log.exception("rate limit sweep failed")
