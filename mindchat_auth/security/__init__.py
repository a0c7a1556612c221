"""Request hardening: rate limits, request shape checks, response headers."""

from .headers import security_headers
from .ratelimit import (
    RATE_LIMITS,
    InMemoryRateLimitStore,
    RateLimitConfig,
    RateLimiter,
    RateLimitResult,
    RateLimitType,
)

__all__ = [
    "security_headers",
    "RATE_LIMITS",
    "InMemoryRateLimitStore",
    "RateLimitConfig",
    "RateLimiter",
    "RateLimitResult",
    "RateLimitType",
]
