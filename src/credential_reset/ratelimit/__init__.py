"""Issuance and verification rate limiting."""

from __future__ import annotations

from .memory import InMemoryRateLimiter
from .policy import RateLimitPolicy
from .redis import RedisRateLimiter

__all__: list[str] = [
    "InMemoryRateLimiter",
    "RateLimitPolicy",
    "RedisRateLimiter",
]
