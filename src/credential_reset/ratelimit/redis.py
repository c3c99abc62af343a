"""Redis-backed rate limiter.

Issuance uses a sorted-set sliding window evaluated in one Lua script so
concurrent requests for the same subject cannot both squeeze under the
limit. Verification failures are a plain ``INCR`` counter with expiry.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from redis.exceptions import RedisError

from ..exceptions import StoreUnavailableError
from ..ports import IRateLimiter
from .policy import RateLimitPolicy

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# KEYS[1] = window key
# ARGV[1] = now (ms), ARGV[2] = window (ms), ARGV[3] = limit,
# ARGV[4] = member, ARGV[5] = cooldown (ms)
_SLIDING_WINDOW_SCRIPT = """
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
redis.call('ZREMRANGEBYSCORE', KEYS[1], '-inf', now - window)
if redis.call('ZCARD', KEYS[1]) >= tonumber(ARGV[3]) then
    return 0
end
local cooldown = tonumber(ARGV[5])
if cooldown > 0 then
    local last = redis.call('ZREVRANGE', KEYS[1], 0, 0, 'WITHSCORES')
    if last[2] and (now - tonumber(last[2])) < cooldown then
        return 0
    end
end
redis.call('ZADD', KEYS[1], now, ARGV[4])
redis.call('PEXPIRE', KEYS[1], window)
return 1
"""


class RedisRateLimiter(IRateLimiter):
    """Rate limiter shared by every engine instance pointed at one Redis."""

    def __init__(
        self,
        redis_client: Redis,  # type: ignore[type-arg]
        policy: RateLimitPolicy,
        *,
        namespace: str = "credential_reset",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._redis = redis_client
        self.policy = policy
        self._namespace = namespace
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _issue_key(self, subject_id: str) -> str:
        return f"{self._namespace}:ratelimit:issue:{subject_id}"

    def _failure_key(self, session_id: str) -> str:
        return f"{self._namespace}:ratelimit:verify:{session_id}"

    async def allow_issue(self, subject_id: str) -> bool:
        now_ms = int(self._clock().timestamp() * 1000)
        try:
            allowed = await self._redis.eval(
                _SLIDING_WINDOW_SCRIPT,
                1,
                self._issue_key(subject_id),
                str(now_ms),
                str(self.policy.issue_window_seconds * 1000),
                str(self.policy.issue_limit),
                f"{now_ms}:{secrets.token_hex(4)}",
                str(self.policy.issue_cooldown_seconds * 1000),
            )
        except RedisError as e:
            logger.warning("Redis rate limit check failed: %s", e)
            raise StoreUnavailableError(str(e)) from e
        if not allowed:
            logger.info("Issuance denied for subject")
        return bool(allowed)

    async def allow_verify(self, session_id: str) -> bool:
        try:
            raw = await self._redis.get(self._failure_key(session_id))
        except RedisError as e:
            logger.warning("Redis failure counter read failed: %s", e)
            raise StoreUnavailableError(str(e)) from e
        failures = int(raw) if raw is not None else 0
        return failures < self.policy.max_verify_failures

    async def record_failure(self, session_id: str) -> None:
        key = self._failure_key(session_id)
        try:
            count = await self._redis.incr(key)
            if count == 1:
                await self._redis.expire(key, self.policy.failure_ttl_seconds)
        except RedisError as e:
            logger.warning("Redis failure counter update failed: %s", e)
            raise StoreUnavailableError(str(e)) from e

    async def reset(self, session_id: str) -> None:
        try:
            await self._redis.delete(self._failure_key(session_id))
        except RedisError as e:
            logger.warning("Redis failure counter reset failed: %s", e)
            raise StoreUnavailableError(str(e)) from e


__all__: list[str] = ["RedisRateLimiter"]
