"""In-memory rate limiter for testing and single-process use."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone

from ..ports import IRateLimiter
from .policy import RateLimitPolicy

logger = logging.getLogger(__name__)


def _now_ts() -> float:
    return datetime.now(timezone.utc).timestamp()


class InMemoryRateLimiter(IRateLimiter):
    """Sliding-window issuance limiter plus per-session failure counter.

    ⚠️ WARNING: State lives in this process only.
    Use RedisRateLimiter when the engine runs in more than one process.
    """

    def __init__(
        self,
        policy: RateLimitPolicy,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.policy = policy
        self._clock = (lambda: clock().timestamp()) if clock else _now_ts
        self._issued: dict[str, deque[float]] = {}
        # session_id -> (failures, expires_at)
        self._failures: dict[str, tuple[int, float]] = {}
        self._lock = asyncio.Lock()
        self._pruned_at = 0.0

    async def allow_issue(self, subject_id: str) -> bool:
        async with self._lock:
            now = self._clock()
            self._prune(now)
            window = self._drain(subject_id, now)
            if len(window) >= self.policy.issue_limit:
                logger.info("Issuance denied for subject (window full)")
                return False
            if (
                self.policy.issue_cooldown_seconds
                and window
                and now - window[-1] < self.policy.issue_cooldown_seconds
            ):
                logger.info("Issuance denied for subject (cooldown)")
                return False
            window.append(now)
            self._issued[subject_id] = window
            return True

    def _drain(self, subject_id: str, now: float) -> deque[float]:
        window = self._issued.get(subject_id, deque())
        while window and window[0] <= now - self.policy.issue_window_seconds:
            window.popleft()
        if not window:
            self._issued.pop(subject_id, None)
        return window

    def _prune(self, now: float) -> None:
        """Drop drained windows and expired counters, at most once per window."""
        if now - self._pruned_at < self.policy.issue_window_seconds:
            return
        self._pruned_at = now
        for subject_id in list(self._issued):
            self._drain(subject_id, now)
        for session_id in list(self._failures):
            self._current_failures(session_id, now)

    def _current_failures(self, session_id: str, now: float) -> int:
        entry = self._failures.get(session_id)
        if entry is None:
            return 0
        count, expires_at = entry
        if now >= expires_at:
            del self._failures[session_id]
            return 0
        return count

    async def allow_verify(self, session_id: str) -> bool:
        async with self._lock:
            failures = self._current_failures(session_id, self._clock())
            return failures < self.policy.max_verify_failures

    async def record_failure(self, session_id: str) -> None:
        async with self._lock:
            now = self._clock()
            failures = self._current_failures(session_id, now)
            expires_at = (
                self._failures[session_id][1]
                if session_id in self._failures
                else now + self.policy.failure_ttl_seconds
            )
            self._failures[session_id] = (failures + 1, expires_at)

    async def reset(self, session_id: str) -> None:
        async with self._lock:
            self._failures.pop(session_id, None)

    def failures(self, session_id: str) -> int:
        """Current failure count (for assertions)."""
        return self._current_failures(session_id, self._clock())


__all__: list[str] = ["InMemoryRateLimiter"]
