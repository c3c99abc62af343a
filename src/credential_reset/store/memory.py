"""In-memory secret record store for testing and single-process use."""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from ..exceptions import RecordNotFoundError
from ..ports import ISecretRecordStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemorySecretRecordStore(ISecretRecordStore):
    """In-memory implementation of ISecretRecordStore.

    Expiry is checked on every access, so an expired record is never
    returned even if nobody purged it. A single asyncio.Lock serializes
    writers, which makes compare-and-swap linearizable within one event
    loop.

    Note:
        Records are lost on restart. Use RedisSecretRecordStore across
        processes.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or _utcnow
        self._records: dict[str, tuple[dict[str, Any], datetime]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> dict[str, Any] | None:
        entry = self._records.get(key)
        if entry is None:
            return None
        record, expires_at = entry
        if self._clock() >= expires_at:
            del self._records[key]
            return None
        return record

    def _write(self, key: str, record: dict[str, Any], ttl: int) -> None:
        if ttl < 1:
            raise ValueError("ttl must be >= 1 second")
        expires_at = self._clock() + timedelta(seconds=ttl)
        self._records[key] = (copy.deepcopy(record), expires_at)

    async def put(self, key: str, record: dict[str, Any], ttl: int) -> None:
        async with self._lock:
            self._write(key, record, ttl)

    async def get(self, key: str) -> dict[str, Any]:
        async with self._lock:
            record = self._live(key)
        if record is None:
            raise RecordNotFoundError(key)
        return copy.deepcopy(record)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._records.pop(key, None)

    async def compare_and_swap(
        self,
        key: str,
        expected: dict[str, Any] | None,
        new: dict[str, Any],
        ttl: int,
    ) -> bool:
        async with self._lock:
            current = self._live(key)
            if current != expected:
                logger.debug("CAS conflict on %s", key)
                return False
            self._write(key, new, ttl)
            return True

    def purge_expired(self) -> int:
        """Drop expired records; returns how many were removed."""
        now = self._clock()
        expired = [k for k, (_, exp) in self._records.items() if now >= exp]
        for key in expired:
            del self._records[key]
        return len(expired)

    def count(self) -> int:
        """Number of live records."""
        now = self._clock()
        return sum(1 for _, exp in self._records.values() if now < exp)

    def clear(self) -> None:
        self._records.clear()


__all__: list[str] = ["InMemorySecretRecordStore"]
