"""Redis implementation of the secret record store."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from redis.exceptions import RedisError

from ..exceptions import RecordNotFoundError, StoreUnavailableError
from ..ports import ISecretRecordStore

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# KEYS[1] = record key
# ARGV[1] = expected serialized record ("" means "must not exist")
# ARGV[2] = new serialized record
# ARGV[3] = ttl seconds
_CAS_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if ARGV[1] == '' then
    if current then
        return 0
    end
elseif current ~= ARGV[1] then
    return 0
end
redis.call('SET', KEYS[1], ARGV[2], 'EX', tonumber(ARGV[3]))
return 1
"""


def _dumps(record: dict[str, Any]) -> str:
    # Canonical form: CAS compares serialized strings byte for byte.
    return json.dumps(record, sort_keys=True, separators=(",", ":"), default=str)


class RedisSecretRecordStore(ISecretRecordStore):
    """
    Redis implementation of ISecretRecordStore.

    Records are canonical JSON strings with native key expiry (``SET EX``).
    Compare-and-swap runs as a Lua script, so the read-compare-write is
    atomic on the server.
    """

    def __init__(self, redis_client: Redis) -> None:  # type: ignore[type-arg]
        self._redis = redis_client

    async def put(self, key: str, record: dict[str, Any], ttl: int) -> None:
        if ttl < 1:
            raise ValueError("ttl must be >= 1 second")
        try:
            await self._redis.set(key, _dumps(record), ex=ttl)
        except RedisError as e:
            logger.warning("Redis put failed for key %s: %s", key, e)
            raise StoreUnavailableError(str(e)) from e

    async def get(self, key: str) -> dict[str, Any]:
        try:
            raw = await self._redis.get(key)
        except RedisError as e:
            logger.warning("Redis get failed for key %s: %s", key, e)
            raise StoreUnavailableError(str(e)) from e
        if raw is None:
            raise RecordNotFoundError(key)
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            record: dict[str, Any] = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Corrupt record under key %s", key)
            raise RecordNotFoundError(key) from e
        return record

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as e:
            logger.warning("Redis delete failed for key %s: %s", key, e)
            raise StoreUnavailableError(str(e)) from e

    async def compare_and_swap(
        self,
        key: str,
        expected: dict[str, Any] | None,
        new: dict[str, Any],
        ttl: int,
    ) -> bool:
        if ttl < 1:
            raise ValueError("ttl must be >= 1 second")
        expected_raw = "" if expected is None else _dumps(expected)
        try:
            swapped = await self._redis.eval(
                _CAS_SCRIPT, 1, key, expected_raw, _dumps(new), str(ttl)
            )
        except RedisError as e:
            logger.warning("Redis CAS failed for key %s: %s", key, e)
            raise StoreUnavailableError(str(e)) from e
        if not swapped:
            logger.debug("CAS conflict on %s", key)
        return bool(swapped)


__all__: list[str] = ["RedisSecretRecordStore"]
