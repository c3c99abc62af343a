"""Session repository over a secret record store.

Maps ``VerificationSession`` to namespaced records, computes record TTLs,
keeps the subject -> live session index and routes every store call
through the retry policy and per-call deadline.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any, TypeVar

from ..exceptions import RecordNotFoundError
from ..retry import RetryPolicy, call_with_retry
from ..session import VerificationSession

if TYPE_CHECKING:
    from ..config import ResetConfig
    from ..ports import ISecretRecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionRepository:
    """Loads and conditionally saves verification sessions."""

    def __init__(
        self,
        store: ISecretRecordStore,
        config: ResetConfig,
        *,
        clock: Callable[[], datetime],
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._clock = clock
        self._retry = retry_policy or RetryPolicy(
            max_attempts=config.retry_max_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
        )

    def session_key(self, session_id: str) -> str:
        return f"{self._config.session_key_prefix}:{session_id}"

    def subject_key(self, subject_id: str) -> str:
        return f"{self._config.subject_key_prefix}:{subject_id}"

    def ttl_for(self, session: VerificationSession) -> int:
        """Seconds the record for ``session`` should live."""
        if session.is_terminal:
            return self._config.closed_session_ttl_seconds
        remaining = (session.expires_at - self._clock()).total_seconds()
        return max(1, math.ceil(remaining))

    async def _call(
        self,
        func: Callable[[], Awaitable[T]],
        operation: str,
        timeout: float | None,
    ) -> T:
        return await call_with_retry(
            func,
            self._retry,
            operation=operation,
            timeout=timeout if timeout is not None else self._config.call_timeout_seconds,
        )

    async def load(
        self, session_id: str, *, timeout: float | None = None
    ) -> VerificationSession:
        """Return the stored session.

        Raises:
            RecordNotFoundError: Unknown or expired session.
            StoreUnavailableError: Store unreachable after retries.
        """
        key = self.session_key(session_id)
        data = await self._call(lambda: self._store.get(key), "store.get", timeout)
        try:
            return VerificationSession.from_dict(data)
        except ValueError as e:
            logger.error("Unreadable session record %s: %s", key, e)
            raise RecordNotFoundError(key) from e

    async def create(
        self, session: VerificationSession, *, timeout: float | None = None
    ) -> bool:
        """Store a new session; False if the id is already taken."""
        return await self._swap(None, session, timeout)

    async def save(
        self,
        current: VerificationSession,
        new: VerificationSession,
        *,
        timeout: float | None = None,
    ) -> bool:
        """Replace ``current`` with ``new`` if nobody wrote in between."""
        return await self._swap(current.to_dict(), new, timeout)

    async def _swap(
        self,
        expected: dict[str, Any] | None,
        new: VerificationSession,
        timeout: float | None,
    ) -> bool:
        key = self.session_key(new.session_id)
        new_data = new.to_dict()
        ttl = self.ttl_for(new)
        swapped = await self._call(
            lambda: self._store.compare_and_swap(key, expected, new_data, ttl),
            "store.compare_and_swap",
            timeout,
        )
        if swapped:
            return True
        # A retried swap may have landed on an earlier attempt.
        try:
            stored = await self._call(lambda: self._store.get(key), "store.get", timeout)
        except RecordNotFoundError:
            return False
        return stored == new_data

    async def delete(self, session_id: str, *, timeout: float | None = None) -> None:
        key = self.session_key(session_id)
        await self._call(lambda: self._store.delete(key), "store.delete", timeout)

    async def bind_subject(
        self,
        subject_id: str,
        session_id: str,
        *,
        timeout: float | None = None,
    ) -> None:
        """Point the subject index at ``session_id``."""
        key = self.subject_key(subject_id)
        record = {"session_id": session_id}
        ttl = self._config.session_ttl_seconds
        await self._call(
            lambda: self._store.put(key, record, ttl), "store.put", timeout
        )

    async def session_for_subject(
        self, subject_id: str, *, timeout: float | None = None
    ) -> str | None:
        key = self.subject_key(subject_id)
        try:
            record = await self._call(
                lambda: self._store.get(key), "store.get", timeout
            )
        except RecordNotFoundError:
            return None
        session_id = record.get("session_id")
        return str(session_id) if session_id else None


__all__: list[str] = ["SessionRepository"]
