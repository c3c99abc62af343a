"""Process-local holder for accepted credentials awaiting confirmation.

The accepted candidate lives here, in memory only, between
``submit_new_credential`` and ``confirm_and_execute``. The session record
stores just a keyed fingerprint of it.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone


class _Pending:
    __slots__ = ("credential", "expires_at")

    def __init__(self, credential: str, expires_at: datetime) -> None:
        self.credential = credential
        self.expires_at = expires_at

    def __repr__(self) -> str:
        return f"_Pending(credential='***', expires_at={self.expires_at.isoformat()})"


class PendingCredentialVault:
    """Expiring, in-memory map of session id -> pending credential."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._entries: dict[str, _Pending] = {}

    def put(self, session_id: str, credential: str, expires_at: datetime) -> None:
        self._purge()
        self._entries[session_id] = _Pending(credential, expires_at)

    def get(self, session_id: str) -> str | None:
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[session_id]
            return None
        return entry.credential

    def discard(self, session_id: str) -> None:
        self._entries.pop(session_id, None)

    def __contains__(self, session_id: object) -> bool:
        return isinstance(session_id, str) and self.get(session_id) is not None

    def __len__(self) -> int:
        self._purge()
        return len(self._entries)

    def _purge(self) -> None:
        now = self._clock()
        for session_id in [k for k, v in self._entries.items() if now >= v.expires_at]:
            del self._entries[session_id]


__all__: list[str] = ["PendingCredentialVault"]
