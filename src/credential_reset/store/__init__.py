"""Secret record stores and the session repository."""

from __future__ import annotations

from .memory import InMemorySecretRecordStore
from .redis import RedisSecretRecordStore
from .repository import SessionRepository

__all__: list[str] = [
    "InMemorySecretRecordStore",
    "RedisSecretRecordStore",
    "SessionRepository",
]
