"""Verification session model and its transition table."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .exceptions import IllegalTransitionError


class SessionState(Enum):
    """Lifecycle states of a verification session."""

    INITIATED = "initiated"
    CODE_ISSUED = "code_issued"
    VERIFIED = "verified"
    PASSWORD_COLLECTED = "password_collected"
    COMPLETED = "completed"
    ABORTED = "aborted"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES: frozenset[SessionState] = frozenset(
    {SessionState.COMPLETED, SessionState.ABORTED, SessionState.EXPIRED}
)

_ALLOWED: dict[SessionState, frozenset[SessionState]] = {
    SessionState.INITIATED: frozenset(
        {SessionState.CODE_ISSUED, SessionState.ABORTED, SessionState.EXPIRED}
    ),
    SessionState.CODE_ISSUED: frozenset(
        {
            SessionState.CODE_ISSUED,  # resend replaces the live code
            SessionState.VERIFIED,
            SessionState.ABORTED,
            SessionState.EXPIRED,
        }
    ),
    SessionState.VERIFIED: frozenset(
        {SessionState.PASSWORD_COLLECTED, SessionState.ABORTED, SessionState.EXPIRED}
    ),
    SessionState.PASSWORD_COLLECTED: frozenset(
        {
            SessionState.VERIFIED,  # pending credential lost, must resubmit
            SessionState.PASSWORD_COLLECTED,
            SessionState.COMPLETED,
            SessionState.ABORTED,
            SessionState.EXPIRED,
        }
    ),
    SessionState.COMPLETED: frozenset(),
    SessionState.ABORTED: frozenset(),
    SessionState.EXPIRED: frozenset(),
}


def can_transition(from_state: SessionState, to_state: SessionState) -> bool:
    return to_state in _ALLOWED[from_state]


def _dt(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class VerificationSession:
    """Persisted state of one verification + reset workflow.

    Holds hashes only. ``code_hash``, ``reset_token_hash`` and
    ``credential_fingerprint`` are keyed HMACs; plaintext codes, tokens and
    credentials never reach this record.

    ``version`` increases on every write and is what compare-and-swap
    detects concurrent updates by. ``revision`` is a random tag per write,
    so two writers producing otherwise identical records stay distinguishable.
    """

    session_id: str
    subject_id: str
    state: SessionState
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    channel: str | None = None
    salt: str | None = None
    code_hash: str | None = None
    code_expires_at: datetime | None = None
    code_attempts: int = 0
    codes_issued: int = 0
    reset_token_hash: str | None = None
    reset_token_expires_at: datetime | None = None
    credential_fingerprint: str | None = None
    update_claimed_at: datetime | None = None
    decoy: bool = False
    version: int = 0
    revision: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def has_live_code(self, now: datetime) -> bool:
        return (
            self.code_hash is not None
            and self.code_expires_at is not None
            and now < self.code_expires_at
        )

    def has_live_token(self, now: datetime) -> bool:
        return (
            self.reset_token_hash is not None
            and self.reset_token_expires_at is not None
            and now < self.reset_token_expires_at
        )

    def transition(
        self, to_state: SessionState, now: datetime, **changes: Any
    ) -> VerificationSession:
        """Return a copy moved to ``to_state`` with ``changes`` applied.

        Raises:
            IllegalTransitionError: If the move is not in the transition table.
        """
        if not can_transition(self.state, to_state):
            raise IllegalTransitionError(self.state.value, to_state.value)
        if to_state.is_terminal:
            # Terminal sessions keep no secrets.
            changes.setdefault("code_hash", None)
            changes.setdefault("code_expires_at", None)
            changes.setdefault("reset_token_hash", None)
            changes.setdefault("reset_token_expires_at", None)
            changes.setdefault("credential_fingerprint", None)
            changes.setdefault("update_claimed_at", None)
        return self.update(state=to_state, now=now, **changes)

    def update(self, now: datetime, **changes: Any) -> VerificationSession:
        """Return a copy with ``changes`` applied and the version bumped."""
        return replace(
            self,
            updated_at=now,
            version=self.version + 1,
            revision=secrets.token_hex(8),
            **changes,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "subject_id": self.subject_id,
            "state": self.state.value,
            "created_at": _dt(self.created_at),
            "updated_at": _dt(self.updated_at),
            "expires_at": _dt(self.expires_at),
            "channel": self.channel,
            "salt": self.salt,
            "code_hash": self.code_hash,
            "code_expires_at": _dt(self.code_expires_at),
            "code_attempts": self.code_attempts,
            "codes_issued": self.codes_issued,
            "reset_token_hash": self.reset_token_hash,
            "reset_token_expires_at": _dt(self.reset_token_expires_at),
            "credential_fingerprint": self.credential_fingerprint,
            "update_claimed_at": _dt(self.update_claimed_at),
            "decoy": self.decoy,
            "version": self.version,
            "revision": self.revision,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VerificationSession:
        """Rebuild a session from its stored form.

        Raises:
            ValueError: If required fields are missing or invalid.
        """
        try:
            state = SessionState(data["state"])
            created_at = _parse_dt(data["created_at"])
            updated_at = _parse_dt(data["updated_at"])
            expires_at = _parse_dt(data["expires_at"])
            session_id = data["session_id"]
            subject_id = data["subject_id"]
        except (KeyError, ValueError) as e:
            raise ValueError(f"Invalid session record: {e}") from e
        if created_at is None or updated_at is None or expires_at is None:
            raise ValueError("Invalid session record: missing timestamps")

        return cls(
            session_id=session_id,
            subject_id=subject_id,
            state=state,
            created_at=created_at,
            updated_at=updated_at,
            expires_at=expires_at,
            channel=data.get("channel"),
            salt=data.get("salt"),
            code_hash=data.get("code_hash"),
            code_expires_at=_parse_dt(data.get("code_expires_at")),
            code_attempts=int(data.get("code_attempts", 0)),
            codes_issued=int(data.get("codes_issued", 0)),
            reset_token_hash=data.get("reset_token_hash"),
            reset_token_expires_at=_parse_dt(data.get("reset_token_expires_at")),
            credential_fingerprint=data.get("credential_fingerprint"),
            update_claimed_at=_parse_dt(data.get("update_claimed_at")),
            decoy=bool(data.get("decoy", False)),
            version=int(data.get("version", 0)),
            revision=str(data.get("revision") or ""),
            metadata=dict(data.get("metadata") or {}),
        )


__all__: list[str] = [
    "SessionState",
    "TERMINAL_STATES",
    "VerificationSession",
    "can_transition",
]
