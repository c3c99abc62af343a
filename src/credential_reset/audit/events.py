"""Audit events for the verification and reset workflow.

Every engine operation outcome, including failed attempts and rate-limit
denials, produces exactly one ``AuditEvent``. Events never carry plaintext
codes, tokens or credentials.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class AuditEventType(Enum):
    """Types of reset audit events.

    Event naming follows the pattern: `reset.<resource>.<action>`
    """

    # Code events
    CODE_ISSUED = "reset.code.issued"
    CODE_RATE_LIMITED = "reset.code.rate_limited"
    CODE_DELIVERY_FAILED = "reset.code.delivery_failed"
    CODE_VERIFIED = "reset.code.verified"
    CODE_REJECTED = "reset.code.rejected"
    CODE_EXPIRED = "reset.code.expired"
    VERIFY_RATE_LIMITED = "reset.verify.rate_limited"

    # Credential events
    CREDENTIAL_ACCEPTED = "reset.credential.accepted"  # noqa: S105
    CREDENTIAL_REJECTED = "reset.credential.rejected"  # noqa: S105
    CREDENTIAL_UPDATED = "reset.credential.updated"  # noqa: S105
    CREDENTIAL_UPDATE_FAILED = "reset.credential.update_failed"  # noqa: S105
    CREDENTIAL_REPLAYED = "reset.credential.replayed"  # noqa: S105

    # Session events
    SESSION_ABORTED = "reset.session.aborted"
    SESSION_SUPERSEDED = "reset.session.superseded"
    SESSION_EXPIRED = "reset.session.expired"

    # Requests that changed nothing
    REQUEST_REJECTED = "reset.request.rejected"
    REQUEST_FAILED = "reset.request.failed"


class AuditOutcome(Enum):
    """How the audited operation ended."""

    SUCCESS = "success"
    FAILURE = "failure"
    DENIED = "denied"
    ERROR = "error"


@dataclass(frozen=True)
class AuditEvent:
    """Reset workflow audit event.

    Attributes:
        event_type: The type of event.
        outcome: How the operation ended.
        session_id: Session identifier (if one exists).
        subject_id: Account identifier (if known).
        timestamp: When the event occurred (UTC).
        from_state: Session state before the operation.
        to_state: Session state after the operation.
        error_code: Error class name when the operation failed.
        detail: Internal detail (provider messages). Audit only, never shown
            to end users.
        metadata: Additional event-specific data.
    """

    event_type: AuditEventType
    outcome: AuditOutcome = AuditOutcome.SUCCESS
    session_id: str | None = None
    subject_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    from_state: str | None = None
    to_state: str | None = None
    error_code: str | None = None
    detail: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate event data."""
        if self.outcome is AuditOutcome.ERROR and not self.error_code:
            object.__setattr__(self, "error_code", "UNKNOWN_ERROR")

    @property
    def success(self) -> bool:
        return self.outcome is AuditOutcome.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for serialization.

        Returns:
            Dictionary representation suitable for JSON serialization.
        """
        return {
            "event_type": self.event_type.value,
            "outcome": self.outcome.value,
            "session_id": self.session_id,
            "subject_id": self.subject_id,
            "timestamp": self.timestamp.isoformat(),
            "from_state": self.from_state,
            "to_state": self.to_state,
            "error_code": self.error_code,
            "detail": self.detail,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditEvent:
        """Create event from dictionary.

        Raises:
            ValueError: If required fields are missing or invalid.
        """
        event_type_str = data.get("event_type")
        if event_type_str is None:
            raise ValueError("Missing required 'event_type'")

        try:
            event_type = AuditEventType(event_type_str)
        except ValueError as e:
            raise ValueError(f"Invalid event_type: {event_type_str}") from e

        try:
            outcome = AuditOutcome(data.get("outcome", AuditOutcome.SUCCESS.value))
        except ValueError as e:
            raise ValueError(f"Invalid outcome: {data.get('outcome')}") from e

        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
            if timestamp.tzinfo is None:
                timestamp = timestamp.replace(tzinfo=timezone.utc)
        elif timestamp is None:
            timestamp = datetime.now(timezone.utc)

        return cls(
            event_type=event_type,
            outcome=outcome,
            session_id=data.get("session_id"),
            subject_id=data.get("subject_id"),
            timestamp=timestamp,
            from_state=data.get("from_state"),
            to_state=data.get("to_state"),
            error_code=data.get("error_code"),
            detail=data.get("detail"),
            metadata=data.get("metadata", {}),
        )


__all__: list[str] = ["AuditEventType", "AuditOutcome", "AuditEvent"]
