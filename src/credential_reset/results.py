"""Results returned across the engine boundary.

The front end only ever sees a coarse ``ResultStatus`` and a generic
message. Exception detail, provider codes and secrets never appear here,
with one deliberate exception: ``SubmitCodeResult.reset_token`` carries the
freshly issued reset token back to the caller that proved the code.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ResultStatus(Enum):
    """Coarse outcome of an engine operation."""

    ISSUED = "issued"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    INVALID_DESTINATION = "invalid_destination"
    SESSION_CLOSED = "session_closed"
    VERIFIED = "verified"
    REJECTED = "rejected"
    ABORTED = "aborted"
    EXPIRED = "expired"
    ACCEPTED = "accepted"
    POLICY_VIOLATION = "policy_violation"
    COMPLETED = "completed"
    FAILED = "failed"


PUBLIC_MESSAGES: dict[ResultStatus, str] = {
    ResultStatus.ISSUED: "If the account exists, a verification code has been sent.",
    ResultStatus.RATE_LIMITED: "Too many attempts. Please wait and try again later.",
    ResultStatus.UNAVAILABLE: "The service is temporarily unavailable. Please try again.",
    ResultStatus.INVALID_DESTINATION: (
        "We could not send a code to that contact method. "
        "Please choose another one or contact support."
    ),
    ResultStatus.SESSION_CLOSED: "This verification session has ended. Please start again.",
    ResultStatus.VERIFIED: "Code verified. You can now choose a new password.",
    ResultStatus.REJECTED: "The code you entered is not valid.",
    ResultStatus.ABORTED: "Too many attempts. Please start again.",
    ResultStatus.EXPIRED: "Your code has expired. Please request a new one.",
    ResultStatus.ACCEPTED: "Your new password meets the requirements.",
    ResultStatus.POLICY_VIOLATION: "Your new password does not meet the password requirements.",
    ResultStatus.COMPLETED: "Your password has been changed.",
    ResultStatus.FAILED: "We could not change your password. Please try again later.",
}


@dataclass(frozen=True)
class OperationResult:
    """Fields shared by every engine result.

    Attributes:
        status: Coarse outcome.
        message: Human-readable, non-sensitive text for the end user.
        session_id: Session the operation ran against, when one exists.
        retryable: True when repeating the same call may succeed.
    """

    status: ResultStatus
    message: str = ""
    session_id: str | None = None
    retryable: bool = False

    def __post_init__(self) -> None:
        if not self.message:
            object.__setattr__(self, "message", PUBLIC_MESSAGES[self.status])

    @property
    def ok(self) -> bool:
        return self.status in _SUCCESS_STATUSES


_SUCCESS_STATUSES: frozenset[ResultStatus] = frozenset(
    {
        ResultStatus.ISSUED,
        ResultStatus.VERIFIED,
        ResultStatus.ACCEPTED,
        ResultStatus.COMPLETED,
    }
)


@dataclass(frozen=True)
class RequestCodeResult(OperationResult):
    """Outcome of ``request_code``.

    Unknown subjects get a masked destination of the same shape as a real
    one, stable per subject, so the two cannot be told apart.
    """

    masked_destination: str | None = None
    channel: str | None = None


@dataclass(frozen=True)
class SubmitCodeResult(OperationResult):
    """Outcome of ``submit_code``; ``reset_token`` is set only on VERIFIED."""

    reset_token: str | None = None
    reset_token_expires_at: datetime | None = None

    def __repr__(self) -> str:
        token = "***" if self.reset_token else None
        return (
            f"SubmitCodeResult(status={self.status}, session_id={self.session_id!r}, "
            f"reset_token={token!r})"
        )


@dataclass(frozen=True)
class SubmitCredentialResult(OperationResult):
    """Outcome of ``submit_new_credential``.

    ``violations`` holds rule codes (e.g. ``"min_length"``); ``details``
    holds the matching user-facing guidance.
    """

    violations: tuple[str, ...] = ()
    details: tuple[str, ...] = ()


@dataclass(frozen=True)
class ConfirmResult(OperationResult):
    """Outcome of ``confirm_and_execute``."""

    replayed: bool = False


@dataclass(frozen=True)
class AbortResult(OperationResult):
    """Outcome of ``abort``."""


@dataclass(frozen=True)
class SessionView:
    """Secret-free snapshot returned by ``get_status``."""

    session_id: str
    state: str
    channel: str | None
    created_at: datetime
    expires_at: datetime
    code_expires_at: datetime | None = None
    reset_token_expires_at: datetime | None = None


__all__: list[str] = [
    "ResultStatus",
    "PUBLIC_MESSAGES",
    "OperationResult",
    "RequestCodeResult",
    "SubmitCodeResult",
    "SubmitCredentialResult",
    "ConfirmResult",
    "AbortResult",
    "SessionView",
]
