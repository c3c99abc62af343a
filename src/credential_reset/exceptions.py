"""Exception hierarchy for the credential-reset engine.

Domain errors describe protocol outcomes (wrong code, expired code, policy
violation). Infrastructure errors describe collaborator failures (store,
channel, identity provider). Every error carries a ``retryable`` flag and a
``public_message`` that is safe to show an end user; the engine never lets
anything else cross its boundary.
"""

from __future__ import annotations

from typing import ClassVar

# ═══════════════════════════════════════════════════════════════
# ROOT
# ═══════════════════════════════════════════════════════════════


class CredentialResetError(Exception):
    """Root exception for the credential-reset engine."""

    retryable: ClassVar[bool] = False
    public_message: ClassVar[str] = (
        "We could not complete your request. Please try again later."
    )


class DomainError(CredentialResetError):
    """Base class for protocol-level errors."""


class InfrastructureError(CredentialResetError):
    """Base class for collaborator and I/O failures."""


# ═══════════════════════════════════════════════════════════════
# DOMAIN ERRORS
# ═══════════════════════════════════════════════════════════════


class RateLimitedError(DomainError):
    """Raised when an issuance or verification ceiling is exceeded.

    Recoverable by waiting. The message never says which limit tripped.
    """

    public_message = "Too many attempts. Please wait and try again later."

    def __init__(
        self,
        message: str = "Too many attempts",
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class InvalidCodeError(DomainError):
    """Raised when a submitted code does not match the issued one."""

    public_message = "The code you entered is not valid."


class CodeExpiredError(DomainError):
    """Raised when a code or reset token is used after its expiry."""

    public_message = "Your code has expired. Please request a new one."


class PolicyViolationError(DomainError):
    """Raised when a candidate credential fails the password policy.

    Attributes:
        violations: Every rule the candidate broke, in rule order.
    """

    public_message = "Your new password does not meet the password requirements."

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        super().__init__(f"Password policy violated: {', '.join(self.violations)}")


class SessionClosedError(DomainError):
    """Raised when input arrives for a session that can no longer accept it."""

    public_message = "This verification session has ended. Please start again."


class IllegalTransitionError(DomainError):
    """Raised when a state change is not allowed from the current state."""

    def __init__(self, from_state: str, to_state: str) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Illegal transition {from_state} -> {to_state}")


class SubjectNotFoundError(DomainError):
    """Raised by identity providers when a subject has no account."""


# ═══════════════════════════════════════════════════════════════
# INFRASTRUCTURE ERRORS
# ═══════════════════════════════════════════════════════════════


class StoreUnavailableError(InfrastructureError):
    """Raised when the secret record store cannot be reached. Retryable."""

    retryable = True
    public_message = "The service is temporarily unavailable. Please try again."


class RecordNotFoundError(InfrastructureError):
    """Raised when a key has no live record (never written or expired)."""

    public_message = "This verification session has ended. Please start again."

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"No record for key {key!r}")


class ConcurrencyConflictError(InfrastructureError):
    """Raised when a compare-and-swap keeps losing to concurrent writers."""

    retryable = True
    public_message = "The service is busy. Please try again."


class ChannelUnavailableError(InfrastructureError):
    """Raised when a channel adapter cannot deliver right now. Retryable."""

    retryable = True
    public_message = (
        "We could not send your code right now. Please try again shortly."
    )

    def __init__(self, channel: str, reason: str) -> None:
        self.channel = channel
        self.reason = reason
        super().__init__(f"Channel {channel} unavailable: {reason}")


class InvalidDestinationError(InfrastructureError):
    """Raised when a destination cannot receive messages. Terminal."""

    public_message = (
        "We could not reach your registered contact method. "
        "Please contact support."
    )

    def __init__(self, channel: str, reason: str) -> None:
        self.channel = channel
        self.reason = reason
        super().__init__(f"Invalid {channel} destination: {reason}")


class EntropySourceUnavailableError(InfrastructureError):
    """Raised when the secure random source cannot be read."""


class ProviderTransientError(InfrastructureError):
    """Identity provider failure that is safe to retry."""

    retryable = True
    public_message = "The service is temporarily unavailable. Please try again."


class ProviderPermanentError(InfrastructureError):
    """Identity provider failure that will not succeed on retry.

    Examples:
        - server-side policy rejected the credential
        - the account is locked or disabled
    """


class DeadlineExceededError(InfrastructureError):
    """Raised when a call overruns its caller-supplied deadline.

    Always treated as a failure that needs a safe retry, never as success.
    """

    retryable = True
    public_message = "The service is temporarily unavailable. Please try again."

    def __init__(self, operation: str, timeout: float) -> None:
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} exceeded deadline of {timeout}s")


__all__: list[str] = [
    "CredentialResetError",
    "DomainError",
    "InfrastructureError",
    "RateLimitedError",
    "InvalidCodeError",
    "CodeExpiredError",
    "PolicyViolationError",
    "SessionClosedError",
    "IllegalTransitionError",
    "SubjectNotFoundError",
    "StoreUnavailableError",
    "RecordNotFoundError",
    "ConcurrencyConflictError",
    "ChannelUnavailableError",
    "InvalidDestinationError",
    "EntropySourceUnavailableError",
    "ProviderTransientError",
    "ProviderPermanentError",
    "DeadlineExceededError",
]
