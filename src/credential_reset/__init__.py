"""Credential Reset Package

OTP verification and credential-reset workflow engine.

Proves a requester controls a registered contact channel, then authorizes
exactly one credential change, under rate limits, a password policy and an
append-only audit trail.

Usage:
    ```python
    from credential_reset import ResetSettings, build_engine

    engine = build_engine(ResetSettings(), identity_provider=my_provider)

    issued = await engine.request_code("user1", "sms")
    verified = await engine.submit_code(issued.session_id, "123456")
    accepted = await engine.submit_new_credential(issued.session_id, "Str0ng!Passw0rd")
    done = await engine.confirm_and_execute(issued.session_id)
    ```

Submodules:
    - `store`: secret record stores (in-memory, Redis) and the session repository
    - `ratelimit`: issuance and verification limiters (in-memory, Redis)
    - `delivery`: dispatcher and channel adapters (fake, console, Twilio, SMTP)
    - `audit`: audit events, logger and sinks
    - `observability`: Prometheus metrics
"""

from __future__ import annotations

# Audit
from .audit import (
    AuditEvent,
    AuditEventType,
    AuditLogger,
    AuditOutcome,
    InMemoryAuditSink,
    LoggingAuditSink,
)

# Configuration
from .config import ResetConfig, ResetSettings

# Components
from .credential import CredentialUpdateClient, derive_idempotency_key
from .delivery import ChannelType, DeliveryDispatcher, DeliveryReceipt, DeliveryStatus
from .engine import ResetWorkflowEngine

# Exceptions
from .exceptions import (
    ChannelUnavailableError,
    CodeExpiredError,
    ConcurrencyConflictError,
    CredentialResetError,
    DeadlineExceededError,
    DomainError,
    EntropySourceUnavailableError,
    IllegalTransitionError,
    InfrastructureError,
    InvalidCodeError,
    InvalidDestinationError,
    PolicyViolationError,
    ProviderPermanentError,
    ProviderTransientError,
    RateLimitedError,
    RecordNotFoundError,
    SessionClosedError,
    StoreUnavailableError,
    SubjectNotFoundError,
)
from .factory import build_adapters, build_engine
from .identity import InMemoryIdentityProvider
from .masking import mask_destination, mask_email, mask_phone
from .otp import IssuedCode, OtpGenerator
from .policy import PasswordPolicy, PolicyResult, SubjectContext, validate

# Ports
from .ports import (
    ContactInfo,
    IAuditSink,
    IChannelAdapter,
    IIdentityProvider,
    IRateLimiter,
    ISecretRecordStore,
    UpdateOutcome,
    UpdateResult,
)
from .ratelimit import InMemoryRateLimiter, RateLimitPolicy, RedisRateLimiter

# Results
from .results import (
    AbortResult,
    ConfirmResult,
    RequestCodeResult,
    ResultStatus,
    SessionView,
    SubmitCodeResult,
    SubmitCredentialResult,
)
from .retry import RetryPolicy
from .sanitization import SecretSanitizer
from .session import SessionState, VerificationSession
from .store import InMemorySecretRecordStore, RedisSecretRecordStore, SessionRepository
from .templates import MessageTemplates
from .vault import PendingCredentialVault

__version__ = "0.1.0"

__all__: list[str] = [
    # Engine
    "ResetWorkflowEngine",
    "build_engine",
    "build_adapters",
    # Configuration
    "ResetConfig",
    "ResetSettings",
    "PasswordPolicy",
    "RateLimitPolicy",
    "RetryPolicy",
    "MessageTemplates",
    # Results
    "ResultStatus",
    "RequestCodeResult",
    "SubmitCodeResult",
    "SubmitCredentialResult",
    "ConfirmResult",
    "AbortResult",
    "SessionView",
    # Session
    "SessionState",
    "VerificationSession",
    "SessionRepository",
    # Components
    "OtpGenerator",
    "IssuedCode",
    "validate",
    "SubjectContext",
    "PolicyResult",
    "CredentialUpdateClient",
    "derive_idempotency_key",
    "DeliveryDispatcher",
    "ChannelType",
    "DeliveryReceipt",
    "DeliveryStatus",
    "PendingCredentialVault",
    "SecretSanitizer",
    "mask_phone",
    "mask_email",
    "mask_destination",
    # Ports
    "ISecretRecordStore",
    "IRateLimiter",
    "IChannelAdapter",
    "IIdentityProvider",
    "IAuditSink",
    "ContactInfo",
    "UpdateOutcome",
    "UpdateResult",
    # Implementations
    "InMemorySecretRecordStore",
    "RedisSecretRecordStore",
    "InMemoryRateLimiter",
    "RedisRateLimiter",
    "InMemoryIdentityProvider",
    # Audit
    "AuditEvent",
    "AuditEventType",
    "AuditOutcome",
    "AuditLogger",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    # Exceptions
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
