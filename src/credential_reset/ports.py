"""Ports (protocols) for the engine's external collaborators.

The engine only talks to the outside world through these interfaces:
a TTL key/value store with compare-and-swap, a rate limiter, channel
adapters, the identity provider and an audit sink. All ports use
@runtime_checkable for isinstance checks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from .delivery.channel import ChannelType
from .masking import mask_email, mask_phone

if TYPE_CHECKING:
    from .audit.events import AuditEvent
    from .delivery.channel import DeliveryReceipt


# ═══════════════════════════════════════════════════════════════
# SECRET RECORD STORE
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class ISecretRecordStore(Protocol):
    """Durable, namespaced key/value store for short-lived records.

    Implementations enforce TTL expiry themselves and serialize concurrent
    writers to the same key through ``compare_and_swap``.
    """

    async def put(self, key: str, record: dict[str, Any], ttl: int) -> None:
        """Store ``record`` under ``key`` for ``ttl`` seconds.

        Raises:
            StoreUnavailableError: The backend cannot be reached.
        """
        ...

    async def get(self, key: str) -> dict[str, Any]:
        """Return the live record for ``key``.

        Raises:
            RecordNotFoundError: No record, or it has expired.
            StoreUnavailableError: The backend cannot be reached.
        """
        ...

    async def delete(self, key: str) -> None:
        """Remove ``key``; a missing key is not an error."""
        ...

    async def compare_and_swap(
        self,
        key: str,
        expected: dict[str, Any] | None,
        new: dict[str, Any],
        ttl: int,
    ) -> bool:
        """Atomically replace ``expected`` with ``new``.

        Args:
            key: Record key.
            expected: The record the caller last read, or None to require
                that no live record exists.
            new: Replacement record.
            ttl: Lifetime of the replacement in seconds.

        Returns:
            True if the swap happened, False if the stored record differed.
        """
        ...


# ═══════════════════════════════════════════════════════════════
# RATE LIMITER
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class IRateLimiter(Protocol):
    """Issuance and verification ceilings.

    Callers only learn allowed / not allowed; the reason stays inside.
    """

    async def allow_issue(self, subject_id: str) -> bool:
        """Consume one issuance slot for ``subject_id`` if one is free."""
        ...

    async def allow_verify(self, session_id: str) -> bool:
        """Check whether ``session_id`` may submit another code."""
        ...

    async def record_failure(self, session_id: str) -> None:
        """Count one failed verification against ``session_id``."""
        ...

    async def reset(self, session_id: str) -> None:
        """Forget verification failures for ``session_id``."""
        ...


# ═══════════════════════════════════════════════════════════════
# CHANNEL ADAPTER
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class IChannelAdapter(Protocol):
    """Transmits a rendered text message over one channel.

    Adapters know nothing about codes or passwords, only destinations and
    text.
    """

    async def send(
        self,
        channel: ChannelType,
        destination: str,
        text: str,
    ) -> DeliveryReceipt:
        """Send ``text`` to ``destination``.

        Raises:
            ChannelUnavailableError: Transient provider/network failure.
            InvalidDestinationError: The destination cannot receive messages.
        """
        ...


# ═══════════════════════════════════════════════════════════════
# IDENTITY PROVIDER
# ═══════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ContactInfo:
    """Registered contact destinations of a subject.

    Attributes:
        subject_id: Account identifier.
        phone: E.164 phone number, if registered.
        email: Email address, if registered.
        app_device: Push/app destination, if registered.
        identifiers: Extra identifiers the new password must not contain.
        password_history: Recent credential hashes, newest first.
    """

    subject_id: str
    phone: str | None = None
    email: str | None = None
    app_device: str | None = None
    identifiers: tuple[str, ...] = ()
    password_history: tuple[str, ...] = ()

    @property
    def masked_phone(self) -> str | None:
        return mask_phone(self.phone) if self.phone else None

    @property
    def masked_email(self) -> str | None:
        return mask_email(self.email) if self.email else None

    @property
    def channels_available(self) -> list[ChannelType]:
        channels: list[ChannelType] = []
        if self.phone:
            channels.append(ChannelType.SMS)
        if self.email:
            channels.append(ChannelType.EMAIL)
        if self.app_device:
            channels.append(ChannelType.APP)
        return channels

    def destination_for(self, channel: ChannelType) -> str | None:
        return {
            ChannelType.SMS: self.phone,
            ChannelType.EMAIL: self.email,
            ChannelType.APP: self.app_device,
        }[channel]


class UpdateOutcome(Enum):
    """Classification of a credential update attempt."""

    SUCCESS = "success"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


@dataclass(frozen=True)
class UpdateResult:
    """Result of ``UpdateCredential``.

    ``detail`` may contain provider internals; it goes to the audit log
    only.
    """

    outcome: UpdateOutcome
    idempotency_key: str
    detail: str | None = None
    attempts: int = 1
    replayed: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.outcome is UpdateOutcome.SUCCESS


@runtime_checkable
class IIdentityProvider(Protocol):
    """Stores user records and performs the credential update."""

    async def lookup_contact_info(self, subject_id: str) -> ContactInfo:
        """Return contact destinations for ``subject_id``.

        Raises:
            SubjectNotFoundError: No such account.
            ProviderTransientError: Lookup may succeed on retry.
        """
        ...

    async def update_credential(
        self,
        subject_id: str,
        new_credential: str,
        idempotency_key: str,
    ) -> None:
        """Replace the subject's credential.

        A second call with the same ``idempotency_key`` must not perform a
        second update.

        Raises:
            ProviderTransientError: Safe to retry with the same key.
            ProviderPermanentError: Will not succeed on retry.
        """
        ...


# ═══════════════════════════════════════════════════════════════
# AUDIT SINK
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class IAuditSink(Protocol):
    """Append-only writer for audit events."""

    async def record(self, event: AuditEvent) -> None:
        """Append ``event``. Events are never updated or removed."""
        ...


__all__: list[str] = [
    "ISecretRecordStore",
    "IRateLimiter",
    "IChannelAdapter",
    "ContactInfo",
    "UpdateOutcome",
    "UpdateResult",
    "IIdentityProvider",
    "IAuditSink",
]
