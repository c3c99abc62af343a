"""Channel types and delivery receipts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


class ChannelType(Enum):
    """Contact channels a code can be delivered over.

    No provider adapter ships for ``APP``: pass your own ``IChannelAdapter``
    (push service, in-app inbox) to ``build_engine(adapters=...)``. The
    console fallback covers it in development.
    """

    SMS = "sms"
    EMAIL = "email"
    APP = "app"


class DeliveryStatus(Enum):
    """Delivery outcomes reported by adapters."""

    SENT = "sent"
    FAILED = "failed"


@dataclass(frozen=True)
class DeliveryReceipt:
    """Immutable record of one delivery attempt.

    ``destination`` is stored masked; receipts end up in logs and audit
    metadata.
    """

    channel: ChannelType
    destination: str
    status: DeliveryStatus
    provider_id: str | None = None
    attempts: int = 1
    sent_at: datetime | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.sent_at is None:
            object.__setattr__(self, "sent_at", datetime.now(timezone.utc))

    @property
    def ok(self) -> bool:
        return self.status is DeliveryStatus.SENT

    @classmethod
    def sent(
        cls,
        channel: ChannelType,
        destination: str,
        provider_id: str | None = None,
    ) -> DeliveryReceipt:
        return cls(
            channel=channel,
            destination=destination,
            status=DeliveryStatus.SENT,
            provider_id=provider_id,
        )

    @classmethod
    def failed(
        cls,
        channel: ChannelType,
        destination: str,
        error: str | None = None,
    ) -> DeliveryReceipt:
        return cls(
            channel=channel,
            destination=destination,
            status=DeliveryStatus.FAILED,
            error=error,
        )


__all__: list[str] = ["ChannelType", "DeliveryStatus", "DeliveryReceipt"]
