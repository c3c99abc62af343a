"""In-memory and console channel adapters for tests and local development."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..exceptions import CredentialResetError
from ..masking import mask_destination
from ..ports import IChannelAdapter
from .channel import ChannelType, DeliveryReceipt

logger = logging.getLogger(__name__)


@dataclass
class SentMessage:
    """Record of a sent message for test assertions."""

    channel: ChannelType
    destination: str
    text: str
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryChannelAdapter(IChannelAdapter):
    """
    Test double (Fake) that stores messages in a list for assertions.

    Failures can be scripted with ``fail_next``; each queued error is
    raised by one ``send`` call, in order.
    """

    def __init__(self) -> None:
        self.sent_messages: list[SentMessage] = []
        self.calls = 0
        self._failures: deque[CredentialResetError] = deque()

    def fail_next(self, *errors: CredentialResetError) -> None:
        self._failures.extend(errors)

    async def send(
        self,
        channel: ChannelType,
        destination: str,
        text: str,
    ) -> DeliveryReceipt:
        self.calls += 1
        if self._failures:
            raise self._failures.popleft()
        self.sent_messages.append(SentMessage(channel, destination, text))
        return DeliveryReceipt.sent(
            channel, destination, provider_id=f"test-{len(self.sent_messages)}"
        )

    def messages_to(self, destination: str) -> list[SentMessage]:
        return [m for m in self.sent_messages if m.destination == destination]

    @property
    def last_message(self) -> SentMessage | None:
        return self.sent_messages[-1] if self.sent_messages else None

    def assert_sent(
        self,
        destination: str,
        channel: ChannelType,
        count: int = 1,
    ) -> None:
        """Helper for test assertions."""
        matches = [
            m
            for m in self.sent_messages
            if m.destination == destination and m.channel == channel
        ]
        if len(matches) != count:
            raise AssertionError(
                f"Expected {count} messages to {destination} via {channel.value}, "
                f"but found {len(matches)}."
            )

    def clear(self) -> None:
        """Clear all sent messages and scripted failures."""
        self.sent_messages.clear()
        self._failures.clear()
        self.calls = 0


class ConsoleChannelAdapter(IChannelAdapter):
    """
    Development adapter that prints messages to the console.

    Never use in production: the message body contains the plaintext code.
    """

    def __init__(self, output_to_stdout: bool = True):
        self.output_to_stdout = output_to_stdout

    async def send(
        self,
        channel: ChannelType,
        destination: str,
        text: str,
    ) -> DeliveryReceipt:
        output = "\n".join(
            [
                "═" * 50,
                f"MESSAGE VIA {channel.value.upper()}",
                f"To:   {destination}",
                f"Body: {text}",
                "═" * 50,
            ]
        )
        # The body holds the code; the log line only gets the masked target.
        logger.info(
            "Console delivery over %s to %s",
            channel.value,
            mask_destination(channel.value, destination),
        )
        if self.output_to_stdout:
            print(output)
        return DeliveryReceipt.sent(channel, destination, provider_id="console-debug")


__all__: list[str] = ["SentMessage", "InMemoryChannelAdapter", "ConsoleChannelAdapter"]
