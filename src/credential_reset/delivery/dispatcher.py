"""Routes rendered messages to the adapter registered for each channel."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from ..exceptions import ChannelUnavailableError, CredentialResetError
from ..masking import mask_destination
from ..retry import RetryPolicy, call_with_retry
from .channel import ChannelType, DeliveryReceipt

if TYPE_CHECKING:
    from ..ports import IChannelAdapter

logger = logging.getLogger(__name__)


class DeliveryDispatcher:
    """
    Sends a message over one channel with bounded retries.

    ``ChannelUnavailableError`` is retried with backoff;
    ``InvalidDestinationError`` is returned to the caller on the first
    attempt. Returned receipts always carry a masked destination.
    """

    def __init__(
        self,
        adapters: dict[ChannelType, IChannelAdapter],
        *,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
    ) -> None:
        self._adapters = dict(adapters)
        self._retry = retry_policy or RetryPolicy()
        self._timeout = timeout

    @property
    def channels(self) -> list[ChannelType]:
        return list(self._adapters)

    def supports(self, channel: ChannelType) -> bool:
        return channel in self._adapters

    def register(self, channel: ChannelType, adapter: IChannelAdapter) -> None:
        self._adapters[channel] = adapter

    async def dispatch(
        self,
        channel: ChannelType,
        destination: str,
        text: str,
    ) -> DeliveryReceipt:
        """Deliver ``text`` to ``destination``.

        Raises:
            ChannelUnavailableError: No adapter, or retries exhausted.
            InvalidDestinationError: The destination was rejected.
        """
        adapter = self._adapters.get(channel)
        if adapter is None:
            raise ChannelUnavailableError(channel.value, "no adapter configured")

        attempts = 0

        async def _send() -> DeliveryReceipt:
            nonlocal attempts
            attempts += 1
            return await adapter.send(channel, destination, text)

        masked = mask_destination(channel.value, destination)
        try:
            receipt = await call_with_retry(
                _send,
                self._retry,
                operation=f"delivery.{channel.value}",
                timeout=self._timeout,
            )
        except CredentialResetError as e:
            logger.warning(
                "Delivery over %s to %s failed after %d attempt(s): %s",
                channel.value,
                masked,
                attempts,
                type(e).__name__,
            )
            if e.retryable and not isinstance(e, ChannelUnavailableError):
                raise ChannelUnavailableError(channel.value, type(e).__name__) from e
            raise
        logger.info("Code delivered over %s to %s", channel.value, masked)
        return replace(receipt, destination=masked, attempts=attempts)


__all__: list[str] = ["DeliveryDispatcher"]
