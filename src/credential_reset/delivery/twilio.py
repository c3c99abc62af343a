"""Twilio SMS adapter (optional)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..exceptions import ChannelUnavailableError, InvalidDestinationError
from ..masking import mask_phone
from ..ports import IChannelAdapter
from .channel import ChannelType, DeliveryReceipt

logger = logging.getLogger(__name__)

# Twilio error codes meaning the number itself cannot receive the message.
INVALID_DESTINATION_CODES: frozenset[int] = frozenset(
    {
        21211,  # invalid 'To' number
        21214,  # 'To' number cannot be reached
        21408,  # region not enabled
        21610,  # recipient unsubscribed
        21612,  # 'To' number not reachable via this 'From'
        21614,  # not a mobile number
    }
)


class TwilioSmsAdapter(IChannelAdapter):
    """
    Twilio SMS implementation.

    Requires twilio library:
    pip install 'credential-reset[twilio]'

    The Twilio client is synchronous; calls run in a worker thread.
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        *,
        client: Any | None = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            try:
                from twilio.rest import Client as TwilioClient
            except ImportError as e:
                raise ImportError(
                    "twilio is required for TwilioSmsAdapter. "
                    "Install with: pip install 'credential-reset[twilio]'"
                ) from e
            self._client = TwilioClient(self.account_sid, self.auth_token)
        return self._client

    async def send(
        self,
        channel: ChannelType,
        destination: str,
        text: str,
    ) -> DeliveryReceipt:
        if channel is not ChannelType.SMS:
            raise ValueError(f"TwilioSmsAdapter does not support {channel}")

        try:
            from twilio.base.exceptions import TwilioRestException
        except ImportError as e:
            raise ImportError(
                "twilio is required for TwilioSmsAdapter. "
                "Install with: pip install 'credential-reset[twilio]'"
            ) from e

        client = self._get_client()
        try:
            message = await asyncio.to_thread(
                client.messages.create,
                to=destination,
                from_=self.from_number,
                body=text,
            )
        except TwilioRestException as e:
            logger.warning(
                "Twilio rejected SMS to %s (status=%s, code=%s)",
                mask_phone(destination),
                e.status,
                e.code,
            )
            if e.code in INVALID_DESTINATION_CODES:
                raise InvalidDestinationError("sms", f"twilio code {e.code}") from e
            raise ChannelUnavailableError("sms", f"twilio status {e.status}") from e
        except (OSError, ConnectionError) as e:
            logger.warning("Twilio unreachable: %s", type(e).__name__)
            raise ChannelUnavailableError("sms", type(e).__name__) from e

        logger.info("SMS sent via Twilio to %s (SID: %s)", mask_phone(destination), message.sid)
        return DeliveryReceipt.sent(channel, destination, provider_id=message.sid)


__all__: list[str] = ["TwilioSmsAdapter", "INVALID_DESTINATION_CODES"]
