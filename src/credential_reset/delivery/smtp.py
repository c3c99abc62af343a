"""SMTP email adapter."""

from __future__ import annotations

import email.message
import email.policy
import logging

from ..exceptions import ChannelUnavailableError, InvalidDestinationError
from ..masking import mask_email
from ..ports import IChannelAdapter
from .channel import ChannelType, DeliveryReceipt

logger = logging.getLogger(__name__)


class SmtpEmailAdapter(IChannelAdapter):
    """
    Async SMTP email adapter using aiosmtplib.

    A 5xx recipient refusal is an invalid destination; connection errors,
    timeouts and 4xx replies are treated as a temporarily unavailable
    channel.
    """

    def __init__(
        self,
        host: str,
        from_email: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout: float = 10.0,
        subject: str = "Your verification code",
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.from_email = from_email
        self.subject = subject

    def build_message(self, destination: str, text: str) -> email.message.EmailMessage:
        message = email.message.EmailMessage(policy=email.policy.default)
        message["To"] = destination
        message["From"] = self.from_email
        message["Subject"] = self.subject
        message.set_content(text, charset="utf-8")
        return message

    async def send(
        self,
        channel: ChannelType,
        destination: str,
        text: str,
    ) -> DeliveryReceipt:
        if channel is not ChannelType.EMAIL:
            raise ValueError(f"SmtpEmailAdapter does not support {channel}")

        # Lazy import of aiosmtplib
        try:
            import aiosmtplib
        except ImportError as e:
            raise ImportError(
                "aiosmtplib is required for SmtpEmailAdapter. "
                "Install with: pip install 'credential-reset[smtp]'"
            ) from e

        message = self.build_message(destination, text)
        masked = mask_email(destination)
        try:
            async with aiosmtplib.SMTP(
                hostname=self.host,
                port=self.port,
                timeout=self.timeout,
                start_tls=self.use_tls,
            ) as smtp:
                if self.username and self.password:
                    await smtp.login(self.username, self.password)
                await smtp.send_message(message)
        except aiosmtplib.SMTPRecipientsRefused as e:
            codes = [r.code for r in e.recipients]
            logger.warning("SMTP refused recipient %s: %s", masked, codes)
            if codes and all(code >= 500 for code in codes):
                raise InvalidDestinationError("email", f"smtp {codes[0]}") from e
            raise ChannelUnavailableError("email", "recipient temporarily refused") from e
        except aiosmtplib.SMTPException as e:
            logger.warning("SMTP delivery to %s failed: %s", masked, type(e).__name__)
            raise ChannelUnavailableError("email", type(e).__name__) from e
        except OSError as e:
            logger.warning("SMTP server unreachable: %s", type(e).__name__)
            raise ChannelUnavailableError("email", type(e).__name__) from e

        logger.info("Email sent to %s via SMTP", masked)
        return DeliveryReceipt.sent(channel, destination, provider_id="smtp")


__all__: list[str] = ["SmtpEmailAdapter"]
