"""Tests for the Twilio and SMTP channel adapters."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from credential_reset.delivery.channel import ChannelType
from credential_reset.exceptions import ChannelUnavailableError, InvalidDestinationError

PHONE = "+14155550123"
EMAIL = "alice@example.com"


@pytest.mark.asyncio
class TestTwilioSmsAdapter:
    @pytest.fixture(autouse=True)
    def _twilio(self):
        pytest.importorskip("twilio")

    def make_adapter(self, client):
        from credential_reset.delivery.twilio import TwilioSmsAdapter

        return TwilioSmsAdapter("AC123", "token", "+15005550006", client=client)

    async def test_send(self):
        client = MagicMock()
        client.messages.create.return_value = MagicMock(sid="SM123")
        receipt = await self.make_adapter(client).send(ChannelType.SMS, PHONE, "code 1")

        assert receipt.ok
        assert receipt.provider_id == "SM123"
        client.messages.create.assert_called_once_with(
            to=PHONE, from_="+15005550006", body="code 1"
        )

    async def test_invalid_number(self):
        from twilio.base.exceptions import TwilioRestException

        client = MagicMock()
        client.messages.create.side_effect = TwilioRestException(
            400, "/Messages", "not a mobile number", code=21614
        )
        with pytest.raises(InvalidDestinationError):
            await self.make_adapter(client).send(ChannelType.SMS, PHONE, "code 1")

    async def test_provider_outage(self):
        from twilio.base.exceptions import TwilioRestException

        client = MagicMock()
        client.messages.create.side_effect = TwilioRestException(503, "/Messages", "down")
        with pytest.raises(ChannelUnavailableError):
            await self.make_adapter(client).send(ChannelType.SMS, PHONE, "code 1")

    async def test_network_error(self):
        client = MagicMock()
        client.messages.create.side_effect = ConnectionError("reset")
        with pytest.raises(ChannelUnavailableError):
            await self.make_adapter(client).send(ChannelType.SMS, PHONE, "code 1")

    async def test_wrong_channel(self):
        with pytest.raises(ValueError):
            await self.make_adapter(MagicMock()).send(ChannelType.EMAIL, EMAIL, "x")


@pytest.mark.asyncio
class TestSmtpEmailAdapter:
    @pytest.fixture(autouse=True)
    def _aiosmtplib(self):
        pytest.importorskip("aiosmtplib")

    @pytest.fixture
    def smtp(self):
        connection = AsyncMock()
        connection.__aenter__.return_value = connection
        connection.__aexit__.return_value = None
        with patch("aiosmtplib.SMTP", return_value=connection) as factory:
            yield factory, connection

    def make_adapter(self, **kwargs):
        from credential_reset.delivery.smtp import SmtpEmailAdapter

        return SmtpEmailAdapter("smtp.example.com", "noreply@example.com", **kwargs)

    async def test_send(self, smtp):
        factory, connection = smtp
        adapter = self.make_adapter(username="u", password="p")
        receipt = await adapter.send(ChannelType.EMAIL, EMAIL, "Your code is 123456")

        assert receipt.ok
        factory.assert_called_once_with(
            hostname="smtp.example.com", port=587, timeout=10.0, start_tls=True
        )
        connection.login.assert_awaited_once_with("u", "p")
        message = connection.send_message.await_args.args[0]
        assert message["To"] == EMAIL
        assert message["From"] == "noreply@example.com"
        assert "123456" in message.get_content()

    async def test_no_login_without_credentials(self, smtp):
        _, connection = smtp
        await self.make_adapter().send(ChannelType.EMAIL, EMAIL, "hi")
        connection.login.assert_not_called()

    async def test_permanent_refusal(self, smtp):
        import aiosmtplib

        _, connection = smtp
        connection.send_message.side_effect = aiosmtplib.SMTPRecipientsRefused(
            [aiosmtplib.SMTPRecipientRefused(550, "no such user", EMAIL)]
        )
        with pytest.raises(InvalidDestinationError):
            await self.make_adapter().send(ChannelType.EMAIL, EMAIL, "hi")

    async def test_temporary_refusal(self, smtp):
        import aiosmtplib

        _, connection = smtp
        connection.send_message.side_effect = aiosmtplib.SMTPRecipientsRefused(
            [aiosmtplib.SMTPRecipientRefused(451, "try later", EMAIL)]
        )
        with pytest.raises(ChannelUnavailableError):
            await self.make_adapter().send(ChannelType.EMAIL, EMAIL, "hi")

    async def test_server_unreachable(self, smtp):
        _, connection = smtp
        connection.__aenter__.side_effect = OSError("refused")
        with pytest.raises(ChannelUnavailableError):
            await self.make_adapter().send(ChannelType.EMAIL, EMAIL, "hi")

    async def test_wrong_channel(self):
        with pytest.raises(ValueError):
            await self.make_adapter().send(ChannelType.SMS, PHONE, "hi")
