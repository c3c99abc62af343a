"""Tests for the pending credential vault and message templates."""

from __future__ import annotations

from datetime import timedelta

import pytest

from credential_reset.delivery.channel import ChannelType
from credential_reset.templates import MessageTemplates
from credential_reset.vault import PendingCredentialVault


class TestPendingCredentialVault:
    def test_put_get_discard(self, clock) -> None:
        vault = PendingCredentialVault(clock)
        vault.put("s1", "Str0ng!Passw0rd", clock() + timedelta(seconds=60))
        assert vault.get("s1") == "Str0ng!Passw0rd"
        assert "s1" in vault
        assert len(vault) == 1
        vault.discard("s1")
        vault.discard("s1")
        assert vault.get("s1") is None

    def test_entries_expire(self, clock) -> None:
        vault = PendingCredentialVault(clock)
        vault.put("s1", "pw", clock() + timedelta(seconds=60))
        clock.advance(60)
        assert vault.get("s1") is None
        assert "s1" not in vault

    def test_len_purges(self, clock) -> None:
        vault = PendingCredentialVault(clock)
        vault.put("s1", "pw", clock() + timedelta(seconds=10))
        vault.put("s2", "pw", clock() + timedelta(seconds=100))
        clock.advance(10)
        assert len(vault) == 1

    def test_repr_hides_credential(self, clock) -> None:
        vault = PendingCredentialVault(clock)
        vault.put("s1", "Str0ng!Passw0rd", clock() + timedelta(seconds=60))
        assert "Str0ng" not in repr(vault._entries)

    def test_non_string_membership(self, clock) -> None:
        assert 1 not in PendingCredentialVault(clock)


class TestMessageTemplates:
    def test_render_sms(self) -> None:
        text = MessageTemplates().render(ChannelType.SMS, code="123456", ttl_seconds=600)
        assert text == "Your verification code is 123456. It expires in 10 minutes."

    def test_minutes_never_zero(self) -> None:
        text = MessageTemplates().render(ChannelType.APP, code="123456", ttl_seconds=30)
        assert "valid for 1 min" in text

    def test_every_channel_has_template(self) -> None:
        templates = MessageTemplates()
        for channel in ChannelType:
            assert "{code}" in templates.for_channel(channel)

    def test_custom_template(self) -> None:
        templates = MessageTemplates(sms="Code: {code}")
        assert templates.render(ChannelType.SMS, code="42", ttl_seconds=60) == "Code: 42"

    def test_missing_code_placeholder(self) -> None:
        with pytest.raises(ValueError, match="must contain"):
            MessageTemplates(email="Hello")

    def test_unknown_placeholder(self) -> None:
        with pytest.raises(ValueError, match="Invalid sms template"):
            MessageTemplates(sms="{code} for {user}")
