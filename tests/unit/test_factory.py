"""Tests for build_engine and build_adapters."""

from __future__ import annotations

import re
from unittest.mock import AsyncMock

import pytest

from credential_reset.audit.logger import LoggingAuditSink
from credential_reset.audit.memory import InMemoryAuditSink
from credential_reset.config import ResetSettings
from credential_reset.delivery.channel import ChannelType
from credential_reset.delivery.memory import ConsoleChannelAdapter, InMemoryChannelAdapter
from credential_reset.delivery.smtp import SmtpEmailAdapter
from credential_reset.delivery.twilio import TwilioSmsAdapter
from credential_reset.factory import build_adapters, build_engine
from credential_reset.ratelimit.memory import InMemoryRateLimiter
from credential_reset.ratelimit.redis import RedisRateLimiter
from credential_reset.results import ResultStatus
from credential_reset.store.memory import InMemorySecretRecordStore
from credential_reset.store.redis import RedisSecretRecordStore


def settings(**values) -> ResetSettings:
    values.setdefault("hmac_key", "factory-key")
    return ResetSettings(_env_file=None, **values)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("REDIS_URL", "TWILIO_ACCOUNT_SID", "SMTP_HOST", "LOG_AUDIT_EVENTS"):
        monkeypatch.delenv(f"CREDENTIAL_RESET_{name}", raising=False)


class TestBuildAdapters:
    def test_console_fallback(self, caplog):
        adapters = build_adapters(settings())
        assert set(adapters) == set(ChannelType)
        assert all(isinstance(a, ConsoleChannelAdapter) for a in adapters.values())
        assert "console output" in caplog.text

    def test_twilio_when_configured(self):
        adapters = build_adapters(
            settings(
                twilio_account_sid="AC123",
                twilio_auth_token="token",
                twilio_from_number="+15550000000",
            )
        )
        sms = adapters[ChannelType.SMS]
        assert isinstance(sms, TwilioSmsAdapter)
        assert sms.auth_token == "token"
        assert ChannelType.EMAIL not in adapters

    def test_smtp_when_configured(self):
        adapters = build_adapters(
            settings(smtp_host="smtp.example.com", smtp_from_email="noreply@example.com")
        )
        email = adapters[ChannelType.EMAIL]
        assert isinstance(email, SmtpEmailAdapter)
        assert email.host == "smtp.example.com"
        assert email.port == 587
        assert ChannelType.SMS not in adapters


class TestBuildEngine:
    def test_in_memory_backends_without_redis(self, identity):
        engine = build_engine(settings(), identity_provider=identity)
        assert isinstance(engine.sessions._store, InMemorySecretRecordStore)
        assert isinstance(engine._limiter, InMemoryRateLimiter)
        assert isinstance(engine._audit.sink, LoggingAuditSink)
        assert engine.config.hmac_key == b"factory-key"

    def test_redis_backends_with_client(self, identity):
        client = AsyncMock()
        engine = build_engine(settings(), identity_provider=identity, redis_client=client)
        assert isinstance(engine.sessions._store, RedisSecretRecordStore)
        assert isinstance(engine._limiter, RedisRateLimiter)

    def test_audit_sink_when_logging_disabled(self, identity):
        engine = build_engine(settings(log_audit_events=False), identity_provider=identity)
        assert isinstance(engine._audit.sink, InMemoryAuditSink)

    def test_settings_flow_into_config(self, identity):
        engine = build_engine(
            settings(max_code_attempts=4, password_min_length=16),
            identity_provider=identity,
        )
        assert engine.config.max_code_attempts == 4
        assert engine.config.password_policy.min_length == 16

    @pytest.mark.asyncio
    async def test_built_engine_runs_a_reset(self, identity, clock, audit_sink):
        channel = InMemoryChannelAdapter()
        engine = build_engine(
            settings(),
            identity_provider=identity,
            audit_sink=audit_sink,
            adapters={ChannelType.SMS: channel},
            clock=clock,
        )
        issued = await engine.request_code("user1", "sms")
        assert issued.status is ResultStatus.ISSUED
        code = re.search(r"code is (\d+)", channel.last_message.text).group(1)
        verified = await engine.submit_code(issued.session_id, code)
        assert verified.status is ResultStatus.VERIFIED
        accepted = await engine.submit_new_credential(issued.session_id, "Str0ng!Passw0rd")
        assert accepted.status is ResultStatus.ACCEPTED
        done = await engine.confirm_and_execute(issued.session_id)
        assert done.status is ResultStatus.COMPLETED
        assert len(identity.updates) == 1
