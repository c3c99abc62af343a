"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from credential_reset.audit.memory import InMemoryAuditSink
from credential_reset.config import ResetConfig
from credential_reset.delivery.channel import ChannelType
from credential_reset.delivery.dispatcher import DeliveryDispatcher
from credential_reset.delivery.memory import InMemoryChannelAdapter
from credential_reset.engine import ResetWorkflowEngine
from credential_reset.identity import InMemoryIdentityProvider
from credential_reset.otp import OtpGenerator
from credential_reset.policy import PasswordPolicy
from credential_reset.ports import ContactInfo
from credential_reset.ratelimit.memory import InMemoryRateLimiter
from credential_reset.ratelimit.policy import RateLimitPolicy
from credential_reset.retry import RetryPolicy
from credential_reset.store.memory import InMemorySecretRecordStore
from credential_reset.vault import PendingCredentialVault

HMAC_KEY = b"test-hmac-key"
PHONE = "+14155550123"
EMAIL = "alice@example.com"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FixedCodeGenerator(OtpGenerator):
    """OtpGenerator that issues a known code."""

    def __init__(self, key: bytes, code: str = "123456") -> None:
        super().__init__(key)
        self.code = code

    def _random_code(self, length: int, alphabet: str) -> str:
        return self.code[:length]


def no_wait_retry(max_attempts: int = 3) -> RetryPolicy:
    return RetryPolicy(max_attempts=max_attempts, base_delay=0.0, max_delay=0.0, jitter=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> ResetConfig:
    return ResetConfig(hmac_key=HMAC_KEY, password_policy=PasswordPolicy(min_length=12))


@pytest.fixture
def contact() -> ContactInfo:
    return ContactInfo(
        subject_id="user1",
        phone=PHONE,
        email=EMAIL,
        identifiers=("alice",),
    )


@pytest.fixture
def identity(contact: ContactInfo) -> InMemoryIdentityProvider:
    return InMemoryIdentityProvider(contact)


@pytest.fixture
def channel() -> InMemoryChannelAdapter:
    return InMemoryChannelAdapter()


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def codes() -> FixedCodeGenerator:
    """Generator behind ``make_engine``; set ``.code`` to change the next code."""
    return FixedCodeGenerator(HMAC_KEY)


@pytest.fixture
def vault(clock: FakeClock) -> PendingCredentialVault:
    return PendingCredentialVault(clock)


@pytest.fixture
def make_engine(
    clock: FakeClock,
    identity: InMemoryIdentityProvider,
    channel: InMemoryChannelAdapter,
    audit_sink: InMemoryAuditSink,
    codes: FixedCodeGenerator,
    vault: PendingCredentialVault,
) -> Callable[..., ResetWorkflowEngine]:
    """Build an engine on in-memory collaborators.

    Keyword arguments override ``ResetConfig`` fields; ``code`` sets the
    code the generator issues.
    """

    def _make(code: str = "123456", **overrides: Any) -> ResetWorkflowEngine:
        codes.code = code
        overrides.setdefault("password_policy", PasswordPolicy(min_length=12))
        config = ResetConfig(hmac_key=HMAC_KEY, **overrides)
        retry = no_wait_retry(config.retry_max_attempts)
        return ResetWorkflowEngine(
            config,
            store=InMemorySecretRecordStore(clock=clock),
            rate_limiter=InMemoryRateLimiter(RateLimitPolicy.from_config(config), clock=clock),
            dispatcher=DeliveryDispatcher(
                {ChannelType.SMS: channel, ChannelType.EMAIL: channel},
                retry_policy=retry,
            ),
            identity_provider=identity,
            audit_sink=audit_sink,
            generator=codes,
            vault=vault,
            clock=clock,
            retry_policy=retry,
        )

    return _make


@pytest.fixture
def engine(make_engine: Callable[..., ResetWorkflowEngine]) -> ResetWorkflowEngine:
    return make_engine()
