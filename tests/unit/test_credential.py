"""Tests for CredentialUpdateClient and the in-memory identity provider."""

from __future__ import annotations

import asyncio
import hashlib

import pytest

from credential_reset.credential import CredentialUpdateClient, derive_idempotency_key
from credential_reset.exceptions import (
    ProviderPermanentError,
    ProviderTransientError,
    SubjectNotFoundError,
)
from credential_reset.identity import InMemoryIdentityProvider, UpdateCall
from credential_reset.ports import ContactInfo, IIdentityProvider, UpdateOutcome
from credential_reset.retry import RetryPolicy


def no_wait(attempts: int = 3) -> RetryPolicy:
    return RetryPolicy(max_attempts=attempts, base_delay=0.0, max_delay=0.0, jitter=False)


@pytest.fixture
def client(identity: InMemoryIdentityProvider) -> CredentialUpdateClient:
    return CredentialUpdateClient(identity, key=b"k", retry_policy=no_wait())


class TestIdempotencyKey:
    def test_stable_per_session(self) -> None:
        assert derive_idempotency_key(b"k", "s1") == derive_idempotency_key(b"k", "s1")

    def test_differs_per_session_and_key(self) -> None:
        assert derive_idempotency_key(b"k", "s1") != derive_idempotency_key(b"k", "s2")
        assert derive_idempotency_key(b"k", "s1") != derive_idempotency_key(b"j", "s1")

    def test_does_not_reveal_session_id(self) -> None:
        key = derive_idempotency_key(b"k", "session-abc")
        assert key.startswith("reset-")
        assert "session-abc" not in key
        assert len(key) == len("reset-") + 40


@pytest.mark.asyncio
class TestCredentialUpdateClient:
    async def test_success(
        self, client: CredentialUpdateClient, identity: InMemoryIdentityProvider
    ) -> None:
        key = client.idempotency_key("s1")
        result = await client.update_credential("user1", "Str0ng!Passw0rd", key)
        assert result.ok
        assert result.outcome is UpdateOutcome.SUCCESS
        assert result.attempts == 1
        assert identity.updates == [UpdateCall("user1", key)]

    async def test_transient_failure_retried(
        self, client: CredentialUpdateClient, identity: InMemoryIdentityProvider
    ) -> None:
        identity.fail_next(ProviderTransientError("503"))
        result = await client.update_credential("user1", "pw", "key-1")
        assert result.ok
        assert result.attempts == 2
        assert identity.calls == 2

    async def test_transient_exhausted(
        self, client: CredentialUpdateClient, identity: InMemoryIdentityProvider
    ) -> None:
        identity.fail_next(*(ProviderTransientError("503") for _ in range(3)))
        result = await client.update_credential("user1", "pw", "key-1")
        assert result.outcome is UpdateOutcome.TRANSIENT
        assert result.attempts == 3
        assert result.detail == "ProviderTransientError: 503"
        assert identity.updates == []

    async def test_permanent_not_retried(
        self, client: CredentialUpdateClient, identity: InMemoryIdentityProvider
    ) -> None:
        identity.fail_next(ProviderPermanentError("account locked"))
        result = await client.update_credential("user1", "pw", "key-1")
        assert result.outcome is UpdateOutcome.PERMANENT
        assert result.attempts == 1
        assert identity.calls == 1

    async def test_timeout_is_transient(self) -> None:
        class SlowProvider(InMemoryIdentityProvider):
            async def update_credential(self, subject_id, new_credential, idempotency_key):
                await asyncio.sleep(1)

        slow = SlowProvider()
        client = CredentialUpdateClient(slow, key=b"k", retry_policy=no_wait(1), timeout=0.01)
        result = await client.update_credential("user1", "pw", "key-1")
        assert result.outcome is UpdateOutcome.TRANSIENT
        assert result.detail.startswith("DeadlineExceededError")

    async def test_lookup_retries_then_returns(
        self, client: CredentialUpdateClient, identity: InMemoryIdentityProvider
    ) -> None:
        identity.fail_next_lookup(ProviderTransientError("503"))
        contact = await client.lookup_contact_info("user1")
        assert contact.subject_id == "user1"

    async def test_lookup_unknown_subject(self, client: CredentialUpdateClient) -> None:
        with pytest.raises(SubjectNotFoundError):
            await client.lookup_contact_info("ghost")


@pytest.mark.asyncio
class TestInMemoryIdentityProvider:
    async def test_satisfies_port(self, identity: InMemoryIdentityProvider) -> None:
        assert isinstance(identity, IIdentityProvider)

    async def test_same_key_applied_once(self, identity: InMemoryIdentityProvider) -> None:
        await identity.update_credential("user1", "first-password", "key-1")
        await identity.update_credential("user1", "second-password", "key-1")
        assert len(identity.updates) == 1
        assert identity.calls == 2
        assert identity.applied("key-1")
        expected = hashlib.sha256(b"first-password").hexdigest()
        assert identity.credential_digest("user1") == expected

    async def test_update_extends_history(self, identity: InMemoryIdentityProvider) -> None:
        await identity.update_credential("user1", "first-password", "key-1")
        contact = await identity.lookup_contact_info("user1")
        assert contact.password_history[0] == hashlib.sha256(b"first-password").hexdigest()

    async def test_unknown_subject(self, identity: InMemoryIdentityProvider) -> None:
        with pytest.raises(SubjectNotFoundError):
            await identity.update_credential("ghost", "pw", "key-1")

    async def test_add_subject(self, identity: InMemoryIdentityProvider) -> None:
        identity.add_subject(ContactInfo(subject_id="bob", email="bob@example.com"))
        contact = await identity.lookup_contact_info("bob")
        assert contact.masked_email == "b**@example.com"
