"""Credential update client.

Wraps the identity provider with bounded retries, per-call deadlines and
failure classification. The idempotency key is derived from the session id,
so every retry of one session's update carries the same key and the
provider performs the update at most once.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import TYPE_CHECKING

from .exceptions import CredentialResetError
from .ports import ContactInfo, UpdateOutcome, UpdateResult
from .retry import RetryPolicy, call_with_retry

if TYPE_CHECKING:
    from .ports import IIdentityProvider

logger = logging.getLogger(__name__)


def derive_idempotency_key(key: bytes, session_id: str) -> str:
    """Stable, non-reversible idempotency key for ``session_id``."""
    digest = hmac.new(key, f"credential-update:{session_id}".encode(), hashlib.sha256)
    return f"reset-{digest.hexdigest()[:40]}"


class CredentialUpdateClient:
    """Identity provider access for the engine.

    ``update_credential`` never raises for provider failures; it returns an
    ``UpdateResult`` classified as SUCCESS, TRANSIENT or PERMANENT.
    ``lookup_contact_info`` propagates typed errors after retries.
    """

    def __init__(
        self,
        provider: IIdentityProvider,
        *,
        key: bytes,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
    ) -> None:
        self.provider = provider
        self._key = key
        self._retry = retry_policy or RetryPolicy()
        self._timeout = timeout

    def idempotency_key(self, session_id: str) -> str:
        return derive_idempotency_key(self._key, session_id)

    async def lookup_contact_info(self, subject_id: str) -> ContactInfo:
        """Contact destinations for ``subject_id``.

        Raises:
            SubjectNotFoundError: No such account.
            ProviderTransientError: Still failing after retries.
            DeadlineExceededError: Still timing out after retries.
        """
        return await call_with_retry(
            lambda: self.provider.lookup_contact_info(subject_id),
            self._retry,
            operation="identity.lookup_contact_info",
            timeout=self._timeout,
        )

    async def update_credential(
        self,
        subject_id: str,
        new_credential: str,
        idempotency_key: str,
    ) -> UpdateResult:
        attempts = 0

        async def _update() -> None:
            nonlocal attempts
            attempts += 1
            await self.provider.update_credential(
                subject_id, new_credential, idempotency_key
            )

        try:
            await call_with_retry(
                _update,
                self._retry,
                operation="identity.update_credential",
                timeout=self._timeout,
            )
        except CredentialResetError as e:
            outcome = UpdateOutcome.TRANSIENT if e.retryable else UpdateOutcome.PERMANENT
            logger.warning(
                "Credential update %s after %d attempt(s): %s",
                outcome.value,
                attempts,
                type(e).__name__,
            )
            return UpdateResult(
                outcome=outcome,
                idempotency_key=idempotency_key,
                detail=f"{type(e).__name__}: {e}",
                attempts=attempts,
            )

        logger.info("Credential updated after %d attempt(s)", attempts)
        return UpdateResult(
            outcome=UpdateOutcome.SUCCESS,
            idempotency_key=idempotency_key,
            attempts=attempts,
        )


__all__: list[str] = ["CredentialUpdateClient", "derive_idempotency_key"]
