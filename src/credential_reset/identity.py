"""In-memory identity provider for testing and development."""

from __future__ import annotations

import hashlib
from collections import deque
from dataclasses import dataclass, replace

from .exceptions import CredentialResetError, SubjectNotFoundError
from .ports import ContactInfo, IIdentityProvider


@dataclass(frozen=True)
class UpdateCall:
    """Record of one applied credential update."""

    subject_id: str
    idempotency_key: str


class InMemoryIdentityProvider(IIdentityProvider):
    """
    Test double (Fake) of an identity provider.

    Applies each idempotency key at most once; ``updates`` lists the
    updates that actually happened and ``calls`` counts every attempt,
    replays included. Failures can be scripted with ``fail_next``.

    Credentials are kept as SHA-256 digests, and each update prepends the
    new digest to the subject's password history.
    """

    def __init__(self, *subjects: ContactInfo) -> None:
        self._subjects: dict[str, ContactInfo] = {s.subject_id: s for s in subjects}
        self._credentials: dict[str, str] = {}
        self._applied_keys: set[str] = set()
        self._failures: deque[CredentialResetError] = deque()
        self._lookup_failures: deque[CredentialResetError] = deque()
        self.updates: list[UpdateCall] = []
        self.calls = 0

    def add_subject(self, contact: ContactInfo) -> None:
        self._subjects[contact.subject_id] = contact

    def fail_next(self, *errors: CredentialResetError) -> None:
        """Queue errors raised by the next ``update_credential`` calls."""
        self._failures.extend(errors)

    def fail_next_lookup(self, *errors: CredentialResetError) -> None:
        self._lookup_failures.extend(errors)

    def credential_digest(self, subject_id: str) -> str | None:
        return self._credentials.get(subject_id)

    def applied(self, idempotency_key: str) -> bool:
        return idempotency_key in self._applied_keys

    async def lookup_contact_info(self, subject_id: str) -> ContactInfo:
        if self._lookup_failures:
            raise self._lookup_failures.popleft()
        contact = self._subjects.get(subject_id)
        if contact is None:
            raise SubjectNotFoundError(subject_id)
        return contact

    async def update_credential(
        self,
        subject_id: str,
        new_credential: str,
        idempotency_key: str,
    ) -> None:
        self.calls += 1
        if self._failures:
            raise self._failures.popleft()
        if subject_id not in self._subjects:
            raise SubjectNotFoundError(subject_id)
        if idempotency_key in self._applied_keys:
            return
        digest = hashlib.sha256(new_credential.encode("utf-8")).hexdigest()
        self._credentials[subject_id] = digest
        contact = self._subjects[subject_id]
        self._subjects[subject_id] = replace(
            contact, password_history=(digest, *contact.password_history)
        )
        self._applied_keys.add(idempotency_key)
        self.updates.append(UpdateCall(subject_id, idempotency_key))


__all__: list[str] = ["InMemoryIdentityProvider", "UpdateCall"]
