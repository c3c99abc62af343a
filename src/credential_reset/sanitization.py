"""Secret sanitization: keeps codes, tokens and credentials out of audit and logs."""

from __future__ import annotations

import hashlib
from collections.abc import Callable
from typing import Any

from .masking import mask_email, mask_phone

REDACTED = "***"

SECRET_FIELDS: frozenset[str] = frozenset(
    {
        "password",
        "passphrase",
        "credential",
        "new_credential",
        "candidate",
        "code",
        "otp",
        "secret",
        "token",
        "reset_token",
        "code_hash",
        "reset_token_hash",
        "credential_fingerprint",
        "salt",
        "hmac_key",
        "api_key",
        "authorization",
        "auth_token",
    }
)


def _redact(value: Any) -> str:
    return REDACTED


def _fingerprint(value: Any) -> str:
    return "sha256:" + hashlib.sha256(str(value).encode("utf-8")).hexdigest()


def _contact(mask: Callable[[str], str]) -> Callable[[Any], Any]:
    def apply(value: Any) -> Any:
        # Values that already carry a mask came from ContactInfo.
        if not isinstance(value, str) or "*" in value:
            return value
        return mask(value)

    return apply


class SecretSanitizer:
    """
    Sanitizes audit metadata before it reaches a sink.

    Each field name (case-insensitive, at any nesting depth) maps to one
    action: secrets are redacted, ``hash_fields`` become a SHA-256
    fingerprint, and ``phone``/``email`` are masked rather than dropped so
    investigators can still tell which destination was used.
    """

    def __init__(
        self,
        *,
        secret_fields: set[str] | None = None,
        redact_fields: set[str] | None = None,
        hash_fields: set[str] | None = None,
    ) -> None:
        actions: dict[str, Callable[[Any], Any]] = {
            "phone": _contact(mask_phone),
            "email": _contact(mask_email),
        }
        actions.update({name.lower(): _fingerprint for name in hash_fields or ()})
        redacted = set(secret_fields or SECRET_FIELDS) | set(redact_fields or ())
        actions.update({name.lower(): _redact for name in redacted})
        self._actions = actions

    def sanitize(self, metadata: dict[str, Any]) -> dict[str, Any]:
        """Return a sanitized copy of metadata safe for audit/logs."""
        return {str(key): self._clean(str(key).lower(), value) for key, value in metadata.items()}

    def _clean(self, name: str, value: Any) -> Any:
        if isinstance(value, dict):
            return self.sanitize(value)
        if isinstance(value, (list, tuple)):
            return [self._clean(name, item) for item in value]
        action = self._actions.get(name)
        if value is None or action is None:
            return value
        return action(value)


default_sanitizer = SecretSanitizer()

__all__: list[str] = ["SecretSanitizer", "default_sanitizer", "SECRET_FIELDS"]
