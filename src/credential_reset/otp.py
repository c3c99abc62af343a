"""One-time code and reset-token generation.

Codes are drawn from the operating system CSPRNG via ``secrets``. Only a
keyed, salted HMAC of a code is ever handed to storage; the plaintext goes
straight to delivery and is then dropped.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import string
from dataclasses import dataclass

from .exceptions import EntropySourceUnavailableError

DEFAULT_ALPHABET = string.digits


@dataclass(frozen=True)
class IssuedCode:
    """A freshly generated code.

    Attributes:
        plaintext: The code to deliver. Never persist or log it.
        code_hash: Hex HMAC-SHA256 of the code under the session salt.
        salt: Hex salt the hash was computed with.
    """

    plaintext: str
    code_hash: str
    salt: str

    def __repr__(self) -> str:
        return f"IssuedCode(code_hash={self.code_hash[:8]}..., salt={self.salt[:8]}...)"


def _token_bytes(size: int) -> bytes:
    try:
        return secrets.token_bytes(size)
    except (NotImplementedError, OSError) as e:
        raise EntropySourceUnavailableError(
            "Secure random source unavailable"
        ) from e


def keyed_hash(key: bytes, salt: str, value: str) -> str:
    """HMAC-SHA256 of ``value`` under ``key``, bound to ``salt``."""
    message = f"{salt}:{value}".encode()
    return hmac.new(key, message, hashlib.sha256).hexdigest()


def constant_time_equals(left: str, right: str) -> bool:
    """Compare two secrets without leaking the matching prefix length."""
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))


class OtpGenerator:
    """Generates codes and their salted hashes.

    Example:
        ```python
        generator = OtpGenerator(key=b"server-secret")
        issued = generator.issue(6, "0123456789", salt=session_id)
        # deliver issued.plaintext, persist issued.code_hash
        assert generator.matches("123456", issued.code_hash, issued.salt) is False
        ```
    """

    def __init__(self, key: bytes) -> None:
        if not key:
            raise ValueError("key must not be empty")
        self._key = key

    def _random_code(self, length: int, alphabet: str) -> str:
        symbols = "".join(dict.fromkeys(alphabet))
        try:
            return "".join(secrets.choice(symbols) for _ in range(length))
        except (NotImplementedError, OSError) as e:
            raise EntropySourceUnavailableError(
                "Secure random source unavailable"
            ) from e

    def new_salt(self) -> str:
        return _token_bytes(16).hex()

    def issue(
        self,
        length: int = 6,
        alphabet: str = DEFAULT_ALPHABET,
        *,
        salt: str | None = None,
    ) -> IssuedCode:
        """Generate a code of ``length`` symbols from ``alphabet``.

        Args:
            length: Number of symbols.
            alphabet: Symbols to draw from; duplicates are ignored.
            salt: Per-session salt; a random one is drawn when omitted.

        Raises:
            EntropySourceUnavailableError: If the CSPRNG cannot be read.
        """
        if length < 1:
            raise ValueError("length must be >= 1")
        if len(set(alphabet)) < 2:
            raise ValueError("alphabet needs at least 2 distinct symbols")
        salt = salt or self.new_salt()
        plaintext = self._random_code(length, alphabet)
        return IssuedCode(
            plaintext=plaintext,
            code_hash=keyed_hash(self._key, salt, plaintext),
            salt=salt,
        )

    def hash(self, value: str, salt: str) -> str:
        return keyed_hash(self._key, salt, value)

    def matches(self, candidate: str, code_hash: str, salt: str) -> bool:
        """Constant-time check of ``candidate`` against a stored hash."""
        return constant_time_equals(self.hash(candidate, salt), code_hash)

    def new_token(self) -> str:
        """Opaque URL-safe secret for reset tokens."""
        try:
            return secrets.token_urlsafe(32)
        except (NotImplementedError, OSError) as e:
            raise EntropySourceUnavailableError(
                "Secure random source unavailable"
            ) from e

    def new_session_id(self) -> str:
        return _token_bytes(18).hex()


__all__: list[str] = [
    "IssuedCode",
    "OtpGenerator",
    "keyed_hash",
    "constant_time_equals",
    "DEFAULT_ALPHABET",
]
