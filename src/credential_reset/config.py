"""Engine configuration.

``ResetConfig`` is the immutable value the engine and its components read.
``ResetSettings`` loads the same values (plus backend credentials) from the
environment and turns them into a ``ResetConfig``.
"""

from __future__ import annotations

import math
import string
from dataclasses import dataclass, field

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .policy import PasswordPolicy


@dataclass(frozen=True)
class ResetConfig:
    """Verification and reset tunables.

    Attributes:
        hmac_key: Server-side key mixed into every code, token and
            credential fingerprint.
        code_length: Number of symbols in an issued code.
        code_alphabet: Symbols a code is drawn from.
        code_ttl_seconds: Lifetime of an issued code.
        max_code_attempts: Wrong submissions allowed against one code.
        reset_token_ttl_seconds: Lifetime of the reset token.
        session_ttl_seconds: Lifetime of a non-terminal session record.
        closed_session_ttl_seconds: How long a terminal session is kept so
            replays can be answered.
        issue_limit: Codes a subject may be sent per ``issue_window_seconds``.
        issue_window_seconds: Sliding window for ``issue_limit``.
        issue_cooldown_seconds: Minimum gap between two sends (0 disables).
        max_verify_failures: Wrong submissions allowed per session across
            re-issued codes.
        retry_max_attempts: Attempts for retryable infrastructure calls.
        retry_base_delay: First backoff delay in seconds.
        retry_max_delay: Backoff cap in seconds.
        call_timeout_seconds: Default deadline for one store/provider call.
        namespace: Key prefix in the secret record store.
        password_policy: Rules for new credentials.
    """

    hmac_key: bytes
    code_length: int = 6
    code_alphabet: str = string.digits
    code_ttl_seconds: int = 600  # 10 minutes
    max_code_attempts: int = 5
    reset_token_ttl_seconds: int = 180  # 3 minutes
    session_ttl_seconds: int = 900
    closed_session_ttl_seconds: int = 900
    issue_limit: int = 5
    issue_window_seconds: int = 900
    issue_cooldown_seconds: int = 0
    max_verify_failures: int = 10
    retry_max_attempts: int = 3
    retry_base_delay: float = 0.05
    retry_max_delay: float = 1.0
    call_timeout_seconds: float = 5.0
    namespace: str = "credential_reset"
    password_policy: PasswordPolicy = field(default_factory=PasswordPolicy)

    def __post_init__(self) -> None:
        if not self.hmac_key:
            raise ValueError("hmac_key must not be empty")
        if self.code_length < 4:
            raise ValueError("code_length must be >= 4")
        if len(set(self.code_alphabet)) < 2:
            raise ValueError("code_alphabet needs at least 2 distinct symbols")
        for name in (
            "code_ttl_seconds",
            "max_code_attempts",
            "reset_token_ttl_seconds",
            "session_ttl_seconds",
            "closed_session_ttl_seconds",
            "issue_limit",
            "issue_window_seconds",
            "max_verify_failures",
            "retry_max_attempts",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        if self.issue_cooldown_seconds < 0:
            raise ValueError("issue_cooldown_seconds must be >= 0")
        if self.call_timeout_seconds <= 0:
            raise ValueError("call_timeout_seconds must be > 0")
        # Guessing within the attempt ceiling must stay below 1 in 10,000.
        space = math.log10(len(set(self.code_alphabet))) * self.code_length
        if space - math.log10(self.max_code_attempts) < 4:
            raise ValueError(
                "code space too small for max_code_attempts; "
                "use a longer code or fewer attempts"
            )

    @property
    def session_key_prefix(self) -> str:
        return f"{self.namespace}:session"

    @property
    def subject_key_prefix(self) -> str:
        return f"{self.namespace}:subject"


class ResetSettings(BaseSettings):
    """Environment-driven settings (prefix ``CREDENTIAL_RESET_``)."""

    model_config = SettingsConfigDict(
        env_prefix="CREDENTIAL_RESET_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    hmac_key: SecretStr
    code_length: int = 6
    code_alphabet: str = string.digits
    code_ttl_seconds: int = 600
    max_code_attempts: int = 5
    reset_token_ttl_seconds: int = 180
    session_ttl_seconds: int = 900
    closed_session_ttl_seconds: int = 900
    issue_limit: int = 5
    issue_window_seconds: int = 900
    issue_cooldown_seconds: int = 0
    max_verify_failures: int = 10
    retry_max_attempts: int = 3
    retry_base_delay: float = 0.05
    retry_max_delay: float = 1.0
    call_timeout_seconds: float = 5.0
    namespace: str = "credential_reset"

    # Password policy
    password_min_length: int = 12
    password_max_length: int = 128
    password_min_uppercase: int = 0
    password_min_lowercase: int = 0
    password_min_digits: int = 0
    password_min_symbols: int = 0
    password_reject_subject_id: bool = True
    password_history_depth: int = 5

    # Backends; empty means in-memory / not configured
    redis_url: str = ""
    twilio_account_sid: str = ""
    twilio_auth_token: SecretStr = SecretStr("")
    twilio_from_number: str = ""
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: SecretStr = SecretStr("")
    smtp_from_email: str = ""
    smtp_use_tls: bool = True
    log_audit_events: bool = Field(default=True)

    def to_policy(self) -> PasswordPolicy:
        return PasswordPolicy(
            min_length=self.password_min_length,
            max_length=self.password_max_length,
            min_uppercase=self.password_min_uppercase,
            min_lowercase=self.password_min_lowercase,
            min_digits=self.password_min_digits,
            min_symbols=self.password_min_symbols,
            reject_subject_id=self.password_reject_subject_id,
            history_depth=self.password_history_depth,
        )

    def to_config(self) -> ResetConfig:
        """Build the immutable engine configuration."""
        return ResetConfig(
            hmac_key=self.hmac_key.get_secret_value().encode("utf-8"),
            code_length=self.code_length,
            code_alphabet=self.code_alphabet,
            code_ttl_seconds=self.code_ttl_seconds,
            max_code_attempts=self.max_code_attempts,
            reset_token_ttl_seconds=self.reset_token_ttl_seconds,
            session_ttl_seconds=self.session_ttl_seconds,
            closed_session_ttl_seconds=self.closed_session_ttl_seconds,
            issue_limit=self.issue_limit,
            issue_window_seconds=self.issue_window_seconds,
            issue_cooldown_seconds=self.issue_cooldown_seconds,
            max_verify_failures=self.max_verify_failures,
            retry_max_attempts=self.retry_max_attempts,
            retry_base_delay=self.retry_base_delay,
            retry_max_delay=self.retry_max_delay,
            call_timeout_seconds=self.call_timeout_seconds,
            namespace=self.namespace,
            password_policy=self.to_policy(),
        )


__all__: list[str] = ["ResetConfig", "ResetSettings"]
