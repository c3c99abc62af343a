"""Rate limit policy shared by the limiter backends."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import ResetConfig


@dataclass(frozen=True)
class RateLimitPolicy:
    """Issuance and verification ceilings.

    Attributes:
        issue_limit: Codes per subject within ``issue_window_seconds``.
        issue_window_seconds: Sliding window length.
        issue_cooldown_seconds: Minimum gap between two sends (0 disables).
        max_verify_failures: Failed submissions allowed per session.
        failure_ttl_seconds: How long a session's failure count is kept.
    """

    issue_limit: int = 5
    issue_window_seconds: int = 900
    issue_cooldown_seconds: int = 0
    max_verify_failures: int = 10
    failure_ttl_seconds: int = 900

    def __post_init__(self) -> None:
        if self.issue_limit < 1 or self.issue_window_seconds < 1:
            raise ValueError("issue_limit and issue_window_seconds must be >= 1")
        if self.issue_cooldown_seconds < 0:
            raise ValueError("issue_cooldown_seconds must be >= 0")
        if self.max_verify_failures < 1 or self.failure_ttl_seconds < 1:
            raise ValueError("max_verify_failures and failure_ttl_seconds must be >= 1")

    @classmethod
    def from_config(cls, config: ResetConfig) -> RateLimitPolicy:
        return cls(
            issue_limit=config.issue_limit,
            issue_window_seconds=config.issue_window_seconds,
            issue_cooldown_seconds=config.issue_cooldown_seconds,
            max_verify_failures=config.max_verify_failures,
            failure_ttl_seconds=config.session_ttl_seconds,
        )


__all__: list[str] = ["RateLimitPolicy"]
