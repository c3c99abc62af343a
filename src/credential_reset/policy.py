"""Password policy validation.

``validate`` is pure and deterministic: the same candidate, policy and
subject context always produce the same result. It reports every violated
rule at once so the front end can show complete guidance.
"""

from __future__ import annotations

import hashlib
import hmac
import string
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

# Violation codes, in the order rules are evaluated.
MIN_LENGTH = "min_length"
MAX_LENGTH = "max_length"
UPPERCASE = "uppercase"
LOWERCASE = "lowercase"
DIGIT = "digit"
SYMBOL = "symbol"
CONTAINS_IDENTIFIER = "contains_identifier"
RECENTLY_USED = "recently_used"

_MESSAGES: dict[str, str] = {
    MIN_LENGTH: "Use at least {min_length} characters.",
    MAX_LENGTH: "Use at most {max_length} characters.",
    UPPERCASE: "Include at least {min_uppercase} uppercase letter(s).",
    LOWERCASE: "Include at least {min_lowercase} lowercase letter(s).",
    DIGIT: "Include at least {min_digits} digit(s).",
    SYMBOL: "Include at least {min_symbols} symbol(s).",
    CONTAINS_IDENTIFIER: "Do not include your username or account identifier.",
    RECENTLY_USED: "Do not reuse one of your recent passwords.",
}


def sha256_history_matcher(candidate: str, stored: str) -> bool:
    """Default history matcher for hex SHA-256 history entries."""
    digest = hashlib.sha256(candidate.encode("utf-8")).hexdigest()
    return hmac.compare_digest(digest, stored)


@dataclass(frozen=True)
class PasswordPolicy:
    """Complexity and reuse rules.

    A ``min_*`` count of 0 disables that character-class rule.
    """

    min_length: int = 12
    max_length: int = 128
    min_uppercase: int = 0
    min_lowercase: int = 0
    min_digits: int = 0
    min_symbols: int = 0
    reject_subject_id: bool = True
    history_depth: int = 5

    def __post_init__(self) -> None:
        if self.min_length < 1:
            raise ValueError("min_length must be >= 1")
        if self.max_length < self.min_length:
            raise ValueError("max_length must be >= min_length")
        if min(
            self.min_uppercase, self.min_lowercase, self.min_digits, self.min_symbols
        ) < 0:
            raise ValueError("character class minimums must be >= 0")
        if self.history_depth < 0:
            raise ValueError("history_depth must be >= 0")

    def describe(self, code: str) -> str:
        """Human-readable guidance for a violation code."""
        return _MESSAGES[code].format(
            min_length=self.min_length,
            max_length=self.max_length,
            min_uppercase=self.min_uppercase,
            min_lowercase=self.min_lowercase,
            min_digits=self.min_digits,
            min_symbols=self.min_symbols,
        )


@dataclass(frozen=True)
class SubjectContext:
    """What the validator may know about the account.

    Attributes:
        subject_id: Account identifier; must not appear in the candidate.
        identifiers: Other account identifiers (username, email local part).
        password_history: Recent credential hashes, newest first, as
            supplied by the identity provider.
        history_matcher: Compares a candidate to one history entry.
    """

    subject_id: str
    identifiers: tuple[str, ...] = ()
    password_history: Sequence[str] = ()
    history_matcher: Callable[[str, str], bool] = field(
        default=sha256_history_matcher, compare=False
    )


@dataclass(frozen=True)
class PolicyResult:
    """Outcome of a validation run."""

    ok: bool
    violations: tuple[str, ...] = ()

    def messages(self, policy: PasswordPolicy) -> list[str]:
        return [policy.describe(code) for code in self.violations]


def _count(candidate: str, predicate: Callable[[str], bool]) -> int:
    return sum(1 for ch in candidate if predicate(ch))


def _is_symbol(ch: str) -> bool:
    return ch in string.punctuation or (not ch.isalnum() and not ch.isspace())


def validate(
    candidate: str,
    subject: SubjectContext,
    policy: PasswordPolicy | None = None,
) -> PolicyResult:
    """Validate ``candidate`` against ``policy`` for ``subject``.

    Returns:
        PolicyResult with every violation code, not just the first.
    """
    policy = policy or PasswordPolicy()
    violations: list[str] = []

    if len(candidate) < policy.min_length:
        violations.append(MIN_LENGTH)
    if len(candidate) > policy.max_length:
        violations.append(MAX_LENGTH)
    if _count(candidate, str.isupper) < policy.min_uppercase:
        violations.append(UPPERCASE)
    if _count(candidate, str.islower) < policy.min_lowercase:
        violations.append(LOWERCASE)
    if _count(candidate, str.isdigit) < policy.min_digits:
        violations.append(DIGIT)
    if _count(candidate, _is_symbol) < policy.min_symbols:
        violations.append(SYMBOL)

    if policy.reject_subject_id:
        lowered = candidate.lower()
        names = (subject.subject_id, *subject.identifiers)
        # Identifiers shorter than 3 characters would match almost anything.
        if any(len(n) >= 3 and n.lower() in lowered for n in names):
            violations.append(CONTAINS_IDENTIFIER)

    if policy.history_depth:
        recent = list(subject.password_history)[: policy.history_depth]
        # No short-circuit: every entry is checked.
        matches = [subject.history_matcher(candidate, entry) for entry in recent]
        if any(matches):
            violations.append(RECENTLY_USED)

    return PolicyResult(ok=not violations, violations=tuple(violations))


__all__: list[str] = [
    "PasswordPolicy",
    "SubjectContext",
    "PolicyResult",
    "validate",
    "sha256_history_matcher",
    "MIN_LENGTH",
    "MAX_LENGTH",
    "UPPERCASE",
    "LOWERCASE",
    "DIGIT",
    "SYMBOL",
    "CONTAINS_IDENTIFIER",
    "RECENTLY_USED",
]
