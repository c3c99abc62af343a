"""Tests for the password policy validator."""

from __future__ import annotations

import hashlib

import pytest

from credential_reset.policy import (
    CONTAINS_IDENTIFIER,
    DIGIT,
    LOWERCASE,
    MAX_LENGTH,
    MIN_LENGTH,
    RECENTLY_USED,
    SYMBOL,
    UPPERCASE,
    PasswordPolicy,
    SubjectContext,
    validate,
)


def sha(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()


@pytest.fixture
def subject() -> SubjectContext:
    return SubjectContext(subject_id="user1", identifiers=("alice",))


@pytest.fixture
def strict() -> PasswordPolicy:
    return PasswordPolicy(
        min_length=12, min_uppercase=1, min_lowercase=1, min_digits=1, min_symbols=1
    )


class TestLengthRules:
    def test_short_candidate_reports_min_length_only(self, subject: SubjectContext) -> None:
        result = validate("short", subject, PasswordPolicy(min_length=12))
        assert not result.ok
        assert result.violations == (MIN_LENGTH,)

    def test_strong_candidate_passes(self, subject: SubjectContext) -> None:
        result = validate("Str0ng!Passw0rd", subject, PasswordPolicy(min_length=12))
        assert result.ok
        assert result.violations == ()

    def test_max_length(self, subject: SubjectContext) -> None:
        policy = PasswordPolicy(min_length=4, max_length=8)
        assert validate("x" * 9, subject, policy).violations == (MAX_LENGTH,)

    def test_default_policy(self, subject: SubjectContext) -> None:
        assert validate("short", subject).violations == (MIN_LENGTH,)


class TestCharacterClasses:
    def test_reports_every_violation(
        self, subject: SubjectContext, strict: PasswordPolicy
    ) -> None:
        result = validate("abc", subject, strict)
        assert result.violations == (MIN_LENGTH, UPPERCASE, DIGIT, SYMBOL)

    def test_lowercase_rule(self, subject: SubjectContext, strict: PasswordPolicy) -> None:
        assert LOWERCASE in validate("ABCDEFGH1234!", subject, strict).violations

    def test_compliant(self, subject: SubjectContext, strict: PasswordPolicy) -> None:
        assert validate("Str0ng!Passw0rd", subject, strict).ok

    def test_unicode_symbol_counts(self, subject: SubjectContext) -> None:
        policy = PasswordPolicy(min_length=4, min_symbols=1)
        assert validate("abcd€efg", subject, policy).ok


class TestIdentifierRule:
    def test_subject_id_substring(self, subject: SubjectContext) -> None:
        result = validate("myUSER1password!", subject)
        assert CONTAINS_IDENTIFIER in result.violations

    def test_extra_identifier_case_insensitive(self, subject: SubjectContext) -> None:
        result = validate("ALICE-in-wonderland", subject)
        assert result.violations == (CONTAINS_IDENTIFIER,)

    def test_short_identifiers_ignored(self) -> None:
        subject = SubjectContext(subject_id="ab")
        assert validate("abcdefghijklmn", subject).ok

    def test_rule_can_be_disabled(self, subject: SubjectContext) -> None:
        policy = PasswordPolicy(reject_subject_id=False)
        assert validate("alice-in-wonderland", subject, policy).ok


class TestHistoryRule:
    def test_recent_password_rejected(self) -> None:
        subject = SubjectContext(
            subject_id="user1", password_history=(sha("other-password"), sha("Str0ng!Passw0rd"))
        )
        assert validate("Str0ng!Passw0rd", subject).violations == (RECENTLY_USED,)

    def test_history_beyond_depth_ignored(self) -> None:
        history = tuple(sha(f"old-{i}") for i in range(3)) + (sha("Str0ng!Passw0rd"),)
        subject = SubjectContext(subject_id="user1", password_history=history)
        assert validate("Str0ng!Passw0rd", subject, PasswordPolicy(history_depth=3)).ok

    def test_custom_matcher(self) -> None:
        subject = SubjectContext(
            subject_id="user1",
            password_history=("plain:Str0ng!Passw0rd",),
            history_matcher=lambda candidate, stored: stored == f"plain:{candidate}",
        )
        assert validate("Str0ng!Passw0rd", subject).violations == (RECENTLY_USED,)

    def test_all_entries_checked(self) -> None:
        seen: list[str] = []

        def matcher(candidate: str, stored: str) -> bool:
            seen.append(stored)
            return stored == "a"

        subject = SubjectContext(
            subject_id="user1", password_history=("a", "b", "c"), history_matcher=matcher
        )
        validate("Str0ng!Passw0rd", subject)
        assert seen == ["a", "b", "c"]


class TestDeterminism:
    def test_same_input_same_result(
        self, subject: SubjectContext, strict: PasswordPolicy
    ) -> None:
        assert validate("weak", subject, strict) == validate("weak", subject, strict)


class TestMessages:
    def test_messages_follow_violations(self, subject: SubjectContext) -> None:
        policy = PasswordPolicy(min_length=12)
        result = validate("short", subject, policy)
        assert result.messages(policy) == ["Use at least 12 characters."]


class TestPolicyValidation:
    def test_max_below_min(self) -> None:
        with pytest.raises(ValueError):
            PasswordPolicy(min_length=10, max_length=5)

    def test_negative_class_minimum(self) -> None:
        with pytest.raises(ValueError):
            PasswordPolicy(min_digits=-1)

    def test_zero_min_length(self) -> None:
        with pytest.raises(ValueError):
            PasswordPolicy(min_length=0)
