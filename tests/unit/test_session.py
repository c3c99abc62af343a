"""Tests for the verification session model."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from credential_reset.exceptions import IllegalTransitionError
from credential_reset.session import (
    TERMINAL_STATES,
    SessionState,
    VerificationSession,
    can_transition,
)

NOW = datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)


def make_session(**overrides) -> VerificationSession:
    data = {
        "session_id": "s1",
        "subject_id": "user1",
        "state": SessionState.INITIATED,
        "created_at": NOW,
        "updated_at": NOW,
        "expires_at": NOW + timedelta(minutes=15),
    }
    data.update(overrides)
    return VerificationSession(**data)


class TestTransitionTable:
    @pytest.mark.parametrize(
        "from_state,to_state",
        [
            (SessionState.INITIATED, SessionState.CODE_ISSUED),
            (SessionState.CODE_ISSUED, SessionState.CODE_ISSUED),
            (SessionState.CODE_ISSUED, SessionState.VERIFIED),
            (SessionState.VERIFIED, SessionState.PASSWORD_COLLECTED),
            (SessionState.PASSWORD_COLLECTED, SessionState.COMPLETED),
            (SessionState.PASSWORD_COLLECTED, SessionState.VERIFIED),
            (SessionState.CODE_ISSUED, SessionState.ABORTED),
            (SessionState.VERIFIED, SessionState.EXPIRED),
        ],
    )
    def test_allowed(self, from_state: SessionState, to_state: SessionState) -> None:
        assert can_transition(from_state, to_state)

    @pytest.mark.parametrize(
        "from_state,to_state",
        [
            (SessionState.INITIATED, SessionState.VERIFIED),
            (SessionState.CODE_ISSUED, SessionState.PASSWORD_COLLECTED),
            (SessionState.VERIFIED, SessionState.COMPLETED),
            (SessionState.VERIFIED, SessionState.CODE_ISSUED),
        ],
    )
    def test_forbidden(self, from_state: SessionState, to_state: SessionState) -> None:
        assert not can_transition(from_state, to_state)

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES, key=lambda s: s.value))
    def test_terminal_states_are_absorbing(self, terminal: SessionState) -> None:
        assert terminal.is_terminal
        assert not any(can_transition(terminal, target) for target in SessionState)


class TestTransition:
    def test_bumps_version_and_revision(self) -> None:
        session = make_session()
        later = NOW + timedelta(seconds=5)
        moved = session.transition(SessionState.CODE_ISSUED, later, code_hash="h")
        assert moved.state is SessionState.CODE_ISSUED
        assert moved.version == session.version + 1
        assert moved.revision and moved.revision != session.revision
        assert moved.updated_at == later
        assert moved.code_hash == "h"
        assert session.state is SessionState.INITIATED

    def test_identical_writes_get_distinct_revisions(self) -> None:
        session = make_session()
        first = session.update(NOW, code_attempts=1)
        second = session.update(NOW, code_attempts=1)
        assert first.version == second.version
        assert first.revision != second.revision

    def test_illegal_transition_raises(self) -> None:
        with pytest.raises(IllegalTransitionError) as exc_info:
            make_session().transition(SessionState.COMPLETED, NOW)
        assert exc_info.value.from_state == "initiated"
        assert exc_info.value.to_state == "completed"

    def test_terminal_transition_clears_secrets(self) -> None:
        session = make_session(
            state=SessionState.PASSWORD_COLLECTED,
            code_hash="c",
            code_expires_at=NOW,
            reset_token_hash="t",
            reset_token_expires_at=NOW,
            credential_fingerprint="f",
            update_claimed_at=NOW,
        )
        done = session.transition(SessionState.COMPLETED, NOW)
        assert done.code_hash is None
        assert done.code_expires_at is None
        assert done.reset_token_hash is None
        assert done.reset_token_expires_at is None
        assert done.credential_fingerprint is None
        assert done.update_claimed_at is None

    def test_terminal_transition_keeps_explicit_changes(self) -> None:
        session = make_session(state=SessionState.CODE_ISSUED, code_attempts=2)
        aborted = session.transition(SessionState.ABORTED, NOW, code_attempts=3)
        assert aborted.code_attempts == 3


class TestLiveness:
    def test_live_code(self) -> None:
        session = make_session(code_hash="h", code_expires_at=NOW + timedelta(seconds=1))
        assert session.has_live_code(NOW)
        assert not session.has_live_code(NOW + timedelta(seconds=1))

    def test_no_code(self) -> None:
        assert not make_session().has_live_code(NOW)

    def test_live_token(self) -> None:
        session = make_session(
            reset_token_hash="t", reset_token_expires_at=NOW + timedelta(seconds=180)
        )
        assert session.has_live_token(NOW + timedelta(seconds=179))
        assert not session.has_live_token(NOW + timedelta(seconds=180))


class TestSerialization:
    def test_to_dict_from_dict(self) -> None:
        session = make_session(
            state=SessionState.VERIFIED,
            channel="sms",
            salt="abc",
            reset_token_hash="t",
            reset_token_expires_at=NOW + timedelta(minutes=3),
            code_attempts=2,
            codes_issued=1,
            decoy=True,
            metadata={"ip": "hashed"},
        ).update(NOW)
        restored = VerificationSession.from_dict(session.to_dict())
        assert restored == session

    def test_to_dict_holds_only_primitives(self) -> None:
        data = make_session().to_dict()
        assert data["state"] == "initiated"
        assert data["created_at"] == NOW.isoformat()
        assert data["code_hash"] is None

    def test_naive_timestamps_read_as_utc(self) -> None:
        data = make_session().to_dict()
        data["created_at"] = "2026-01-15T09:00:00"
        restored = VerificationSession.from_dict(data)
        assert restored.created_at == NOW

    def test_missing_revision_defaults_empty(self) -> None:
        data = make_session().to_dict()
        del data["revision"]
        assert VerificationSession.from_dict(data).revision == ""

    @pytest.mark.parametrize("missing", ["state", "session_id", "created_at"])
    def test_missing_field(self, missing: str) -> None:
        data = make_session().to_dict()
        del data[missing]
        with pytest.raises(ValueError, match="Invalid session record"):
            VerificationSession.from_dict(data)

    def test_unknown_state(self) -> None:
        data = make_session().to_dict()
        data["state"] = "bogus"
        with pytest.raises(ValueError):
            VerificationSession.from_dict(data)

    def test_null_timestamp(self) -> None:
        data = make_session().to_dict()
        data["expires_at"] = None
        with pytest.raises(ValueError, match="missing timestamps"):
            VerificationSession.from_dict(data)
