"""Tests for the SessionManager."""

from datetime import timedelta

import pytest

from otp_auth.exceptions import SessionExpiredError, SessionInvalidError
from otp_auth.services.session_manager import SessionManager


@pytest.fixture
def sessions(clock):
    return SessionManager(ttl=timedelta(days=7), clock=clock)


def test_issue_and_validate(sessions, clock):
    session = sessions.issue(42)

    assert len(session.token) >= 40
    assert session.expires_at == clock() + timedelta(days=7)
    assert sessions.validate(session.token) == 42


def test_tokens_are_unique(sessions):
    tokens = {sessions.issue(1).token for _ in range(50)}
    assert len(tokens) == 50
    assert sessions.active_count == 50


def test_unknown_token_is_invalid(sessions):
    with pytest.raises(SessionInvalidError):
        sessions.validate("not-a-token")
    with pytest.raises(SessionInvalidError):
        sessions.validate("")


def test_expired_session(sessions, clock):
    session = sessions.issue(7)
    clock.advance(days=6, hours=23)
    assert sessions.validate(session.token) == 7

    clock.advance(hours=1)
    with pytest.raises(SessionExpiredError):
        sessions.validate(session.token)
    # Dropped on first expired use.
    assert sessions.active_count == 0


def test_revoke_is_idempotent(sessions):
    session = sessions.issue(3)
    sessions.revoke(session.token)
    sessions.revoke(session.token)
    sessions.revoke("never-issued")

    with pytest.raises(SessionInvalidError):
        sessions.validate(session.token)


def test_multiple_sessions_per_user(sessions):
    first = sessions.issue(5)
    second = sessions.issue(5)
    sessions.revoke(first.token)

    assert sessions.validate(second.token) == 5


def test_purge_removes_only_expired(sessions, clock):
    old = sessions.issue(1)
    clock.advance(days=5)
    fresh = sessions.issue(2)
    clock.advance(days=3)

    assert sessions.purge() == 1
    assert sessions.validate(fresh.token) == 2
    with pytest.raises(SessionInvalidError):
        sessions.validate(old.token)
