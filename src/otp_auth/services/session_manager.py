"""Session manager — mints and checks opaque session tokens."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Callable

from otp_auth.exceptions import SessionExpiredError, SessionInvalidError

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = timedelta(days=7)
TOKEN_BYTES = 32


@dataclass(frozen=True)
class Session:
    """A post-authentication credential bound to one user."""

    token: str
    user_id: int
    issued_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class SessionManager:
    """In-memory session store keyed by bearer token.

    Sessions live independently of the OTP that produced them.  A user may
    hold any number of concurrent sessions.  For multi-instance
    deployments, swap to a shared-store implementation by sub-classing and
    overriding :pymethod:`issue` / :pymethod:`validate` / :pymethod:`revoke`.
    """

    def __init__(
        self,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._sessions: dict[str, Session] = {}
        self._ttl = ttl
        self._clock = clock or (lambda: datetime.now(UTC))

    def issue(self, user_id: int) -> Session:
        """Create a fresh session for *user_id*."""
        now = self._clock()
        session = Session(
            token=secrets.token_urlsafe(TOKEN_BYTES),
            user_id=user_id,
            issued_at=now,
            expires_at=now + self._ttl,
        )
        self._sessions[session.token] = session
        logger.info("Issued session for user %s (expires %s)", user_id, session.expires_at)
        return session

    def validate(self, token: str) -> int:
        """Return the user id bound to *token*.

        Raises ``SessionInvalidError`` for unknown tokens and
        ``SessionExpiredError`` (dropping the session) once it has expired.
        """
        session = self._sessions.get(token) if token else None
        if session is None:
            raise SessionInvalidError()
        if session.is_expired(self._clock()):
            self._sessions.pop(token, None)
            logger.info("Session for user %s expired", session.user_id)
            raise SessionExpiredError()
        return session.user_id

    def revoke(self, token: str) -> None:
        """Remove a session (e.g. on logout).  Unknown tokens are ignored."""
        session = self._sessions.pop(token, None)
        if session is not None:
            logger.info("Session revoked for user %s", session.user_id)

    def purge(self, now: datetime | None = None) -> int:
        """Drop expired sessions; return how many were removed."""
        now = now or self._clock()
        expired = [t for t, s in self._sessions.items() if s.is_expired(now)]
        for token in expired:
            del self._sessions[token]
        if expired:
            logger.info("Purged %d expired sessions", len(expired))
        return len(expired)

    @property
    def active_count(self) -> int:
        """Number of stored sessions (useful for monitoring)."""
        return len(self._sessions)
