"""Verification engine — the OTP state machine.

Per ``(email, purpose)`` a code moves through::

    NoActiveCode → Pending → {Consumed | Expired | Locked}

Terminal states need a fresh request to get back to ``Pending``.  The
steps of :meth:`VerificationEngine.verify` run in a fixed order: expiry
is checked before any attempt is counted, so an expired code never uses
up an attempt slot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from otp_auth.exceptions import (
    AttemptsExceededError,
    DuplicateUserError,
    ExpiredCodeError,
    InvalidCodeError,
    NoActiveCodeError,
    OTPNotFoundError,
    UserNotFoundError,
)
from otp_auth.otp.hashing import verify_code
from otp_auth.otp.payloads import Purpose, SignupPayload
from otp_auth.otp.store import Clock, OTPRecord, OTPStatus, OTPStore, utc_now
from otp_auth.services.session_manager import Session, SessionManager

if TYPE_CHECKING:
    from datetime import date

    from otp_auth.models.user import User

logger = logging.getLogger(__name__)


class IdentityStore(Protocol):
    """The identity collaborator: read and create only."""

    async def find_by_email(self, email: str) -> User | None: ...

    async def create(self, email: str, full_name: str, date_of_birth: date) -> User: ...


@dataclass(frozen=True)
class AuthResult:
    """A verified identity plus the session minted for it."""

    user: User
    session: Session


class VerificationEngine:
    """Checks submitted codes and turns a match into a session."""

    def __init__(
        self,
        store: OTPStore,
        sessions: SessionManager,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._sessions = sessions
        self._clock = clock

    async def verify(
        self, email: str, purpose: Purpose, code: str, users: IdentityStore
    ) -> AuthResult:
        purpose = Purpose(purpose)
        record = await self._active_record(email, purpose)

        if record.is_expired(self._clock()):
            await self._store.expire(email, purpose, record.record_id)
            logger.info("Expired %s code submitted for %s", purpose, email)
            raise ExpiredCodeError()

        if not verify_code(code, record.code_hash):
            await self._record_mismatch(record)

        try:
            record = await self._store.consume(email, purpose, record.record_id)
        except OTPNotFoundError:
            # A concurrent submission consumed it, or a new code replaced it.
            raise NoActiveCodeError() from None
        logger.info("Consumed %s code for %s", purpose, email)

        user = await self._resolve_identity(record, users)
        session = self._sessions.issue(user.id)
        return AuthResult(user=user, session=session)

    # ── Private helpers ──────────────────────────────────

    async def _active_record(self, email: str, purpose: Purpose) -> OTPRecord:
        try:
            record = await self._store.get(email, purpose)
        except OTPNotFoundError:
            raise NoActiveCodeError() from None
        if record.status is OTPStatus.LOCKED:
            raise AttemptsExceededError()
        if record.status is not OTPStatus.PENDING:
            raise NoActiveCodeError()
        return record

    async def _record_mismatch(self, record: OTPRecord) -> None:
        try:
            attempts = await self._store.record_failed_attempt(
                record.email, record.purpose, record.record_id
            )
        except OTPNotFoundError:
            raise NoActiveCodeError() from None
        max_attempts = self._store.max_attempts
        logger.info(
            "Wrong %s code for %s (attempt %d/%d)",
            record.purpose, record.email, attempts, max_attempts,
        )
        raise InvalidCodeError(attempts_left=max(0, max_attempts - attempts))

    async def _resolve_identity(self, record: OTPRecord, users: IdentityStore) -> User:
        if isinstance(record.payload, SignupPayload):
            if await users.find_by_email(record.email) is not None:
                logger.info("Signup verified for already registered %s", record.email)
                raise DuplicateUserError()
            user = await users.create(
                email=record.email,
                full_name=record.payload.full_name,
                date_of_birth=record.payload.date_of_birth,
            )
            logger.info("Created user %s for %s", user.id, record.email)
            return user

        user = await users.find_by_email(record.email)
        if user is None:
            logger.info("Signin verified for unknown email %s", record.email)
            raise UserNotFoundError()
        return user
