"""OTP record store with per-key locking.

Records are keyed by ``(email, purpose)``; at most one record exists per
key and a new ``put`` replaces whatever was there.  Every mutation is a
conditional update against a specific ``record_id``, so a caller holding a
stale snapshot can never consume or penalise a newer code.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Callable

from otp_auth.exceptions import AttemptsExceededError, OTPNotFoundError
from otp_auth.otp.payloads import Purpose, SigninPayload, SignupPayload

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class OTPStatus(StrEnum):
    PENDING = "pending"
    CONSUMED = "consumed"
    EXPIRED = "expired"
    LOCKED = "locked"


@dataclass(frozen=True)
class OTPRecord:
    """Immutable snapshot of a pending (or finished) verification attempt."""

    record_id: str
    email: str
    purpose: Purpose
    code_hash: str
    payload: SignupPayload | SigninPayload
    created_at: datetime
    expires_at: datetime
    attempts: int = 0
    status: OTPStatus = OTPStatus.PENDING

    @property
    def consumed(self) -> bool:
        return self.status is OTPStatus.CONSUMED

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def is_active(self, now: datetime) -> bool:
        return self.status is OTPStatus.PENDING and not self.is_expired(now)


class OTPStore(ABC):
    """Storage contract for OTP records.

    Implementations must serialise ``put`` / ``consume`` /
    ``record_failed_attempt`` / ``expire`` on the same key.  A shared
    backend would use atomic conditional writes keyed on ``record_id``.
    """

    @property
    @abstractmethod
    def max_attempts(self) -> int:
        """Failed tries tolerated against one code."""

    @abstractmethod
    async def put(
        self,
        email: str,
        code_hash: str,
        payload: SignupPayload | SigninPayload,
        ttl: timedelta,
    ) -> OTPRecord:
        """Store a fresh pending record, replacing any existing one."""

    @abstractmethod
    async def get(self, email: str, purpose: Purpose) -> OTPRecord:
        """Return the current record for the key.

        Raises ``OTPNotFoundError`` when nothing is stored.  Terminal
        records are returned as-is so callers can tell why they are dead.
        """

    @abstractmethod
    async def record_failed_attempt(
        self, email: str, purpose: Purpose, record_id: str
    ) -> int:
        """Count one failed try; raise ``AttemptsExceededError`` at the cap."""

    @abstractmethod
    async def consume(self, email: str, purpose: Purpose, record_id: str) -> OTPRecord:
        """Mark the pending record consumed (one-shot)."""

    @abstractmethod
    async def expire(self, email: str, purpose: Purpose, record_id: str) -> None:
        """Invalidate a pending record whose lifetime has passed."""

    @abstractmethod
    async def purge(self, now: datetime | None = None) -> int:
        """Drop inert records; return how many were removed."""


class InMemoryOTPStore(OTPStore):
    """Single-process store backed by a dict and one ``asyncio.Lock`` per key."""

    def __init__(self, max_attempts: int = MAX_ATTEMPTS, clock: Clock = utc_now) -> None:
        self._records: dict[tuple[str, Purpose], OTPRecord] = {}
        self._locks: defaultdict[tuple[str, Purpose], asyncio.Lock] = defaultdict(
            asyncio.Lock
        )
        self._max_attempts = max_attempts
        self._clock = clock

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def put(
        self,
        email: str,
        code_hash: str,
        payload: SignupPayload | SigninPayload,
        ttl: timedelta,
    ) -> OTPRecord:
        key = (email, Purpose(payload.purpose))
        now = self._clock()
        record = OTPRecord(
            record_id=secrets.token_hex(8),
            email=email,
            purpose=key[1],
            code_hash=code_hash,
            payload=payload,
            created_at=now,
            expires_at=now + ttl,
        )
        async with self._locks[key]:
            previous = self._records.get(key)
            self._records[key] = record
        if previous is not None and previous.status is OTPStatus.PENDING:
            logger.info("Replaced pending %s code for %s", key[1], email)
        return record

    async def get(self, email: str, purpose: Purpose) -> OTPRecord:
        record = self._records.get((email, Purpose(purpose)))
        if record is None:
            raise OTPNotFoundError(f"No code stored for {email} ({purpose})")
        return record

    async def record_failed_attempt(
        self, email: str, purpose: Purpose, record_id: str
    ) -> int:
        key = (email, Purpose(purpose))
        async with self._locks[key]:
            record = self._pending(key, record_id)
            attempts = min(record.attempts + 1, self._max_attempts)
            if attempts >= self._max_attempts:
                self._records[key] = replace(
                    record, attempts=attempts, status=OTPStatus.LOCKED
                )
                logger.warning("Attempt cap reached for %s code of %s", key[1], email)
                raise AttemptsExceededError()
            self._records[key] = replace(record, attempts=attempts)
        return attempts

    async def consume(self, email: str, purpose: Purpose, record_id: str) -> OTPRecord:
        key = (email, Purpose(purpose))
        async with self._locks[key]:
            record = self._pending(key, record_id)
            consumed = replace(record, status=OTPStatus.CONSUMED)
            self._records[key] = consumed
        return consumed

    async def expire(self, email: str, purpose: Purpose, record_id: str) -> None:
        key = (email, Purpose(purpose))
        async with self._locks[key]:
            try:
                record = self._pending(key, record_id)
            except OTPNotFoundError:
                return
            self._records[key] = replace(record, status=OTPStatus.EXPIRED)

    async def purge(self, now: datetime | None = None) -> int:
        now = now or self._clock()
        removed = 0
        # No awaits in this loop: the sweep runs atomically on the event loop.
        for key, record in list(self._records.items()):
            if record.is_active(now):
                continue
            del self._records[key]
            removed += 1
            lock = self._locks.get(key)
            if lock is not None and not lock.locked():
                del self._locks[key]
        if removed:
            logger.info("Purged %d inert OTP records", removed)
        return removed

    def __len__(self) -> int:
        return len(self._records)

    # ── Private helpers ──────────────────────────────────

    def _pending(self, key: tuple[str, Purpose], record_id: str) -> OTPRecord:
        """Return the record at *key* if it is still the pending *record_id*."""
        record = self._records.get(key)
        if record is None or record.record_id != record_id:
            raise OTPNotFoundError(f"Code for {key[0]} ({key[1]}) was replaced")
        if record.status is not OTPStatus.PENDING:
            raise OTPNotFoundError(f"Code for {key[0]} ({key[1]}) is {record.status}")
        return record
