"""Auth service — the inbound operations of the OTP login flow.

``request_otp`` and ``verify_otp`` gate on the rate limiter, then drive the
code generator, OTP store, dispatcher and verification engine.  ``logout``
and ``get_session`` operate on the session manager.  The HTTP layer is a
thin adapter over this class.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from otp_auth.config import Settings
from otp_auth.exceptions import (
    DeliveryFailedError,
    InputValidationError,
    SessionInvalidError,
)
from otp_auth.otp.generator import generate_code
from otp_auth.otp.hashing import hash_code
from otp_auth.otp.payloads import Purpose, build_payload, normalize_email
from otp_auth.otp.store import Clock, InMemoryOTPStore, OTPStore, utc_now
from otp_auth.otp.verifier import AuthResult, IdentityStore, VerificationEngine
from otp_auth.services.dispatcher import OTPDispatcher
from otp_auth.services.email_service import EmailTransport, build_transport
from otp_auth.services.rate_limiter import RateLimitAction, RateLimiter
from otp_auth.services.session_manager import SessionManager

if TYPE_CHECKING:
    from otp_auth.database.repository import UserRepository
    from otp_auth.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OTPRequestResult:
    """What the caller learns about a code request; never the code itself."""

    email: str
    purpose: Purpose
    expires_in_minutes: int


class AuthService:
    """Passwordless email authentication built on one-time codes."""

    def __init__(
        self,
        store: OTPStore,
        dispatcher: OTPDispatcher,
        sessions: SessionManager,
        limiter: RateLimiter,
        otp_ttl: timedelta = timedelta(minutes=10),
        code_length: int = 6,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._sessions = sessions
        self._limiter = limiter
        self._otp_ttl = otp_ttl
        self._code_length = code_length
        self._engine = VerificationEngine(store, sessions, clock=clock)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: EmailTransport | None = None,
        clock: Clock = utc_now,
    ) -> AuthService:
        """Wire the default in-process collaborators from *settings*."""
        sessions = SessionManager(ttl=timedelta(days=settings.session_ttl_days), clock=clock)
        dispatcher = OTPDispatcher(
            transport or build_transport(settings),
            app_name=settings.app_name,
            ttl_minutes=settings.otp_ttl_minutes,
            timeout=settings.email_timeout_seconds,
        )
        limiter = RateLimiter(
            {
                RateLimitAction.REQUEST_OTP: settings.request_otp_rate_limit,
                RateLimitAction.VERIFY_OTP: settings.verify_otp_rate_limit,
            },
            storage_uri=settings.rate_limit_storage_uri,
        )
        return cls(
            store=InMemoryOTPStore(max_attempts=settings.otp_max_attempts, clock=clock),
            dispatcher=dispatcher,
            sessions=sessions,
            limiter=limiter,
            otp_ttl=timedelta(minutes=settings.otp_ttl_minutes),
            code_length=settings.otp_length,
            clock=clock,
        )

    @property
    def store(self) -> OTPStore:
        return self._store

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    # ── Inbound operations ───────────────────────────────

    async def request_otp(
        self,
        email: str,
        purpose: Purpose | str,
        payload: dict[str, Any] | None = None,
        client_ip: str | None = None,
    ) -> OTPRequestResult:
        """Generate, store and email a fresh code for ``(email, purpose)``.

        Any earlier code for the same key stops working immediately.  If
        delivery fails the new record is kept and ``DeliveryFailedError``
        is raised so the caller can decide what to tell the user.
        """
        email = normalize_email(email)
        otp_payload = build_payload(purpose, payload)
        purpose = Purpose(otp_payload.purpose)

        self._gate(email, client_ip, RateLimitAction.REQUEST_OTP)

        code = generate_code(self._code_length)
        await self._store.put(email, hash_code(code), otp_payload, self._otp_ttl)
        logger.info("Issued %s code for %s", purpose, email)

        result = await self._dispatcher.send(email, code, purpose)
        if not result.sent:
            raise DeliveryFailedError(result.reason or "unknown")

        return OTPRequestResult(
            email=email,
            purpose=purpose,
            expires_in_minutes=int(self._otp_ttl.total_seconds() // 60),
        )

    async def verify_otp(
        self,
        email: str,
        purpose: Purpose | str,
        code: str,
        users: IdentityStore,
        client_ip: str | None = None,
    ) -> AuthResult:
        """Check *code* and, on success, return the identity and a new session."""
        email = normalize_email(email)
        try:
            purpose = Purpose(purpose)
        except ValueError:
            raise InputValidationError(f"Unknown purpose: {purpose!r}") from None
        code = (code or "").strip()
        if not code:
            raise InputValidationError("OTP is required")
        if not (code.isascii() and code.isdigit() and len(code) == self._code_length):
            raise InputValidationError(f"OTP must be {self._code_length} digits")

        self._gate(email, client_ip, RateLimitAction.VERIFY_OTP)

        result = await self._engine.verify(email, purpose, code, users)
        logger.info("User %s authenticated via %s code", result.user.id, purpose)
        return result

    def logout(self, token: str) -> None:
        self._sessions.revoke(token)

    async def get_session(self, token: str, users: UserRepository) -> User:
        """Resolve a bearer token to its user."""
        user_id = self._sessions.validate(token)
        user = await users.find_by_id(user_id)
        if user is None:
            self._sessions.revoke(token)
            raise SessionInvalidError()
        return user

    async def sweep(self) -> tuple[int, int]:
        """Drop inert OTP records and expired sessions."""
        return await self._store.purge(), self._sessions.purge()

    # ── Private helpers ──────────────────────────────────

    def _gate(self, email: str, client_ip: str | None, action: RateLimitAction) -> None:
        keys = [f"email:{email}"]
        if client_ip:
            keys.append(f"ip:{client_ip}")
        self._limiter.check_all(keys, action)
