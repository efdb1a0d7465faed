"""Domain errors raised by the OTP authentication core.

Every error carries the HTTP status and a generically worded message the
API layer renders.  Messages never reveal whether an email is registered
or what the stored code looked like.
"""

from __future__ import annotations

GENERIC_CODE_MESSAGE = "Invalid or expired code"


class AuthError(Exception):
    """Base class for all errors surfaced by the auth core."""

    status_code: int = 400
    public_message: str = "Authentication failed"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.public_message)
        self.detail = detail or self.public_message


class InputValidationError(AuthError):
    """Malformed email or payload, rejected before touching the store."""

    status_code = 422
    public_message = "Invalid request"


class RateLimitedError(AuthError):
    status_code = 429
    public_message = "Too many requests, please try again later."

    def __init__(self, retry_after: float) -> None:
        super().__init__()
        self.retry_after = retry_after


class NoActiveCodeError(AuthError):
    public_message = GENERIC_CODE_MESSAGE


class ExpiredCodeError(AuthError):
    public_message = "Code has expired, please request a new one"


class InvalidCodeError(AuthError):
    public_message = GENERIC_CODE_MESSAGE

    def __init__(self, attempts_left: int) -> None:
        super().__init__()
        self.attempts_left = attempts_left


class AttemptsExceededError(AuthError):
    public_message = "Too many attempts, please request a new code"


class DeliveryFailedError(AuthError):
    status_code = 502
    public_message = "Failed to send verification email"

    def __init__(self, reason: str) -> None:
        super().__init__()
        self.reason = reason


class DuplicateUserError(AuthError):
    status_code = 409
    public_message = "Unable to complete sign up"


class UserNotFoundError(AuthError):
    public_message = GENERIC_CODE_MESSAGE


class SessionInvalidError(AuthError):
    status_code = 401
    public_message = "Not authenticated"


class SessionExpiredError(SessionInvalidError):
    pass


class OTPNotFoundError(Exception):
    """Store-level miss: no record, or the record is no longer pending."""
