"""Auth router — HTTP adapter over :class:`AuthService`.

Endpoints
---------
POST /api/auth/signup/send-otp    → email a signup code (carries profile)
POST /api/auth/signup/verify-otp  → verify code, create user, start session
POST /api/auth/signin/send-otp    → email a signin code
POST /api/auth/signin/verify-otp  → verify code, start session
POST /api/auth/logout             → revoke the current session
GET  /api/auth/profile            → the user behind the current session

The session token is returned in the body and also set as an HTTP-only
cookie; either the cookie or an ``Authorization: Bearer`` header is
accepted on later calls.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from otp_auth.api.schemas import (
    AuthResponse,
    MessageResponse,
    OTPSentResponse,
    ProfileResponse,
    SigninOTPRequest,
    SignupOTPRequest,
    UserResponse,
    VerifyOTPRequest,
)
from otp_auth.config import settings
from otp_auth.database.engine import get_db_session
from otp_auth.database.repository import UserRepository
from otp_auth.exceptions import SessionInvalidError
from otp_auth.otp.payloads import Purpose
from otp_auth.otp.verifier import AuthResult
from otp_auth.services.auth_service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

# ── Shared instance (created once, reused across requests) ──
_auth_service = AuthService.from_settings(settings)


def get_auth_service() -> AuthService:
    return _auth_service


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def _session_token(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return request.cookies.get(settings.session_cookie_name, "")


def _start_session(response: Response, result: AuthResult, message: str) -> AuthResponse:
    session = result.session
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session.token,
        max_age=settings.session_ttl_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    return AuthResponse(
        message=message,
        token=session.token,
        expires_at=session.expires_at,
        user=UserResponse.model_validate(result.user),
    )


# ── Signup ───────────────────────────────────────────────

@router.post("/signup/send-otp", response_model=OTPSentResponse)
async def send_signup_otp(
    body: SignupOTPRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
):
    """Email a signup code; the profile is held until the code is verified."""
    result = await service.request_otp(
        body.email,
        Purpose.SIGNUP,
        payload={"full_name": body.full_name, "date_of_birth": body.date_of_birth},
        client_ip=_client_ip(request),
    )
    return OTPSentResponse(
        message="OTP sent successfully. Check your email.",
        email=result.email,
        expires_in_minutes=result.expires_in_minutes,
    )


@router.post("/signup/verify-otp", response_model=AuthResponse, status_code=201)
async def verify_signup_otp(
    body: VerifyOTPRequest,
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    db: AsyncSession = Depends(get_db_session),
):
    result = await service.verify_otp(
        body.email,
        Purpose.SIGNUP,
        body.otp,
        users=UserRepository(db),
        client_ip=_client_ip(request),
    )
    try:
        await db.commit()
    except Exception:
        # The user row was rolled back; the token must not outlive it.
        service.logout(result.session.token)
        logger.exception("Signup commit failed for %s", body.email)
        raise
    return _start_session(response, result, "Account created successfully")


# ── Signin ───────────────────────────────────────────────

@router.post("/signin/send-otp", response_model=OTPSentResponse)
async def send_signin_otp(
    body: SigninOTPRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
):
    """Email a signin code.

    The response is the same whether or not the email is registered.
    """
    result = await service.request_otp(
        body.email, Purpose.SIGNIN, client_ip=_client_ip(request)
    )
    return OTPSentResponse(
        message="OTP sent successfully. Check your email.",
        email=result.email,
        expires_in_minutes=result.expires_in_minutes,
    )


@router.post("/signin/verify-otp", response_model=AuthResponse)
async def verify_signin_otp(
    body: VerifyOTPRequest,
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    db: AsyncSession = Depends(get_db_session),
):
    result = await service.verify_otp(
        body.email,
        Purpose.SIGNIN,
        body.otp,
        users=UserRepository(db),
        client_ip=_client_ip(request),
    )
    return _start_session(response, result, "Signed in successfully")


# ── Session ──────────────────────────────────────────────

@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
):
    token = _session_token(request)
    if token:
        service.logout(token)
    response.delete_cookie(settings.session_cookie_name)
    return MessageResponse(message="Logged out successfully")


@router.get("/profile", response_model=ProfileResponse)
async def profile(
    request: Request,
    service: AuthService = Depends(get_auth_service),
    db: AsyncSession = Depends(get_db_session),
):
    token = _session_token(request)
    if not token:
        raise SessionInvalidError()
    user = await service.get_session(token, UserRepository(db))
    return ProfileResponse(user=UserResponse.model_validate(user))
