"""Tests for the HTTP auth endpoints."""

from __future__ import annotations

from datetime import date, timedelta
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from otp_auth.api.router import get_auth_service
from otp_auth.database.engine import get_db_session
from otp_auth.main import app, limiter
from otp_auth.models.user import Base, User
from otp_auth.otp.store import InMemoryOTPStore
from otp_auth.services.auth_service import AuthService
from otp_auth.services.dispatcher import OTPDispatcher
from otp_auth.services.email_service import EmailDeliveryError, NullEmailTransport
from otp_auth.services.rate_limiter import RateLimitAction, RateLimiter
from otp_auth.services.session_manager import SessionManager

# ── In-memory test database ─────────────────────────────
_test_engine = create_async_engine("sqlite+aiosqlite://", echo=False)
_test_session_factory = async_sessionmaker(_test_engine, expire_on_commit=False)


async def _override_get_session():
    async with _test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@pytest.fixture
def transport():
    """Mocked email transport — never actually sends emails."""
    t = NullEmailTransport()
    t.send = AsyncMock()
    return t


@pytest.fixture
def service(transport):
    return AuthService(
        store=InMemoryOTPStore(),
        dispatcher=OTPDispatcher(transport, app_name="My Notes", ttl_minutes=10),
        sessions=SessionManager(ttl=timedelta(days=7)),
        limiter=RateLimiter(
            {
                RateLimitAction.REQUEST_OTP: "3/minute",
                RateLimitAction.VERIFY_OTP: "20/minute",
            }
        ),
    )


@pytest_asyncio.fixture
async def client(service):
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with _test_session_factory() as session:
        session.add(
            User(
                email="alice@example.com",
                full_name="Alice Johnson",
                date_of_birth=date(1990, 3, 14),
            )
        )
        await session.commit()

    app.dependency_overrides[get_db_session] = _override_get_session
    app.dependency_overrides[get_auth_service] = lambda: service
    limiter.reset()

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


def _pin_code(code: str):
    return patch("otp_auth.services.auth_service.generate_code", return_value=code)


# ──────────────────────────────────────────────────────────
# Full signup → profile → logout flow
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_signup_flow(client, transport):
    with _pin_code("123456"):
        resp = await client.post(
            "/api/auth/signup/send-otp",
            json={"email": "new@x.com", "fullName": "A B", "dateOfBirth": "2000-01-01"},
        )
    assert resp.status_code == 200
    assert resp.json()["expiresInMinutes"] == 10
    assert "123456" not in resp.text
    transport.send.assert_awaited_once()

    resp = await client.post(
        "/api/auth/signup/verify-otp", json={"email": "new@x.com", "otp": "123456"}
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["user"]["email"] == "new@x.com"
    assert body["user"]["fullName"] == "A B"
    token = body["token"]
    assert resp.cookies.get("session") == token

    resp = await client.get(
        "/api/auth/profile", headers={"Authorization": f"Bearer {token}"}
    )
    assert resp.status_code == 200
    assert resp.json()["user"]["dateOfBirth"] == "2000-01-01"

    resp = await client.post(
        "/api/auth/logout", headers={"Authorization": f"Bearer {token}"}
    )
    assert resp.status_code == 200

    resp = await client.get(
        "/api/auth/profile", headers={"Authorization": f"Bearer {token}"}
    )
    assert resp.status_code == 401
    assert resp.json() == {"error": "Not authenticated"}


@pytest.mark.asyncio
async def test_signin_flow_with_cookie(client):
    with _pin_code("654321"):
        resp = await client.post(
            "/api/auth/signin/send-otp", json={"email": "Alice@Example.com"}
        )
    assert resp.status_code == 200

    resp = await client.post(
        "/api/auth/signin/verify-otp", json={"email": "alice@example.com", "otp": "654321"}
    )
    assert resp.status_code == 200

    # The client keeps the session cookie from the verify response.
    resp = await client.get("/api/auth/profile")
    assert resp.status_code == 200
    assert resp.json()["user"]["fullName"] == "Alice Johnson"


# ──────────────────────────────────────────────────────────
# Error rendering
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_unknown_signin_is_generic(client):
    with _pin_code("111111"):
        await client.post("/api/auth/signin/send-otp", json={"email": "ghost@x.com"})

    unknown = await client.post(
        "/api/auth/signin/verify-otp", json={"email": "ghost@x.com", "otp": "111111"}
    )

    with _pin_code("222222"):
        await client.post("/api/auth/signin/send-otp", json={"email": "alice@example.com"})
    wrong = await client.post(
        "/api/auth/signin/verify-otp", json={"email": "alice@example.com", "otp": "999999"}
    )

    assert unknown.status_code == wrong.status_code == 400
    assert unknown.json() == wrong.json() == {"error": "Invalid or expired code"}


@pytest.mark.asyncio
async def test_invalid_email(client):
    resp = await client.post("/api/auth/signin/send-otp", json={"email": "nope"})
    assert resp.status_code == 422
    assert "valid email" in resp.json()["error"]


@pytest.mark.asyncio
async def test_signup_age_validation(client):
    resp = await client.post(
        "/api/auth/signup/send-otp",
        json={
            "email": "kid@x.com",
            "fullName": "Kid",
            "dateOfBirth": date.today().isoformat(),
        },
    )
    assert resp.status_code == 422
    assert "Age must be between" in resp.json()["error"]


@pytest.mark.asyncio
async def test_delivery_failure(client, transport):
    transport.send.side_effect = EmailDeliveryError("smtp down")

    resp = await client.post("/api/auth/signin/send-otp", json={"email": "alice@example.com"})

    assert resp.status_code == 502
    assert resp.json() == {"error": "Failed to send verification email"}


@pytest.mark.asyncio
async def test_oversized_code_is_rejected(client, service):
    with _pin_code("123456"):
        await client.post("/api/auth/signin/send-otp", json={"email": "alice@example.com"})

    resp = await client.post(
        "/api/auth/signin/verify-otp", json={"email": "alice@example.com", "otp": "9" * 5000}
    )

    assert resp.status_code == 422
    assert "digits" in resp.json()["error"]
    record = await service.store.get("alice@example.com", "signin")
    assert record.attempts == 0


@pytest.mark.asyncio
async def test_signup_commit_failure_revokes_session(client, service):
    with _pin_code("123456"):
        await client.post(
            "/api/auth/signup/send-otp",
            json={"email": "new@x.com", "fullName": "A B", "dateOfBirth": "2000-01-01"},
        )

    failing_commit = AsyncMock(side_effect=SQLAlchemyError("disk full"))
    with patch.object(AsyncSession, "commit", failing_commit):
        with pytest.raises(Exception):
            await client.post(
                "/api/auth/signup/verify-otp", json={"email": "new@x.com", "otp": "123456"}
            )

    assert service.sessions.active_count == 0


@pytest.mark.asyncio
async def test_request_rate_limited(client):
    for _ in range(3):
        resp = await client.post(
            "/api/auth/signin/send-otp", json={"email": "alice@example.com"}
        )
        assert resp.status_code == 200

    resp = await client.post("/api/auth/signin/send-otp", json={"email": "alice@example.com"})
    assert resp.status_code == 429
    assert int(resp.headers["Retry-After"]) >= 1


@pytest.mark.asyncio
async def test_profile_requires_session(client):
    resp = await client.get("/api/auth/profile")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_logout_without_session(client):
    resp = await client.post("/api/auth/logout")
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "OK"
