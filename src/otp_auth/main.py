"""FastAPI application entry point."""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from otp_auth.api.router import get_auth_service
from otp_auth.api.router import router as auth_router
from otp_auth.config import settings
from otp_auth.database.engine import dispose_db, init_db
from otp_auth.exceptions import AuthError, InputValidationError, RateLimitedError
from otp_auth.services.auth_service import AuthService

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)

# Coarse per-IP ceiling for every endpoint; the auth core applies its own
# per-email limits on top of this.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.http_rate_limit],
    storage_uri=settings.rate_limit_storage_uri,
)


async def _sweep_forever(service: AuthService, interval: float) -> None:
    """Periodically drop dead OTP records and expired sessions."""
    while True:
        await asyncio.sleep(interval)
        try:
            records, sessions = await service.sweep()
        except Exception:
            logger.exception("Sweep failed")
            continue
        logger.debug("Sweep removed %d records and %d sessions", records, sessions)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    logger.info("Starting %s …", settings.app_name)
    await init_db()
    logger.info("Database initialised")
    sweeper = asyncio.create_task(
        _sweep_forever(get_auth_service(), settings.sweep_interval_seconds)
    )
    yield
    logger.info("Shutting down %s …", settings.app_name)
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    await dispose_db()


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render domain errors as ``{"error": ...}`` with generic wording."""
    message = exc.detail if isinstance(exc, InputValidationError) else exc.public_message
    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(max(1, round(exc.retry_after)))}
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code, content={"error": message}, headers=headers
    )


app = FastAPI(
    title=settings.app_name,
    description="Passwordless email sign-up and sign-in with one-time codes",
    version="0.1.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(AuthError, auth_error_handler)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.client_url],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(auth_router)


@app.get("/api/health")
async def health_check():
    """Simple liveness probe."""
    return {"status": "OK", "timestamp": datetime.now(UTC).isoformat()}


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run("otp_auth.main:app", host="0.0.0.0", port=8000, log_level="info")


if __name__ == "__main__":
    run()
