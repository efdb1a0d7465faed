"""OTP Auth Service — configuration loaded from environment."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./otp_auth.db"

    # ── OTP policy ────────────────────────────────────────
    otp_length: int = 6
    otp_ttl_minutes: int = 10
    otp_max_attempts: int = 5

    # ── Sessions ──────────────────────────────────────────
    session_ttl_days: int = 7
    session_cookie_name: str = "session"
    session_cookie_secure: bool = False

    # ── Rate limiting ─────────────────────────────────────
    request_otp_rate_limit: str = "5/15 minutes"
    verify_otp_rate_limit: str = "10/15 minutes"
    http_rate_limit: str = "100/15 minutes"
    rate_limit_storage_uri: str = "memory://"

    # ── Email ─────────────────────────────────────────────
    email_from: str = "My Notes <onboarding@resend.dev>"
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    resend_api_key: str = ""
    resend_api_url: str = "https://api.resend.com/emails"
    email_timeout_seconds: float = 10.0

    # ── App ───────────────────────────────────────────────
    app_name: str = "My Notes"
    client_url: str = "http://localhost:5173"
    sweep_interval_seconds: int = 300
    debug: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton settings instance
settings = Settings()
