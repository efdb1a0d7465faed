"""Delivery dispatcher — hands a generated code to the email transport."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from html import escape

from otp_auth.otp.payloads import Purpose
from otp_auth.services.email_service import EmailDeliveryError, EmailTransport

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

_SUBJECTS = {
    Purpose.SIGNUP: "Welcome to {app} - Verify Your Email",
    Purpose.SIGNIN: "{app} - Sign In Verification",
}

_HEADINGS = {
    Purpose.SIGNUP: "Welcome to {app}!",
    Purpose.SIGNIN: "Sign In to {app}",
}

_HTML_TEMPLATE = """\
<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{subject}</title>
    <style>
      body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
      .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
      .logo {{ color: #4F46E5; font-size: 24px; font-weight: bold; text-align: center; }}
      .otp-code {{ font-size: 32px; font-weight: bold; color: #4F46E5; text-align: center;
                   margin: 20px 0; padding: 20px; background: #f8fafc; border-radius: 8px;
                   letter-spacing: 4px; }}
      .footer {{ margin-top: 30px; padding-top: 20px; border-top: 1px solid #e5e7eb;
                 font-size: 14px; color: #6b7280; }}
    </style>
  </head>
  <body>
    <div class="container">
      <div class="logo">{app}</div>
      <h2>{heading}</h2>
      <p>Your verification code is:</p>
      <div class="otp-code">{code}</div>
      <p>This code will expire in {ttl_minutes} minutes. If you didn't request this code, please ignore this email.</p>
      <div class="footer"><p>Best regards,<br>The {app} Team</p></div>
    </div>
  </body>
</html>
"""


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a single delivery: ``Sent`` or ``Failed(reason)``."""

    sent: bool
    reason: str | None = None

    @classmethod
    def success(cls) -> DeliveryResult:
        return cls(sent=True)

    @classmethod
    def failure(cls, reason: str) -> DeliveryResult:
        return cls(sent=False, reason=reason)


def render_message(
    purpose: Purpose, code: str, app_name: str, ttl_minutes: int
) -> tuple[str, str]:
    """Build the ``(subject, html_body)`` pair for a code."""
    purpose = Purpose(purpose)
    app = escape(app_name)
    subject = _SUBJECTS[purpose].format(app=app_name)
    html_body = _HTML_TEMPLATE.format(
        subject=escape(subject),
        app=app,
        heading=_HEADINGS[purpose].format(app=app),
        code=escape(code),
        ttl_minutes=ttl_minutes,
    )
    return subject, html_body


class OTPDispatcher:
    """Sends verification codes and classifies the outcome.

    No retries happen here: a retry policy belongs to the caller, which
    would re-request a fresh code rather than resend a stale one.
    """

    def __init__(
        self,
        transport: EmailTransport,
        app_name: str,
        ttl_minutes: int,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._transport = transport
        self._app_name = app_name
        self._ttl_minutes = ttl_minutes
        self._timeout = timeout

    async def send(self, email: str, code: str, purpose: Purpose) -> DeliveryResult:
        subject, html_body = render_message(
            purpose, code, self._app_name, self._ttl_minutes
        )
        try:
            async with asyncio.timeout(self._timeout):
                await self._transport.send(email, subject, html_body)
        except TimeoutError:
            logger.error(
                "Delivery of %s code to %s timed out after %.1fs",
                purpose, email, self._timeout,
            )
            return DeliveryResult.failure("timeout")
        except EmailDeliveryError as exc:
            logger.error("Delivery of %s code to %s failed: %s", purpose, email, exc)
            return DeliveryResult.failure(str(exc))

        logger.info("Sent %s code to %s via %s", purpose, email, self._transport.name)
        return DeliveryResult.success()
