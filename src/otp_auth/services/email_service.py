"""Email transports — the outbound ``send(to, subject, html)`` capability.

Two real transports are available: async SMTP and the Resend HTTP API.
When neither is configured a null transport is used that reports every
send as failed, so a misconfigured deployment never pretends to deliver.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from email.message import EmailMessage

import aiosmtplib
import httpx

from otp_auth.config import Settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised by a transport when the message could not be handed off."""


class EmailTransport(ABC):
    """Sends a single HTML email."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Transport name (used in logs)."""

    @abstractmethod
    async def send(self, to_email: str, subject: str, html_body: str) -> None:
        """Deliver one message or raise ``EmailDeliveryError``."""


class SMTPEmailTransport(EmailTransport):
    """Sends transactional emails using the configured SMTP server."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def name(self) -> str:
        return "smtp"

    async def send(self, to_email: str, subject: str, html_body: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._settings.email_from
        msg["To"] = to_email
        msg.set_content("Please view this message in an HTML-capable email client.")
        msg.add_alternative(html_body, subtype="html")

        try:
            await aiosmtplib.send(
                msg,
                hostname=self._settings.smtp_host,
                port=self._settings.smtp_port,
                username=self._settings.smtp_username or None,
                password=self._settings.smtp_password or None,
                start_tls=True,
                timeout=self._settings.email_timeout_seconds,
            )
        except aiosmtplib.SMTPException as exc:
            raise EmailDeliveryError(f"SMTP error: {exc}") from exc


class ResendEmailTransport(EmailTransport):
    """Sends emails through the Resend REST API."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._client = client

    @property
    def name(self) -> str:
        return "resend"

    async def send(self, to_email: str, subject: str, html_body: str) -> None:
        headers = {
            "Authorization": f"Bearer {self._settings.resend_api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "from": self._settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_body,
        }

        try:
            if self._client is not None:
                resp = await self._client.post(
                    self._settings.resend_api_url, json=payload, headers=headers
                )
            else:
                async with httpx.AsyncClient(
                    timeout=self._settings.email_timeout_seconds
                ) as client:
                    resp = await client.post(
                        self._settings.resend_api_url, json=payload, headers=headers
                    )
        except httpx.HTTPError as exc:
            raise EmailDeliveryError(f"Resend request error: {exc}") from exc

        if resp.status_code >= 400:
            raise EmailDeliveryError(f"Resend rejected message: {resp.status_code}")


class NullEmailTransport(EmailTransport):
    """Placeholder used when no transport is configured."""

    @property
    def name(self) -> str:
        return "null"

    async def send(self, to_email: str, subject: str, html_body: str) -> None:
        logger.warning("No email transport configured — message to %s not sent", to_email)
        raise EmailDeliveryError("no email transport configured")


def build_transport(settings: Settings) -> EmailTransport:
    """Pick the transport implied by *settings* (Resend wins over SMTP)."""
    if settings.resend_api_key:
        return ResendEmailTransport(settings)
    if settings.smtp_host:
        return SMTPEmailTransport(settings)
    return NullEmailTransport()
