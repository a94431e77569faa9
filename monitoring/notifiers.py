"""
============================================================================
STATUS ENGINE - NOTIFICATION TRANSPORTS
============================================================================
The two delivery capabilities the alert dispatcher relies on:

    EmailSender    ← SMTP delivery, run in a worker thread
    WebhookSender  ← generic outbound HTTP request (GET / POST)

Both raise AlertDeliveryError on transport failure and never record
anything themselves.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import smtplib
from email.message import EmailMessage
from typing import Mapping, Optional

import httpx

from config.settings import AlertSettings, EmailSettings
from exceptions import AlertConfigurationError, AlertDeliveryError
from utils.logger import get_logger


logger = get_logger("Notifiers")


# ============================================================================
# EMAIL
# ============================================================================

class EmailSender:
    """
    Sends plain-text alert emails over SMTP.

    smtplib is blocking, so each send runs via ``asyncio.to_thread``.
    """

    def __init__(self, settings: Optional[EmailSettings] = None):
        self.settings = settings or EmailSettings()

    @property
    def is_configured(self) -> bool:
        return self.settings.is_configured

    @property
    def subject_prefix(self) -> str:
        return self.settings.subject_prefix

    def build_message(self, to_address: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.settings.from_address
        message["To"] = to_address
        message["Subject"] = subject
        message.set_content(body)
        return message

    def _send_sync(self, message: EmailMessage) -> None:
        s = self.settings
        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout) as smtp:
            if s.smtp_starttls:
                smtp.starttls()
            if s.smtp_username:
                smtp.login(s.smtp_username, s.smtp_password.get_secret_value())
            smtp.send_message(message)

    async def send(self, to_address: str, subject: str, body: str) -> None:
        """
        Deliver one email.

        Raises:
            AlertConfigurationError: if email delivery is disabled
            AlertDeliveryError: on SMTP or socket failure
        """
        if not self.is_configured:
            raise AlertConfigurationError(
                "Email delivery is not configured",
                details={"setting": "EMAIL_ENABLED"},
            )

        message = self.build_message(to_address, subject, body)
        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            raise AlertDeliveryError(f"Failed to send email to {to_address}: {e}", cause=e) from e

        logger.debug(f"[Email] Sent '{subject}' to {to_address}")


# ============================================================================
# WEBHOOK
# ============================================================================

class WebhookSender:
    """
    Issues alert requests to HTTP contacts.

    Owns its own httpx.AsyncClient, separate from the probe pool.
    Any non-2xx response counts as a delivery failure.
    """

    def __init__(
        self,
        settings: Optional[AlertSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or AlertSettings()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.webhook_timeout),
                follow_redirects=True,
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[str] = None,
    ) -> httpx.Response:
        """
        Send one alert request.

        Raises:
            AlertDeliveryError: on transport failure or a non-2xx response
        """
        await self.start()
        try:
            response = await self._client.request(
                method,
                url,
                headers=dict(headers or {}),
                content=body.encode("utf-8") if body is not None else None,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AlertDeliveryError(
                f"HTTP alert to {url} returned {e.response.status_code}",
                cause=e,
            ) from e
        except httpx.HTTPError as e:
            raise AlertDeliveryError(f"HTTP alert to {url} failed: {e}", cause=e) from e

        logger.debug(f"[Webhook] {method} {url} → {response.status_code}")
        return response
