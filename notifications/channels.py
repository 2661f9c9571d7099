from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

import requests

from .config import NotifierSettings
from .models import DispatchResult, NotificationMessage

LOGGER = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class ResendDispatcher:
    """Send email through the Resend HTTP API."""

    def __init__(self, api_key: str, sender: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, recipient_email: str, message: NotificationMessage) -> DispatchResult:
        if not recipient_email:
            return DispatchResult(False, "recipient has no email address")

        payload = {
            "from": self.sender,
            "to": [recipient_email],
            "subject": message.subject,
            "html": message.body_html,
        }
        if message.body_text:
            payload["text"] = message.body_text
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

        try:
            resp = self.session.post(RESEND_API_URL, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            LOGGER.error("Resend request for %s failed: %s", recipient_email, exc)
            return DispatchResult(False, f"{type(exc).__name__}: {exc}")

        if resp.status_code >= 400:
            LOGGER.error("Resend responded with %s: %s", resp.status_code, resp.text[:120])
            return DispatchResult(False, f"HTTP {resp.status_code}: {resp.text[:500]}")
        LOGGER.info("Sent email '%s' to %s", message.subject, recipient_email)
        return DispatchResult(True)


class SmtpDispatcher:
    """Send email via SMTP."""

    def __init__(
        self,
        host: Optional[str],
        sender: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.sender = sender
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _connection(self) -> smtplib.SMTP:
        server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
        except Exception:
            server.quit()
            raise
        return server

    def send(self, recipient_email: str, message: NotificationMessage) -> DispatchResult:
        if not recipient_email:
            return DispatchResult(False, "recipient has no email address")
        if not self.host:
            LOGGER.warning("SMTP_HOST not configured; email suppressed")
            return DispatchResult(False, "SMTP_HOST not configured")

        email = EmailMessage()
        email["Subject"] = message.subject
        email["From"] = self.sender
        email["To"] = recipient_email
        email.set_content(message.body_text or message.subject)
        if message.body_html:
            email.add_alternative(message.body_html, subtype="html")

        try:
            with self._connection() as server:
                server.send_message(email)
        except (smtplib.SMTPException, OSError) as exc:
            LOGGER.error("Failed to send email to %s: %s", recipient_email, exc)
            return DispatchResult(False, f"{type(exc).__name__}: {exc}")
        LOGGER.info("Sent email '%s' to %s", message.subject, recipient_email)
        return DispatchResult(True)


def build_dispatcher(settings: NotifierSettings):
    if settings.email_provider == "resend":
        if not settings.resend_api_key:
            LOGGER.warning("RESEND_API_KEY not configured; falling back to SMTP delivery")
        else:
            return ResendDispatcher(settings.resend_api_key, settings.from_email, timeout=settings.http_timeout)
    return SmtpDispatcher(
        settings.smtp_host,
        settings.from_email,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        timeout=settings.http_timeout,
    )
