"""Mail transport abstractions and implementations."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from storefront.config import settings

logger = logging.getLogger(__name__)


class Mailer(ABC):
    """Abstract mail transport. ``send`` raises when delivery fails."""

    @abstractmethod
    async def send(self, to: str, subject: str, text: str, html: str | None = None) -> None:
        """Deliver one message."""


class SMTPMailer(Mailer):
    """Mailer backed by a plain SMTP server (STARTTLS by default)."""

    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        from_email: str,
        from_name: str | None = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        if not host or not from_email:
            raise ValueError("SMTP mailer requires a host and a sender address")
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.from_name = from_name
        self.use_tls = use_tls
        self.timeout = timeout

    async def send(self, to: str, subject: str, text: str, html: str | None = None) -> None:
        message = self._build_message(to, subject, text, html)
        await asyncio.to_thread(self._deliver, to, message)
        logger.info("Email sent", extra={"to": to, "subject": subject})

    def _build_message(
        self, to: str, subject: str, text: str, html: str | None
    ) -> MIMEText | MIMEMultipart:
        if html:
            message: MIMEText | MIMEMultipart = MIMEMultipart("alternative")
            message.attach(MIMEText(text, "plain", "utf-8"))
            message.attach(MIMEText(html, "html", "utf-8"))
        else:
            message = MIMEText(text, "plain", "utf-8")
        message["Subject"] = subject
        sender = self.from_email
        message["From"] = f"{self.from_name} <{sender}>" if self.from_name else sender
        message["To"] = to
        return message

    def _deliver(self, to: str, message: MIMEText | MIMEMultipart) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.sendmail(self.from_email, [to], message.as_string())


def create_mailer() -> Mailer | None:
    """Return the configured mailer, or None when SMTP is not set up."""
    if not settings.mailer_enabled:
        return None
    return SMTPMailer(
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        username=settings.SMTP_USERNAME,
        password=settings.SMTP_PASSWORD,
        from_email=settings.EMAIL_FROM or settings.SMTP_USERNAME,
        from_name=settings.STORE_NAME,
        use_tls=settings.SMTP_USE_TLS,
    )
