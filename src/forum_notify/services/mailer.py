"""Outgoing mail transports.

A transport makes one best-effort delivery attempt and reports the outcome as
a boolean; retries, if any, belong to the mail server.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from email.message import EmailMessage

import aiosmtplib

from forum_notify.core.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class EmailTransport(ABC):
    """Delivers a single message."""

    @abstractmethod
    async def send_message(
        self,
        sender: str,
        recipient: str,
        subject: str,
        text_body: str,
        html_body: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> bool:
        """Send one message; return False instead of raising on delivery failure."""


def build_message(
    sender: str,
    recipient: str,
    subject: str,
    text_body: str,
    html_body: str | None = None,
    headers: Mapping[str, str] | None = None,
) -> EmailMessage:
    """Assemble a text message with an optional HTML alternative."""
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = recipient
    msg["Subject"] = subject
    for name, value in (headers or {}).items():
        msg[name] = value
    msg.set_content(text_body)
    if html_body:
        msg.add_alternative(html_body, subtype="html")
    return msg


class SmtpTransport(EmailTransport):
    """Send through the configured SMTP relay with aiosmtplib."""

    def __init__(self, config: Settings | None = None) -> None:
        self.settings = config or default_settings

    async def send_message(
        self,
        sender: str,
        recipient: str,
        subject: str,
        text_body: str,
        html_body: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> bool:
        if not self.settings.smtp_host:
            logger.warning("SMTP not configured, not sending mail to user address %s", recipient)
            return False

        try:
            msg = build_message(sender, recipient, subject, text_body, html_body, headers)
        except ValueError as exc:
            logger.error("Could not build mail to %s: %s", recipient, exc)
            return False

        # STARTTLS on 587, implicit TLS on 465.
        port = int(self.settings.smtp_port)
        start_tls = self.settings.smtp_tls and port != 465
        use_tls = self.settings.smtp_tls and port == 465
        try:
            await aiosmtplib.send(
                msg,
                hostname=self.settings.smtp_host,
                port=port,
                username=self.settings.smtp_user,
                password=self.settings.smtp_password,
                start_tls=start_tls,
                use_tls=use_tls,
                timeout=self.settings.smtp_timeout_seconds,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error("SMTP delivery to %s failed: %s", recipient, exc)
            return False
        return True


@dataclass
class SentMessage:
    sender: str
    recipient: str
    subject: str
    text_body: str
    html_body: str | None
    headers: dict[str, str]


@dataclass
class RecordingTransport(EmailTransport):
    """Keeps messages in memory; used for dry runs and tests.

    Recipients listed in ``fail_for`` get a failed delivery.
    """

    sent: list[SentMessage] = field(default_factory=list)
    fail_for: set[str] = field(default_factory=set)

    async def send_message(
        self,
        sender: str,
        recipient: str,
        subject: str,
        text_body: str,
        html_body: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> bool:
        if recipient in self.fail_for:
            return False
        self.sent.append(
            SentMessage(sender, recipient, subject, text_body, html_body, dict(headers or {}))
        )
        return True

    def to(self, recipient: str) -> list[SentMessage]:
        """Return messages delivered to ``recipient`` in send order."""
        return [message for message in self.sent if message.recipient == recipient]
