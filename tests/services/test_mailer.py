# tests/services/test_mailer.py
"""Tests for the SMTP transport."""

from unittest.mock import AsyncMock

import aiosmtplib
import pytest

from forum_notify.services.mailer import SmtpTransport


@pytest.fixture()
def smtp_send(mocker) -> AsyncMock:
    return mocker.patch("forum_notify.services.mailer.aiosmtplib.send", new_callable=AsyncMock)


@pytest.fixture()
def smtp(test_settings) -> SmtpTransport:
    return SmtpTransport(test_settings.model_copy(update={"smtp_host": "smtp.example.com", "smtp_port": 587}))


@pytest.mark.asyncio
async def test_sends_multipart_message_with_starttls(smtp, smtp_send) -> None:
    sent = await smtp.send_message(
        "noreply@lms.example.com",
        "alice@example.com",
        "PY101: Welcome",
        "plain body",
        "<p>html body</p>",
        {"Precedence": "Bulk"},
    )

    assert sent is True
    message = smtp_send.await_args.args[0]
    assert message["Subject"] == "PY101: Welcome"
    assert message["Precedence"] == "Bulk"
    assert message.is_multipart()
    kwargs = smtp_send.await_args.kwargs
    assert kwargs["hostname"] == "smtp.example.com"
    assert kwargs["start_tls"] is True
    assert kwargs["use_tls"] is False


@pytest.mark.asyncio
async def test_header_with_line_break_is_a_failed_delivery(smtp, smtp_send) -> None:
    sent = await smtp.send_message("noreply@lms.example.com", "alice@example.com", "Bad\nsubject", "body")

    assert sent is False
    smtp_send.assert_not_awaited()


@pytest.mark.asyncio
async def test_smtp_error_is_a_failed_delivery(smtp, smtp_send) -> None:
    smtp_send.side_effect = aiosmtplib.SMTPException("relay refused")

    assert await smtp.send_message("noreply@lms.example.com", "alice@example.com", "Hi", "body") is False


@pytest.mark.asyncio
async def test_unconfigured_host_sends_nothing(test_settings, smtp_send) -> None:
    transport = SmtpTransport(test_settings)

    assert await transport.send_message("noreply@lms.example.com", "alice@example.com", "Hi", "body") is False
    smtp_send.assert_not_awaited()
