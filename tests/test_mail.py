"""
tests/test_mail.py -- SMTP password reset mail.

smtplib.SMTP is patched; the tests check the built message and the SMTP
conversation, never a real server.
"""

from __future__ import annotations

from unittest.mock import patch

from auth.mail import SmtpMailService, create_mail_service
from core.config import Settings

RESET_URL = "https://admin.example.com/reset-password?token=abc123"


def test_create_mail_service_disabled_without_host() -> None:
    assert create_mail_service(Settings(smtp_host="")) is None


def test_create_mail_service_from_settings() -> None:
    service = create_mail_service(
        Settings(smtp_host="smtp.example.com", smtp_port=2525, smtp_username="u", mail_from="cms@example.com")
    )
    assert isinstance(service, SmtpMailService)
    assert (service.host, service.port, service.username, service.from_address) == (
        "smtp.example.com",
        2525,
        "u",
        "cms@example.com",
    )


def test_message_has_text_and_html_with_link() -> None:
    msg = SmtpMailService("smtp.example.com", from_address="cms@example.com").build_message(
        "user@example.com", RESET_URL
    )
    assert msg["Subject"] == "Reset your password"
    assert msg["To"] == "user@example.com"
    assert msg["From"] == "cms@example.com"
    text = msg.get_body(preferencelist=("plain",)).get_content()
    html = msg.get_body(preferencelist=("html",)).get_content()
    assert RESET_URL in text
    assert f'href="{RESET_URL}"' in html
    assert "1 hour" in text


def test_send_uses_starttls_and_login() -> None:
    service = SmtpMailService("smtp.example.com", 587, "user", "pw", use_tls=True)
    with patch("auth.mail.smtplib.SMTP") as smtp_cls:
        result = service.send_password_reset_email("user@example.com", RESET_URL)

    smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=10)
    smtp = smtp_cls.return_value.__enter__.return_value
    smtp.starttls.assert_called_once()
    smtp.login.assert_called_once_with("user", "pw")
    smtp.send_message.assert_called_once()
    assert result.message_id
    assert result.preview_url is None


def test_send_without_tls_or_credentials() -> None:
    service = SmtpMailService("localhost", 1025, use_tls=False)
    with patch("auth.mail.smtplib.SMTP") as smtp_cls:
        service.send_password_reset_email("user@example.com", RESET_URL)

    smtp = smtp_cls.return_value.__enter__.return_value
    smtp.starttls.assert_not_called()
    smtp.login.assert_not_called()
