"""
auth/mail.py -- Password reset mail delivery over SMTP.

Only one message is ever sent: the reset link. create_mail_service() returns
None when SMTP_HOST is not configured; the forgot-password endpoint then
returns the raw token in its response instead (development mode).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Optional, Protocol

from core.config import Settings

logger = logging.getLogger("static_admin.mail")

_SUBJECT = "Reset your password"

_TEXT_BODY = """\
We received a request to reset your password.

Open the link below to choose a new password:
{reset_url}

This link expires in 1 hour.

If you did not request this, you can ignore this email.
"""

_HTML_BODY = """\
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: sans-serif; padding: 20px; max-width: 600px;">
  <h2>Password reset</h2>
  <p>We received a request to reset your password.</p>
  <p style="margin: 24px 0;">
    <a href="{reset_url}"
       style="background: #2563eb; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px;">
      Reset password
    </a>
  </p>
  <p style="color: #666; font-size: 14px;">This link expires in 1 hour.</p>
  <p style="color: #666; font-size: 14px;">If you did not request this, you can ignore this email.</p>
</body>
</html>
"""


@dataclass
class MailResult:
    message_id: str
    preview_url: Optional[str] = None


class MailService(Protocol):
    def send_password_reset_email(self, to: str, reset_url: str) -> MailResult: ...


class SmtpMailService:
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        from_address: str = "noreply@static-admin.local",
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address

    def build_message(self, to: str, reset_url: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = _SUBJECT
        msg["From"] = self.from_address
        msg["To"] = to
        msg["Message-ID"] = make_msgid(domain=self.from_address.rpartition("@")[2] or None)
        msg.set_content(_TEXT_BODY.format(reset_url=reset_url))
        msg.add_alternative(_HTML_BODY.format(reset_url=reset_url), subtype="html")
        return msg

    def send_password_reset_email(self, to: str, reset_url: str) -> MailResult:
        msg = self.build_message(to, reset_url)
        with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(msg)
        logger.info("Password reset email sent via %s", self.host)
        return MailResult(message_id=msg["Message-ID"])


def create_mail_service(settings: Settings) -> Optional[MailService]:
    if not settings.smtp_host:
        logger.warning("SMTP_HOST not set -- password reset tokens will be returned in API responses")
        return None
    return SmtpMailService(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        from_address=settings.mail_from,
    )
