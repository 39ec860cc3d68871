"""SMTP mail provider.

Provides:
- TLS/SSL support
- Authentication
- Failure classification into an ``EmailResult``
"""

import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formatdate, make_msgid

from loguru import logger

from eloquentlog.core.config import settings


@dataclass
class EmailResult:
    """Email send result."""

    success: bool
    message_id: str | None = None
    error: str | None = None


class SMTPProvider:
    """SMTP email provider.

    Connection parameters default to settings and can be injected, e.g. for a
    local debugging server.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        user: str | None = None,
        password: str | None = None,
        use_tls: bool | None = None,
        use_ssl: bool | None = None,
        from_email: str | None = None,
        from_name: str | None = None,
        timeout: float = 30.0,
    ):
        self.host = host or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.user = user or settings.SMTP_USER
        self.password = password or settings.SMTP_PASSWORD
        self.use_tls = use_tls if use_tls is not None else settings.SMTP_TLS
        self.use_ssl = use_ssl if use_ssl is not None else settings.SMTP_SSL
        self.from_email = from_email or settings.EMAILS_FROM_EMAIL
        self.from_name = from_name or settings.EMAILS_FROM_NAME
        self.timeout = timeout

    def is_configured(self) -> bool:
        """Check if SMTP is properly configured."""
        return bool(self.host and self.from_email)

    def _create_connection(self) -> smtplib.SMTP | smtplib.SMTP_SSL:
        if self.use_ssl:
            context = ssl.create_default_context()
            server = smtplib.SMTP_SSL(
                self.host, self.port, context=context, timeout=self.timeout
            )
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            if self.use_tls:
                context = ssl.create_default_context()
                server.starttls(context=context)

        if self.user and self.password:
            server.login(self.user, self.password)

        return server

    def build_message(
        self,
        to_email: str,
        subject: str,
        plain_body: str,
        html_body: str | None = None,
    ) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = (
            f"{self.from_name} <{self.from_email}>" if self.from_name else str(self.from_email)
        )
        msg["To"] = to_email
        msg["Date"] = formatdate(usegmt=True)
        msg["Message-ID"] = make_msgid()
        msg.set_content(plain_body, charset="utf-8")
        if html_body:
            msg.add_alternative(html_body, subtype="html")
        return msg

    def send(
        self,
        to_email: str,
        subject: str,
        plain_body: str,
        html_body: str | None = None,
    ) -> EmailResult:
        """Send email synchronously.

        Args:
            to_email: Recipient email
            subject: Email subject
            plain_body: Plain text body
            html_body: Optional HTML alternative

        Returns:
            EmailResult with success status
        """
        if not self.is_configured():
            return EmailResult(success=False, error="SMTP not configured")

        try:
            msg = self.build_message(to_email, subject, plain_body, html_body)
            with self._create_connection() as server:
                server.send_message(msg)

            logger.info(f"Email sent successfully to {to_email}")
            return EmailResult(success=True, message_id=msg["Message-ID"])

        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed: {e}")
            return EmailResult(success=False, error=f"Authentication failed: {e}")
        except smtplib.SMTPRecipientsRefused as e:
            logger.error(f"Recipient refused: {to_email}")
            return EmailResult(success=False, error=f"Recipient refused: {e}")
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error: {e}")
            return EmailResult(success=False, error=f"SMTP error: {e}")
        except OSError as e:
            logger.error(f"SMTP connection error: {e}")
            return EmailResult(success=False, error=f"Connection error: {e}")
