import asyncio
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Optional

from ..config import settings
from ..exceptions import ConfigurationError, DeliveryError

logger = logging.getLogger(__name__)


class EmailService:
    """Outbound mail over SMTP. Sends run in a worker thread."""

    @staticmethod
    def is_configured() -> bool:
        return settings.smtp_configured

    @staticmethod
    def build_message(
        to: str,
        subject: str,
        text: str,
        html: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> EmailMessage:
        sender = from_email or settings.from_email or settings.smtp_user
        message = EmailMessage()
        message["From"] = formataddr((from_name, sender)) if from_name else sender
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        if reply_to:
            message["Reply-To"] = reply_to
        message.set_content(text)
        if html:
            message.add_alternative(html, subtype="html")
        return message

    @staticmethod
    def _deliver(message: EmailMessage) -> None:
        if settings.smtp_secure:
            smtp = smtplib.SMTP_SSL(
                settings.smtp_host, settings.smtp_port, timeout=settings.http_timeout_seconds)
        else:
            smtp = smtplib.SMTP(
                settings.smtp_host, settings.smtp_port, timeout=settings.http_timeout_seconds)
        with smtp:
            if not settings.smtp_secure:
                smtp.starttls()
            smtp.login(settings.smtp_user, settings.smtp_password)
            smtp.send_message(message)

    @staticmethod
    async def send(message: EmailMessage) -> str:
        """Send a prepared message and return its Message-ID"""
        if not EmailService.is_configured():
            raise ConfigurationError("Email")
        try:
            await asyncio.to_thread(EmailService._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP delivery to {message['To']} failed: {e}")
            raise DeliveryError("email", str(e) or "Failed to send Email")
        return message["Message-ID"]
