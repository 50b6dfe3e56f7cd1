"""
Operator notifications by email.

Fire-and-forget: a failed send is logged and swallowed, the caller never
sees it. smtplib is blocking, so the send runs in a worker thread.
"""
import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from interest_finder.core.config import settings

logger = logging.getLogger(__name__)

SUBJECT_PREFIX = "[Facebook Interest Finder]"
SMTP_TIMEOUT_SECONDS = 30


class EmailNotifier:
    """Sends plain-text emails through an SMTP relay (SSL)."""

    def __init__(
        self,
        sender: str = None,
        password: str = None,
        default_recipient: str = None,
        smtp_host: str = None,
        smtp_port: int = None,
    ):
        self.sender = sender if sender is not None else settings.EMAIL_USER
        self.password = password if password is not None else settings.EMAIL_APP_PASSWORD
        self.default_recipient = default_recipient if default_recipient is not None else settings.ADMIN_EMAIL
        self.smtp_host = smtp_host or settings.SMTP_HOST
        self.smtp_port = smtp_port or settings.SMTP_PORT

    @property
    def enabled(self) -> bool:
        return bool(self.sender and self.password and self.default_recipient)

    def _send_sync(self, recipient: str, subject: str, body: str) -> None:
        msg = MIMEMultipart()
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = f"{SUBJECT_PREFIX} {subject}"
        msg.attach(MIMEText(body, "plain", "utf-8"))

        with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, timeout=SMTP_TIMEOUT_SECONDS) as server:
            server.login(self.sender, self.password)
            server.sendmail(self.sender, [recipient], msg.as_string())

    async def send(self, subject: str, body: str, recipient: Optional[str] = None) -> bool:
        """
        Sends an email to the operator (or `recipient`).

        Returns:
            True if the relay accepted the message, False otherwise
        """
        if not self.enabled:
            logger.warning(f"[Notifier] Email not configured, dropping notification: {subject}")
            return False

        to = recipient or self.default_recipient
        try:
            await asyncio.to_thread(self._send_sync, to, subject, body)
            logger.info(f"📧 [Notifier] Sent '{subject}' to {to}")
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"❌ [Notifier] Failed to send '{subject}': {e}")
            return False


_notifier: Optional[EmailNotifier] = None


def get_notifier() -> EmailNotifier:
    global _notifier
    if _notifier is None:
        _notifier = EmailNotifier()
    return _notifier
