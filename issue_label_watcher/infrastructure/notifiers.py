"""Notification delivery implementations."""
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional
from issue_label_watcher.domain.notifier_interface import INotifier


logger = logging.getLogger(__name__)


class SmtpNotifier(INotifier):
    """Sends notifications as HTML email over SMTP with STARTTLS."""

    def __init__(
        self,
        server: str,
        sender: str,
        recipient: str,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ):
        """Initialize SMTP notifier.

        Args:
            server: SMTP server host
            sender: From address
            recipient: To address
            port: SMTP port (587 when not given)
            username: Login user, if the server requires authentication
            password: Login password
        """
        self._server = server
        self._port = port or 587
        self._sender = sender
        self._recipient = recipient
        self._username = username
        self._password = password

    def notify(self, subject: str, html_body: str) -> None:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self._sender
        message["To"] = self._recipient
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html_body, subtype="html")

        with smtplib.SMTP(self._server, self._port) as smtp:
            smtp.starttls()
            if self._username:
                smtp.login(self._username, self._password or "")
            smtp.send_message(message)
        logger.info(f"Sent '{subject}' to {self._recipient}")


class LogNotifier(INotifier):
    """Writes notifications to the log; used when no mail transport is configured."""

    def notify(self, subject: str, html_body: str) -> None:
        logger.info(f"Notification: {subject}")
        logger.debug(html_body)
