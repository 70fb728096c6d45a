"""
SMTP email sender adapter - Implements EmailSender protocol.

Delivers plain-text messages through an SMTP relay with aiosmtplib.
The domain calls send() synchronously from request worker threads, so
each message runs its own short event loop. Connection and protocol
errors are reported as DependencyFailure; the notification dispatcher
decides what to do with them.
"""

import asyncio
import logging
from email.message import EmailMessage

import aiosmtplib

from csrms.domain.exceptions import DependencyFailure

logger = logging.getLogger(__name__)


class SmtpEmailSender:
    """
    Implements EmailSender protocol via aiosmtplib.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Opens one connection per message.
    """

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str = "",
        password: str = "",
        starttls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._username = username
        self._password = password
        self._starttls = starttls
        self._timeout = timeout

    def send(self, to: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        try:
            asyncio.run(self._deliver(message))
        except (aiosmtplib.SMTPException, OSError) as e:
            raise DependencyFailure(f"SMTP delivery to {to} failed") from e

        logger.info("Email sent to %s: %s", to, subject)

    async def _deliver(self, message: EmailMessage) -> None:
        # Credentials are optional for local relays
        await aiosmtplib.send(
            message,
            hostname=self._host,
            port=self._port,
            username=self._username or None,
            password=self._password or None,
            start_tls=self._starttls,
            timeout=self._timeout,
        )
