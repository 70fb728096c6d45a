"""
Console email sender adapter - Implements EmailSender protocol.

This module provides a console-based implementation of the domain's
email sender port, logging outbound messages for development setups.
"""

import logging

logger = logging.getLogger(__name__)


class ConsoleEmailSender:
    """
    Implements EmailSender protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes - one-time codes appear in the log.
    """

    def send(self, to: str, subject: str, body: str) -> None:
        """
        Log the message to console (simulates email delivery).

        The message is logged at INFO level to be visible in container logs.

        Args:
            to: Recipient email address
            subject: Message subject
            body: Plain-text message body
        """
        logger.info("[EMAIL] To: %s Subject: %s Body: %s", to, subject, body)
