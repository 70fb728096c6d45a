"""Email adapters - console and SMTP implementations."""

from .console import ConsoleEmailSender
from .smtp import SmtpEmailSender

__all__ = ["ConsoleEmailSender", "SmtpEmailSender"]
