"""
Notifications - best-effort mail dispatch and the in-app inbox.

Dispatch happens after a unit has committed. A failing mail provider is
logged and reported back as ``False``; it never turns a committed
business outcome into an error.
"""

import logging
import math
from dataclasses import dataclass

from .exceptions import NotFound
from .models import NotificationRecord
from .ports import EmailSender, Store

logger = logging.getLogger(__name__)


@dataclass
class NotificationDispatcher:
    """Fire-and-forget wrapper around the EmailSender port."""

    email_sender: EmailSender

    def dispatch(self, to: str, subject: str, body: str) -> bool:
        """
        Send one message, swallowing delivery failures.

        Returns:
            True if the sender accepted the message, False if it failed.
            A False result leaves the committed change unnotified.
        """
        try:
            self.email_sender.send(to, subject, body)
        except Exception:
            logger.warning("Committed but unnotified: mail to %s (%s) failed", to, subject, exc_info=True)
            return False
        return True


@dataclass(frozen=True)
class NotificationPage:
    notifications: list[NotificationRecord]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass
class NotificationInbox:
    """Read-side operations on a user's notifications."""

    store: Store

    def list_notifications(
        self, user_id: int, unread_only: bool = False, page: int = 1, limit: int = 20
    ) -> NotificationPage:
        page = max(page, 1)
        limit = max(limit, 1)
        rows, total = self.store.list_notifications(user_id, unread_only, limit, (page - 1) * limit)
        return NotificationPage(notifications=rows, total=total, page=page, limit=limit)

    def mark_read(self, user_id: int, notification_code: str) -> NotificationRecord:
        notification = self.store.mark_notification_read(user_id, notification_code)
        if notification is None:
            raise NotFound("Notification not found")
        return notification

    def mark_all_read(self, user_id: int) -> int:
        return self.store.mark_all_notifications_read(user_id)

    def delete(self, user_id: int, notification_code: str) -> NotificationRecord:
        notification = self.store.delete_notification(user_id, notification_code)
        if notification is None:
            raise NotFound("Notification not found")
        return notification

    def unread_count(self, user_id: int) -> int:
        return self.store.unread_count(user_id)
