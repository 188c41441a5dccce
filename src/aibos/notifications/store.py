"""In-memory notification store."""

from __future__ import annotations

import logging
from datetime import datetime

from aibos.notifications.models import Notification

logger = logging.getLogger(__name__)


class NotificationStore:
    """Delivered notifications, most recent first, capped at ``max_notifications``."""

    def __init__(self, max_notifications: int = 50) -> None:
        self._notifications: list[Notification] = []
        self._max = max_notifications

    def add(self, notification: Notification) -> list[Notification]:
        """Insert at the front and return whatever fell off the end."""
        self._notifications.insert(0, notification)
        return self.trim()

    def trim(self, max_notifications: int | None = None) -> list[Notification]:
        if max_notifications is not None:
            self._max = max_notifications
        evicted = self._notifications[self._max:]
        if evicted:
            del self._notifications[self._max:]
            logger.debug("Evicted %d notification(s) over the cap of %d", len(evicted), self._max)
        return evicted

    def get(self, notification_id: str) -> Notification | None:
        for n in self._notifications:
            if n.id == notification_id:
                return n
        return None

    def remove(self, notification_id: str) -> Notification | None:
        for index, n in enumerate(self._notifications):
            if n.id == notification_id:
                return self._notifications.pop(index)
        return None

    def mark_read(self, notification_id: str) -> Notification | None:
        n = self.get(notification_id)
        if n is not None:
            n.read = True
        return n

    def mark_all_read(self) -> int:
        for n in self._notifications:
            n.read = True
        return len(self._notifications)

    def history(self, limit: int = 50, category: str | None = None) -> list[Notification]:
        filtered = self._notifications
        if category:
            filtered = [n for n in filtered if n.category == category]
        return list(filtered[:max(0, limit)])

    def remove_expired(self, now: datetime) -> list[Notification]:
        expired = [n for n in self._notifications if n.is_expired(now)]
        if expired:
            self._notifications = [n for n in self._notifications if not n.is_expired(now)]
        return expired

    def unread_count(self) -> int:
        return sum(1 for n in self._notifications if not n.read)

    def list_all(self) -> list[Notification]:
        return list(self._notifications)

    def clear(self) -> None:
        self._notifications.clear()

    @property
    def count(self) -> int:
        return len(self._notifications)
