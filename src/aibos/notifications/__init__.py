"""Notification dispatch engine for the AI-BOS desktop shell."""

from aibos.notifications.engine import NotificationEngine, create_notification_engine
from aibos.notifications.errors import (
    ChannelSendFailure,
    NotificationError,
    NotificationValidationError,
    RateLimitExceeded,
)
from aibos.notifications.models import (
    EventType,
    Notification,
    NotificationChannel,
    NotificationDraft,
    NotificationPriority,
    NotificationType,
)

__all__ = [
    "ChannelSendFailure",
    "EventType",
    "Notification",
    "NotificationChannel",
    "NotificationDraft",
    "NotificationEngine",
    "NotificationError",
    "NotificationPriority",
    "NotificationType",
    "NotificationValidationError",
    "RateLimitExceeded",
    "create_notification_engine",
]
