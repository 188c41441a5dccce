"""Notification data models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    SYSTEM = "system"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    NotificationPriority.LOW: 0,
    NotificationPriority.NORMAL: 1,
    NotificationPriority.HIGH: 2,
    NotificationPriority.CRITICAL: 3,
}


class NotificationChannel(str, Enum):
    BROWSER = "browser"
    SYSTEM = "system"
    TOAST = "toast"
    BANNER = "banner"
    EMAIL = "email"
    SMS = "sms"
    WEBHOOK = "webhook"


class ActionStyle(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    DANGER = "danger"


class NotificationAction(BaseModel):
    """A button attached to a notification. The invocation is never serialized."""

    id: str
    label: str
    invocation: Callable[[], Any] | None = Field(default=None, exclude=True)
    style: ActionStyle | None = None


class NotificationDraft(BaseModel):
    """Everything a producer supplies. The id is always assigned by the engine."""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1, max_length=100)
    message: str = Field(min_length=1, max_length=500)
    type: NotificationType = NotificationType.INFO
    priority: NotificationPriority = NotificationPriority.NORMAL
    category: str | None = None
    actions: list[NotificationAction] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    expires_at: datetime | None = None
    persistent: bool = False
    require_interaction: bool = False
    silent: bool = False
    sound: str | None = None
    icon: str | None = None
    image: str | None = None
    badge: str | None = None
    tag: str | None = None

    @field_validator("expires_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Notification(NotificationDraft):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    delivered_at: datetime | None = None
    read: bool = False

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now

    def find_action(self, action_id: str) -> NotificationAction | None:
        for action in self.actions:
            if action.id == action_id:
                return action
        return None


class NotificationTemplate(BaseModel):
    id: str
    title: str
    message: str
    type: NotificationType = NotificationType.INFO
    priority: NotificationPriority = NotificationPriority.NORMAL
    category: str | None = None
    icon: str | None = None


class QueuedNotification(BaseModel):
    """A notification waiting for dispatch together with its requested channels."""

    notification: Notification
    channels: list[NotificationChannel]
    enqueued_at: datetime


class ChannelOutcome(BaseModel):
    """Settled result of one channel send."""

    channel: NotificationChannel
    delivered: bool
    error: str | None = None


# --- Preferences ---


class QuietHours(BaseModel):
    enabled: bool = False
    start: str = Field(default="22:00", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    end: str = Field(default="08:00", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    timezone: str = "UTC"

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone {value!r}") from exc
        return value


class CategoryPreference(BaseModel):
    enabled: bool = True
    priority: NotificationPriority = NotificationPriority.LOW
    sound: bool = True
    channels: list[NotificationChannel] = Field(default_factory=list)


def _default_channels() -> dict[NotificationChannel, bool]:
    return {
        NotificationChannel.BROWSER: True,
        NotificationChannel.SYSTEM: True,
        NotificationChannel.TOAST: True,
        NotificationChannel.BANNER: True,
        NotificationChannel.EMAIL: False,
        NotificationChannel.SMS: False,
        NotificationChannel.WEBHOOK: False,
    }


class NotificationPreferences(BaseModel):
    model_config = ConfigDict(extra="forbid")

    channels: dict[NotificationChannel, bool] = Field(default_factory=_default_channels)
    categories: dict[str, CategoryPreference] = Field(default_factory=dict)
    quiet_hours: QuietHours = Field(default_factory=QuietHours)
    do_not_disturb: bool = False
    max_notifications: int = Field(default=50, ge=1)
    group_similar: bool = True
    show_previews: bool = True


# --- Analytics ---


class AnalyticsSnapshot(BaseModel):
    """Point-in-time copy of the analytics counters and derived figures."""

    model_config = ConfigDict(frozen=True)

    sent: int = 0
    delivered: int = 0
    clicked: int = 0
    dismissed: int = 0
    expired: int = 0
    failed: int = 0
    average_display_time: float = 0.0
    click_through_rate: float = 0.0
    category_breakdown: dict[str, int] = Field(default_factory=dict)
    hourly_distribution: dict[str, int] = Field(default_factory=dict)


# --- Lifecycle events ---


class EventType(str, Enum):
    QUEUED = "queued"
    DELIVERED = "delivered"
    FAILED = "failed"
    CLICKED = "clicked"
    DISMISSED = "dismissed"
    UPDATED = "updated"
    ALL_READ = "all_read"
    ERROR = "error"


class DismissReason(str, Enum):
    USER = "user"
    EXPIRED = "expired"


class NotificationEvent(BaseModel):
    """Lifecycle transition of a single notification (or of the whole store for all_read)."""

    type: EventType
    notification: Notification | None = None
    channel: NotificationChannel | None = None
    error: str | None = None
    reason: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ErrorEvent(BaseModel):
    """Context attached to every ``error`` lifecycle event."""

    type: EventType = EventType.ERROR
    message: str
    context: str
    notification_id: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    stack: str | None = None


class NotificationExport(BaseModel):
    notifications: list[Notification]
    analytics: AnalyticsSnapshot
    exported_at: datetime
