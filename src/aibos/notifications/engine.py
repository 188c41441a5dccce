"""Notification engine: admission, queue processing, cleanup and the public API."""

from __future__ import annotations

import asyncio
import csv
import io
import logging
import re
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml

from aibos.core.config import NotificationConfig, Settings
from aibos.core.types import Clock, utc_now
from aibos.notifications.analytics import AnalyticsAggregator
from aibos.notifications.channels import (
    BrowserChannelSender,
    ChannelSender,
    NotificationPlatform,
    build_channel_senders,
)
from aibos.notifications.dispatcher import ChannelDispatcher
from aibos.notifications.errors import NotificationValidationError, RateLimitExceeded
from aibos.notifications.events import EventBus, EventHandler
from aibos.notifications.models import (
    AnalyticsSnapshot,
    DismissReason,
    EventType,
    Notification,
    NotificationChannel,
    NotificationDraft,
    NotificationExport,
    NotificationPreferences,
    NotificationTemplate,
    NotificationType,
    QueuedNotification,
)
from aibos.notifications.preferences import PreferenceEngine
from aibos.notifications.queue import PriorityQueue
from aibos.notifications.rate_limit import RateLimiter
from aibos.notifications.store import NotificationStore
from aibos.notifications.validation import NotificationValidator

logger = logging.getLogger(__name__)

_DEFAULT_TEMPLATES_PATH = Path(__file__).resolve().parents[3] / "config" / "notification_templates.yml"

_CSV_HEADERS = ["id", "title", "message", "type", "priority", "category", "timestamp"]


class NotificationEngine:
    """Priority-ordered notification pipeline with multi-channel fan-out.

    ``send`` runs admission synchronously (validate, rate-limit, preference
    check, enqueue). Two background loops started by :meth:`start` do the
    rest: the queue processor dispatches at most one notification per tick,
    and the cleanup sweeper evicts expired notifications from the store.

    Args:
        config: Intervals, rate-limit and retry settings.
        senders: Channel-to-sender mapping. Defaults to the built-in senders.
        platform: Host notification primitive for the browser channel.
        preferences: Initial preferences. Defaults to permissive values.
        clock: Wall-clock source returning aware datetimes.
        templates_path: YAML file with desktop event templates.
    """

    def __init__(
        self,
        config: NotificationConfig | None = None,
        senders: Mapping[NotificationChannel, ChannelSender] | None = None,
        platform: NotificationPlatform | None = None,
        preferences: NotificationPreferences | None = None,
        clock: Clock = utc_now,
        templates_path: str | Path | None = None,
    ) -> None:
        self._config = config or NotificationConfig()
        self._clock = clock
        self._events = EventBus(clock=clock)
        self._analytics = AnalyticsAggregator()
        self._validator = NotificationValidator(clock=clock)
        self._rate_limiter = RateLimiter(
            limit=self._config.rate_limit_count,
            window_ms=self._config.rate_limit_window_ms,
            clock=clock,
        )
        self._preferences = PreferenceEngine(preferences, clock=clock)
        self._queue = PriorityQueue()
        self._store = NotificationStore(self._preferences.preferences.max_notifications)
        self._senders = dict(senders) if senders is not None else build_channel_senders(platform)
        self._dispatcher = ChannelDispatcher(
            senders=self._senders,
            preferences=self._preferences,
            analytics=self._analytics,
            events=self._events,
            max_retries=self._config.max_retries,
            retry_backoff_seconds=self._config.retry_backoff_seconds,
        )
        self._tasks: set[asyncio.Task] = set()
        self._stopping = asyncio.Event()
        self._templates: dict[str, NotificationTemplate] = {}
        self._load_templates(Path(templates_path) if templates_path else _DEFAULT_TEMPLATES_PATH)

    def _load_templates(self, path: Path) -> None:
        if not path.exists():
            return
        with open(path) as fh:
            data = yaml.safe_load(fh) or {}
        for tmpl_id, tmpl_data in data.get("templates", {}).items():
            self._templates[tmpl_id] = NotificationTemplate(id=tmpl_id, **tmpl_data)

    @property
    def templates(self) -> dict[str, NotificationTemplate]:
        return dict(self._templates)

    @property
    def store(self) -> NotificationStore:
        return self._store

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    # -- admission -----------------------------------------------------------

    def send(
        self,
        draft: NotificationDraft | Mapping[str, Any],
        channels: Iterable[NotificationChannel | str] | NotificationChannel | str | None = None,
    ) -> str:
        """Admit a notification and return its id.

        Raises:
            NotificationValidationError: A field constraint was broken.
            RateLimitExceeded: Too many notifications inside the window.
        """
        try:
            notification = self._validator.validate(draft)
            requested = self._resolve_channels(channels)
        except NotificationValidationError as exc:
            self._events.emit_error(exc, "send")
            raise

        if not self._rate_limiter.admit():
            exc = RateLimitExceeded(self._rate_limiter.limit, self._rate_limiter.window_ms)
            self._events.emit_error(exc, "send", notification.id)
            raise exc

        if not self._preferences.should_deliver(notification):
            logger.info(
                "Suppressed %s notification %s by preferences",
                notification.priority.value, notification.id,
            )
            return notification.id

        if self._preferences.mutes_sound(notification):
            notification.silent = True

        now = self._clock()
        self._queue.enqueue(
            QueuedNotification(notification=notification, channels=requested, enqueued_at=now)
        )
        self._analytics.record_sent(notification, now)
        self._events.publish(EventType.QUEUED, notification)
        return notification.id

    def _resolve_channels(
        self, channels: Iterable[NotificationChannel | str] | NotificationChannel | str | None
    ) -> list[NotificationChannel]:
        if channels is None:
            raw = list(self._config.default_channels)
        elif isinstance(channels, str):
            # A single channel, not an iterable of characters
            raw = [channels]
        else:
            raw = list(channels)
        resolved: list[NotificationChannel] = []
        for value in raw:
            try:
                resolved.append(NotificationChannel(value))
            except ValueError as exc:
                raise NotificationValidationError("channels", f"unknown channel {value!r}") from exc
        return resolved

    def info(self, title: str, message: str, **options: Any) -> str:
        return self.send({"title": title, "message": message, "type": NotificationType.INFO, **options})

    def success(self, title: str, message: str, **options: Any) -> str:
        return self.send({"title": title, "message": message, "type": NotificationType.SUCCESS, **options})

    def warning(self, title: str, message: str, **options: Any) -> str:
        return self.send({"title": title, "message": message, "type": NotificationType.WARNING, **options})

    def error(self, title: str, message: str, **options: Any) -> str:
        return self.send({"title": title, "message": message, "type": NotificationType.ERROR, **options})

    def notify_event(
        self,
        template_id: str,
        context: dict[str, Any] | None = None,
        channels: Iterable[NotificationChannel | str] | NotificationChannel | str | None = None,
    ) -> str:
        """Send a desktop event notification rendered from a template."""
        context = context or {}
        template = self._templates.get(template_id)

        if template:
            draft: dict[str, Any] = {
                "title": self._render(template.title, context),
                "message": self._render(template.message, context),
                "type": template.type,
                "priority": template.priority,
                "category": template.category,
                "icon": template.icon,
            }
        else:
            draft = {
                "title": template_id.replace("_", " ").title(),
                "message": f"Notification: {template_id}",
                "type": NotificationType.SYSTEM,
            }
        draft["metadata"] = {"template_id": template_id, **context}
        return self.send(draft, channels)

    def _render(self, template_str: str, context: dict[str, Any]) -> str:
        """Single-pass ``{key}`` substitution; unknown placeholders are preserved."""
        str_context = {k: str(v) for k, v in context.items()}

        def _replace(m: re.Match) -> str:
            return str_context.get(m.group(1), m.group(0))

        return re.sub(r"\{(\w+)\}", _replace, template_str)

    # -- background work -----------------------------------------------------

    async def process_next(self) -> bool:
        """One queue-processor tick. Returns False when the queue was empty."""
        item = self._queue.dequeue()
        if item is None:
            return False

        notification = item.notification
        if notification.is_expired(self._clock()):
            self._expire(notification)
            return True

        await self._dispatcher.dispatch(notification, item.channels)
        notification.delivered_at = self._clock()
        self._store.add(notification)
        return True

    def sweep(self) -> int:
        """One cleanup tick. Returns the number of notifications expired."""
        expired = self._store.remove_expired(self._clock())
        for notification in expired:
            self._expire(notification)
        if expired:
            logger.info("Expired %d notification(s)", len(expired))
        return len(expired)

    def _expire(self, notification: Notification) -> None:
        self._analytics.record_expired()
        self._events.publish(EventType.DISMISSED, notification, reason=DismissReason.EXPIRED.value)

    async def start(self) -> None:
        """Start the queue processor and cleanup sweeper on the running loop."""
        if self._tasks:
            return
        self._stopping.clear()
        loops = (
            (self._run_queue_processor(), "notification-queue"),
            (self._run_cleanup(), "notification-cleanup"),
        )
        for coro, name in loops:
            task = asyncio.create_task(coro, name=name)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        logger.info("Notification engine started")

    async def stop(self) -> None:
        """Signal both loops to exit and wait for them.

        Loops are never cancelled: a tick that is already dispatching finishes,
        so in-flight channel sends run to completion and the notification still
        reaches the store.
        """
        self._stopping.set()
        tasks = list(self._tasks)
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        if tasks:
            logger.info("Notification engine stopped")

    async def close(self) -> None:
        """Stop background loops and release sender resources."""
        await self.stop()
        for sender in self._senders.values():
            close = getattr(sender, "close", None)
            if close is not None:
                await close()

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def _run_queue_processor(self) -> None:
        interval = self._config.queue_interval_ms / 1000
        while not self._stopping.is_set():
            try:
                await self.process_next()
            except Exception as exc:
                self._events.emit_error(exc, "process_queue")
            await self._pause(interval)

    async def _run_cleanup(self) -> None:
        interval = self._config.cleanup_interval_ms / 1000
        while not await self._pause(interval):
            try:
                self.sweep()
            except Exception as exc:
                self._events.emit_error(exc, "cleanup")

    async def _pause(self, seconds: float) -> bool:
        """Sleep between ticks. Returns True as soon as a stop is requested."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    # -- store operations ----------------------------------------------------

    def mark_as_read(self, notification_id: str) -> bool:
        notification = self._store.mark_read(notification_id)
        if notification is None:
            return False
        self._events.publish(EventType.UPDATED, notification)
        return True

    def mark_all_as_read(self) -> None:
        self._store.mark_all_read()
        self._events.publish(EventType.ALL_READ)

    def dismiss(self, notification_id: str, reason: str = DismissReason.USER.value) -> bool:
        notification = self._store.remove(notification_id)
        if notification is None:
            return False
        self._analytics.record_dismissed(notification, self._clock())
        self._events.publish(EventType.DISMISSED, notification, reason=reason)
        return True

    def click(self, notification_id: str, action_id: str | None = None) -> bool:
        """Record a click (optionally on an action button) and run the action."""
        notification = self._store.get(notification_id)
        if notification is None:
            return False

        notification.read = True
        self._analytics.record_clicked(notification, self._clock())
        self._events.publish(EventType.CLICKED, notification)

        if action_id is not None:
            action = notification.find_action(action_id)
            if action is None:
                self._events.emit_error(f"Unknown action {action_id!r}", "click", notification.id)
            elif action.invocation is not None:
                try:
                    action.invocation()
                except Exception as exc:
                    self._events.emit_error(exc, f"action:{action_id}", notification.id)
        return True

    def clear_all(self) -> None:
        self._store.clear()

    def get_history(self, limit: int = 50, category: str | None = None) -> list[Notification]:
        return self._store.history(limit=limit, category=category)

    def get_unread_count(self) -> int:
        return self._store.unread_count()

    # -- analytics, export, preferences --------------------------------------

    def get_analytics(self) -> AnalyticsSnapshot:
        return self._analytics.snapshot()

    def reset_analytics(self) -> None:
        self._analytics.reset()

    def export_data(self, format: str = "json") -> str:
        if format == "csv":
            buf = io.StringIO()
            writer = csv.writer(buf, lineterminator="\n")
            writer.writerow(_CSV_HEADERS)
            for n in self._store.list_all():
                writer.writerow([
                    n.id,
                    n.title,
                    n.message,
                    n.type.value,
                    n.priority.value,
                    n.category or "",
                    n.created_at.isoformat(),
                ])
            return buf.getvalue()
        if format != "json":
            raise ValueError(f"Unsupported export format {format!r}. Available: csv, json")

        export = NotificationExport(
            notifications=self._store.list_all(),
            analytics=self._analytics.snapshot(),
            exported_at=self._clock(),
        )
        return export.model_dump_json(indent=2)

    def get_preferences(self) -> NotificationPreferences:
        return self._preferences.preferences

    def update_preferences(self, partial: dict[str, Any]) -> NotificationPreferences:
        prefs = self._preferences.update(partial)
        self._store.trim(prefs.max_notifications)
        return prefs

    # -- events and platform -------------------------------------------------

    def subscribe(self, event_type: EventType | str, handler: EventHandler) -> None:
        self._events.subscribe(event_type, handler)

    def unsubscribe(self, event_type: EventType | str, handler: EventHandler) -> bool:
        return self._events.unsubscribe(event_type, handler)

    async def request_permission(self) -> bool:
        sender = self._senders.get(NotificationChannel.BROWSER)
        if isinstance(sender, BrowserChannelSender):
            return await sender.request_permission()
        return False


def create_notification_engine(
    settings: Settings | None = None,
    platform: NotificationPlatform | None = None,
    clock: Clock = utc_now,
) -> NotificationEngine:
    """Build an engine with the built-in senders wired from settings."""
    settings = settings or Settings()
    return NotificationEngine(
        config=settings.notification,
        senders=build_channel_senders(platform, settings.webhook),
        platform=platform,
        clock=clock,
        templates_path=settings.notification.templates_path,
    )
