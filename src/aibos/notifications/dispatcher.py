"""Concurrent multi-channel fan-out with per-channel outcome reporting."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Mapping

from aibos.notifications.analytics import AnalyticsAggregator
from aibos.notifications.channels import ChannelSender
from aibos.notifications.errors import ChannelSendFailure
from aibos.notifications.events import EventBus
from aibos.notifications.models import (
    ChannelOutcome,
    EventType,
    Notification,
    NotificationChannel,
)
from aibos.notifications.preferences import PreferenceEngine

logger = logging.getLogger(__name__)

_NOT_DELIVERABLE = "Channel not deliverable"


class ChannelDispatcher:
    """Sends one notification on every enabled channel at once and waits for all to settle.

    Args:
        senders: Static channel-to-sender mapping.
        preferences: Source of channel enablement.
        analytics: Receives one delivered/failed tick per channel outcome.
        events: Receives one delivered/failed event per channel outcome.
        max_retries: Extra attempts for a sender that raises. A
            ``ChannelSendFailure`` marked non-retryable is never retried.
        retry_backoff_seconds: Base delay, doubled on each retry.
    """

    def __init__(
        self,
        senders: Mapping[NotificationChannel, ChannelSender],
        preferences: PreferenceEngine,
        analytics: AnalyticsAggregator,
        events: EventBus,
        max_retries: int = 3,
        retry_backoff_seconds: float = 0.1,
    ) -> None:
        self._senders = dict(senders)
        self._preferences = preferences
        self._analytics = analytics
        self._events = events
        self._max_retries = max(0, max_retries)
        self._backoff = retry_backoff_seconds

    async def dispatch(
        self,
        notification: Notification,
        channels: Iterable[NotificationChannel],
    ) -> list[ChannelOutcome]:
        enabled = self._preferences.enabled_channels(notification, channels)
        if not enabled:
            return []

        results = await asyncio.gather(
            *(self._send(channel, notification) for channel in enabled),
            return_exceptions=True,
        )

        outcomes: list[ChannelOutcome] = []
        for channel, result in zip(enabled, results):
            if isinstance(result, BaseException):
                result = ChannelOutcome(channel=channel, delivered=False, error=str(result))
            outcomes.append(result)
            if result.delivered:
                self._analytics.record_delivered()
                self._events.publish(EventType.DELIVERED, notification, channel=channel)
            else:
                self._analytics.record_failed()
                self._events.publish(
                    EventType.FAILED,
                    notification,
                    channel=channel,
                    error=result.error or _NOT_DELIVERABLE,
                )
        return outcomes

    async def _send(self, channel: NotificationChannel, notification: Notification) -> ChannelOutcome:
        sender = self._senders.get(channel)
        if sender is None:
            return ChannelOutcome(channel=channel, delivered=False, error="No sender registered")

        attempts = self._max_retries + 1
        last_exc: Exception | None = None
        for attempt in range(attempts):
            try:
                delivered = await sender.send(notification)
            except Exception as exc:
                last_exc = exc
                if isinstance(exc, ChannelSendFailure) and not exc.retryable:
                    break
                if attempt < attempts - 1:
                    delay = self._backoff * (2 ** attempt)
                    logger.warning(
                        "Channel %s raised %s, retrying in %.2fs (%d/%d)",
                        channel.value, exc, delay, attempt + 1, attempts,
                    )
                    await asyncio.sleep(delay)
                continue
            if delivered:
                return ChannelOutcome(channel=channel, delivered=True)
            return ChannelOutcome(channel=channel, delivered=False, error=_NOT_DELIVERABLE)

        assert last_exc is not None
        self._events.emit_error(last_exc, f"send_to_channel:{channel.value}", notification.id)
        return ChannelOutcome(
            channel=channel,
            delivered=False,
            error=str(last_exc) or type(last_exc).__name__,
        )
