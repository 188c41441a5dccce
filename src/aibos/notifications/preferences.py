"""Preference engine: decides whether, and on which channels, a notification goes out."""

from __future__ import annotations

import logging
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from aibos.core.types import Clock, utc_now
from aibos.notifications.models import (
    Notification,
    NotificationChannel,
    NotificationPreferences,
    NotificationPriority,
)
from aibos.notifications.validation import first_error

logger = logging.getLogger(__name__)


def _merge(base: dict[str, Any], partial: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in partial.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class PreferenceEngine:
    """Holds the process-wide preferences and answers admission questions against them.

    ``should_deliver`` only answers "can we notify at all"; channel enablement
    is resolved separately by ``enabled_channels`` at dispatch time.
    """

    def __init__(
        self,
        preferences: NotificationPreferences | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._preferences = preferences or NotificationPreferences()
        self._clock = clock

    @property
    def preferences(self) -> NotificationPreferences:
        return self._preferences.model_copy(deep=True)

    def update(self, partial: dict[str, Any]) -> NotificationPreferences:
        """Merge ``partial`` into the current preferences, nested sections included."""
        merged = _merge(self._preferences.model_dump(mode="json"), partial)
        try:
            self._preferences = NotificationPreferences.model_validate(merged)
        except ValidationError as exc:
            raise first_error(exc) from exc
        return self.preferences

    def should_deliver(self, notification: Notification) -> bool:
        if notification.priority == NotificationPriority.CRITICAL:
            return True

        prefs = self._preferences
        if prefs.do_not_disturb:
            return False
        if prefs.quiet_hours.enabled and self.in_quiet_hours():
            return False

        category = prefs.categories.get(notification.category or "")
        if category is not None:
            if not category.enabled:
                return False
            if notification.priority.rank < category.priority.rank:
                return False
        return True

    def in_quiet_hours(self) -> bool:
        quiet = self._preferences.quiet_hours
        now = self._clock().astimezone(ZoneInfo(quiet.timezone)).strftime("%H:%M")
        if quiet.start <= quiet.end:
            return quiet.start <= now <= quiet.end
        # Window crosses midnight
        return now >= quiet.start or now <= quiet.end

    def mutes_sound(self, notification: Notification) -> bool:
        category = self._preferences.categories.get(notification.category or "")
        return category is not None and not category.sound

    def enabled_channels(
        self,
        notification: Notification,
        requested: Iterable[NotificationChannel],
    ) -> list[NotificationChannel]:
        """Requested channels that are switched on, narrowed by the category's subset."""
        prefs = self._preferences
        category = prefs.categories.get(notification.category or "")
        subset = set(category.channels) if category and category.channels else None

        enabled: list[NotificationChannel] = []
        for channel in requested:
            if not prefs.channels.get(channel, False):
                continue
            if subset is not None and channel not in subset:
                logger.debug("Channel %s excluded by category %r", channel.value, notification.category)
                continue
            if channel not in enabled:
                enabled.append(channel)
        return enabled
