"""Usage analytics for the notification pipeline."""

from __future__ import annotations

from collections import Counter, deque
from datetime import datetime

from aibos.notifications.models import AnalyticsSnapshot, Notification


class AnalyticsAggregator:
    """Monotonic lifecycle counters plus the raw samples derived figures come from.

    Click-through rate and average display time are computed in
    :meth:`snapshot`, never stored.
    """

    def __init__(self, display_window: int = 1000) -> None:
        self._display_window = display_window
        self.reset()

    def reset(self) -> None:
        self._counters: Counter[str] = Counter()
        self._categories: Counter[str] = Counter()
        self._hours: Counter[str] = Counter()
        self._display_times_ms: deque[float] = deque(maxlen=self._display_window)

    def record_sent(self, notification: Notification, at: datetime) -> None:
        self._counters["sent"] += 1
        self._categories[notification.category or "uncategorized"] += 1
        self._hours[at.strftime("%H")] += 1

    def record_delivered(self) -> None:
        self._counters["delivered"] += 1

    def record_failed(self) -> None:
        self._counters["failed"] += 1

    def record_clicked(self, notification: Notification, at: datetime) -> None:
        self._counters["clicked"] += 1
        self._record_display_time(notification, at)

    def record_dismissed(self, notification: Notification, at: datetime) -> None:
        self._counters["dismissed"] += 1
        self._record_display_time(notification, at)

    def record_expired(self) -> None:
        self._counters["expired"] += 1

    def _record_display_time(self, notification: Notification, at: datetime) -> None:
        if notification.delivered_at is None:
            return
        elapsed = (at - notification.delivered_at).total_seconds() * 1000
        self._display_times_ms.append(max(0.0, elapsed))

    def snapshot(self) -> AnalyticsSnapshot:
        delivered = self._counters["delivered"]
        clicked = self._counters["clicked"]
        ctr = round(clicked / delivered, 4) if delivered else 0.0
        avg = (
            round(sum(self._display_times_ms) / len(self._display_times_ms), 2)
            if self._display_times_ms
            else 0.0
        )
        return AnalyticsSnapshot(
            sent=self._counters["sent"],
            delivered=delivered,
            clicked=clicked,
            dismissed=self._counters["dismissed"],
            expired=self._counters["expired"],
            failed=self._counters["failed"],
            average_display_time=avg,
            click_through_rate=ctr,
            category_breakdown=dict(self._categories),
            hourly_distribution=dict(self._hours),
        )
