"""Tests for concurrent channel dispatch."""

from __future__ import annotations

import asyncio

import pytest

from aibos.core.config import WebhookConfig
from aibos.notifications.analytics import AnalyticsAggregator
from aibos.notifications.channels import WebhookChannelSender
from aibos.notifications.dispatcher import ChannelDispatcher
from aibos.notifications.errors import ChannelSendFailure
from aibos.notifications.events import EventBus
from aibos.notifications.models import EventType, Notification, NotificationChannel
from aibos.notifications.preferences import PreferenceEngine

_HOOK_URL = "https://hooks.example.com/aibos"


class FlakySender:
    """Raises a fixed number of times, then succeeds."""

    channel = NotificationChannel.TOAST

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def send(self, notification: Notification) -> bool:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("surface busy")
        return True


class SlowSender:
    def __init__(self, channel: NotificationChannel, log: list[str]) -> None:
        self.channel = channel
        self._log = log

    async def send(self, notification: Notification) -> bool:
        self._log.append(f"start:{self.channel.value}")
        await asyncio.sleep(0.01)
        self._log.append(f"end:{self.channel.value}")
        return True


def _dispatcher(senders, clock, max_retries: int = 0, preferences: PreferenceEngine | None = None):
    events = EventBus(clock=clock)
    analytics = AnalyticsAggregator()
    received: list = []
    for event_type in (EventType.DELIVERED, EventType.FAILED, EventType.ERROR):
        events.subscribe(event_type, received.append)
    dispatcher = ChannelDispatcher(
        senders=senders,
        preferences=preferences or PreferenceEngine(clock=clock),
        analytics=analytics,
        events=events,
        max_retries=max_retries,
        retry_backoff_seconds=0.0,
    )
    return dispatcher, analytics, received


def _n() -> Notification:
    return Notification(title="T", message="M")


class TestChannelDispatcher:
    @pytest.mark.asyncio
    async def test_partial_failure(self, clock, stub_sender_cls) -> None:
        senders = {
            NotificationChannel.TOAST: stub_sender_cls(NotificationChannel.TOAST),
            NotificationChannel.BANNER: stub_sender_cls(
                NotificationChannel.BANNER, exc=RuntimeError("banner down")
            ),
        }
        dispatcher, analytics, received = _dispatcher(senders, clock)

        outcomes = await dispatcher.dispatch(_n(), [NotificationChannel.TOAST, NotificationChannel.BANNER])

        assert [o.delivered for o in outcomes] == [True, False]
        delivered = [e for e in received if e.type == EventType.DELIVERED]
        failed = [e for e in received if e.type == EventType.FAILED]
        assert len(delivered) == 1 and delivered[0].channel == NotificationChannel.TOAST
        assert len(failed) == 1 and failed[0].error == "banner down"
        snap = analytics.snapshot()
        assert snap.delivered == 1
        assert snap.failed == 1

    @pytest.mark.asyncio
    async def test_exception_also_reported_as_error_event(self, clock, stub_sender_cls) -> None:
        senders = {
            NotificationChannel.TOAST: stub_sender_cls(NotificationChannel.TOAST, exc=RuntimeError("boom")),
        }
        dispatcher, _, received = _dispatcher(senders, clock)
        n = _n()
        await dispatcher.dispatch(n, [NotificationChannel.TOAST])
        errors = [e for e in received if e.type == EventType.ERROR]
        assert len(errors) == 1
        assert errors[0].context == "send_to_channel:toast"
        assert errors[0].notification_id == n.id
        assert "RuntimeError" in errors[0].stack

    @pytest.mark.asyncio
    async def test_false_result_is_not_deliverable(self, clock, stub_sender_cls) -> None:
        sender = stub_sender_cls(NotificationChannel.TOAST, result=False)
        dispatcher, analytics, received = _dispatcher({NotificationChannel.TOAST: sender}, clock, max_retries=3)
        await dispatcher.dispatch(_n(), [NotificationChannel.TOAST])
        assert sender.calls == 1
        assert received[0].type == EventType.FAILED
        assert received[0].error == "Channel not deliverable"
        assert analytics.snapshot().failed == 1

    @pytest.mark.asyncio
    async def test_disabled_channels_are_silent(self, clock, stub_sender_cls) -> None:
        sender = stub_sender_cls(NotificationChannel.EMAIL)
        dispatcher, analytics, received = _dispatcher({NotificationChannel.EMAIL: sender}, clock)
        outcomes = await dispatcher.dispatch(_n(), [NotificationChannel.EMAIL])
        assert outcomes == []
        assert received == []
        assert sender.calls == 0
        snap = analytics.snapshot()
        assert snap.delivered == 0 and snap.failed == 0

    @pytest.mark.asyncio
    async def test_missing_sender_fails_channel(self, clock) -> None:
        dispatcher, analytics, received = _dispatcher({}, clock)
        await dispatcher.dispatch(_n(), [NotificationChannel.SYSTEM])
        assert received[0].type == EventType.FAILED
        assert analytics.snapshot().failed == 1

    @pytest.mark.asyncio
    async def test_retries_raising_sender(self, clock) -> None:
        sender = FlakySender(failures=2)
        dispatcher, analytics, received = _dispatcher({NotificationChannel.TOAST: sender}, clock, max_retries=2)
        outcomes = await dispatcher.dispatch(_n(), [NotificationChannel.TOAST])
        assert outcomes[0].delivered is True
        assert sender.calls == 3
        assert analytics.snapshot().delivered == 1
        assert all(e.type != EventType.ERROR for e in received)

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, clock) -> None:
        sender = FlakySender(failures=5)
        dispatcher, analytics, _ = _dispatcher({NotificationChannel.TOAST: sender}, clock, max_retries=1)
        outcomes = await dispatcher.dispatch(_n(), [NotificationChannel.TOAST])
        assert outcomes[0].delivered is False
        assert sender.calls == 2
        assert analytics.snapshot().failed == 1

    @pytest.mark.asyncio
    async def test_non_retryable_failure_sent_once(self, clock, stub_sender_cls) -> None:
        sender = stub_sender_cls(
            NotificationChannel.TOAST,
            exc=ChannelSendFailure("toast", "rejected", retryable=False),
        )
        dispatcher, analytics, received = _dispatcher({NotificationChannel.TOAST: sender}, clock, max_retries=3)
        outcomes = await dispatcher.dispatch(_n(), [NotificationChannel.TOAST])
        assert sender.calls == 1
        assert outcomes[0].error == "rejected"
        assert analytics.snapshot().failed == 1
        assert [e.type for e in received] == [EventType.ERROR, EventType.FAILED]

    @pytest.mark.asyncio
    async def test_webhook_client_error_posted_once(self, clock, httpx_mock) -> None:
        httpx_mock.add_response(url=_HOOK_URL, method="POST", status_code=400)
        sender = WebhookChannelSender(WebhookConfig(url=_HOOK_URL))
        preferences = PreferenceEngine(clock=clock)
        preferences.update({"channels": {"webhook": True}})
        dispatcher, analytics, _ = _dispatcher(
            {NotificationChannel.WEBHOOK: sender}, clock, max_retries=3, preferences=preferences
        )
        try:
            outcomes = await dispatcher.dispatch(_n(), [NotificationChannel.WEBHOOK])
        finally:
            await sender.close()

        assert len(httpx_mock.get_requests()) == 1
        assert outcomes[0].delivered is False
        assert outcomes[0].error == "Webhook returned HTTP 400"
        assert analytics.snapshot().failed == 1

    @pytest.mark.asyncio
    async def test_sends_run_concurrently(self, clock) -> None:
        log: list[str] = []
        senders = {
            NotificationChannel.TOAST: SlowSender(NotificationChannel.TOAST, log),
            NotificationChannel.BANNER: SlowSender(NotificationChannel.BANNER, log),
        }
        dispatcher, _, _ = _dispatcher(senders, clock)
        await dispatcher.dispatch(_n(), [NotificationChannel.TOAST, NotificationChannel.BANNER])
        assert log[:2] == ["start:toast", "start:banner"]
