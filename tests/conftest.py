"""Shared test fixtures and helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from aibos.core.config import NotificationConfig
from aibos.notifications.channels import DisplayRequest
from aibos.notifications.engine import NotificationEngine
from aibos.notifications.models import Notification, NotificationChannel


class FakeClock:
    """Settable wall clock. Call it to read the time, ``advance`` to move it."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)

    def set_time(self, hour: int, minute: int = 0) -> None:
        self.now = self.now.replace(hour=hour, minute=minute)


class FakePlatform:
    """Host notification primitive that records what it was asked to show."""

    def __init__(self, permission: str = "granted", grant_on_request: bool = True) -> None:
        self._permission = permission
        self._grant_on_request = grant_on_request
        self.shown: list[DisplayRequest] = []

    @property
    def permission(self) -> str:
        return self._permission

    async def request_permission(self) -> str:
        self._permission = "granted" if self._grant_on_request else "denied"
        return self._permission

    def show(self, request: DisplayRequest) -> None:
        self.shown.append(request)


class StubSender:
    """Channel sender with a fixed result, or a fixed exception."""

    def __init__(
        self,
        channel: NotificationChannel,
        result: bool = True,
        exc: Exception | None = None,
    ) -> None:
        self.channel = channel
        self.result = result
        self.exc = exc
        self.calls = 0
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> bool:
        self.calls += 1
        if self.exc is not None:
            raise self.exc
        self.sent.append(notification)
        return self.result


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def senders() -> dict[NotificationChannel, StubSender]:
    return {channel: StubSender(channel) for channel in NotificationChannel}


@pytest.fixture
def engine_config() -> NotificationConfig:
    return NotificationConfig(
        queue_interval_ms=5,
        cleanup_interval_ms=20,
        max_retries=0,
        retry_backoff_seconds=0.0,
        default_channels=["toast"],
    )


@pytest.fixture
def engine(clock, senders, engine_config) -> NotificationEngine:
    return NotificationEngine(config=engine_config, senders=senders, clock=clock)


@pytest.fixture
def stub_sender_cls() -> type[StubSender]:
    return StubSender


@pytest.fixture
def fake_platform_cls() -> type[FakePlatform]:
    return FakePlatform


@pytest.fixture
def clock_cls() -> type[FakeClock]:
    return FakeClock


def draft(**overrides) -> dict:
    """A valid notification payload with optional overrides."""
    data = {"title": "Build finished", "message": "All 42 tests passed"}
    data.update(overrides)
    return data


@pytest.fixture
def make_draft():
    return draft
