"""Channel senders: one uniform ``send`` contract per delivery surface."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel

from aibos.core.config import WebhookConfig
from aibos.notifications.errors import ChannelSendFailure
from aibos.notifications.models import Notification, NotificationChannel

logger = logging.getLogger(__name__)


@runtime_checkable
class ChannelSender(Protocol):
    """Protocol for delivery channels.

    ``send`` returns False when the channel is simply not deliverable right
    now, and raises when delivery was attempted and broke.
    """

    @property
    def channel(self) -> NotificationChannel: ...

    async def send(self, notification: Notification) -> bool: ...


# --- In-app (browser) channel ---


class DisplayRequest(BaseModel):
    """What the platform surface is asked to render."""

    title: str
    body: str
    icon: str | None = None
    badge: str | None = None
    image: str | None = None
    tag: str | None = None
    silent: bool = False
    require_interaction: bool = False


@runtime_checkable
class NotificationPlatform(Protocol):
    """Host-provided notification primitive (permission + display)."""

    @property
    def permission(self) -> str: ...

    async def request_permission(self) -> str: ...

    def show(self, request: DisplayRequest) -> None: ...


class BrowserChannelSender:
    """In-app channel backed by the host platform's notification primitive."""

    channel = NotificationChannel.BROWSER

    def __init__(self, platform: NotificationPlatform | None = None) -> None:
        self._platform = platform

    async def send(self, notification: Notification) -> bool:
        if self._platform is None or self._platform.permission != "granted":
            return False
        self._platform.show(
            DisplayRequest(
                title=notification.title,
                body=notification.message,
                icon=notification.icon,
                badge=notification.badge,
                image=notification.image,
                tag=notification.tag or notification.id,
                silent=notification.silent,
                require_interaction=notification.require_interaction,
            )
        )
        return True

    async def request_permission(self) -> bool:
        if self._platform is None:
            return False
        if self._platform.permission == "default":
            return await self._platform.request_permission() == "granted"
        return self._platform.permission == "granted"


# --- Local display surfaces ---


class LocalDisplaySender:
    """System, toast and banner surfaces. Always succeeds; keeps what it displayed."""

    def __init__(self, channel: NotificationChannel) -> None:
        self.channel = channel
        self.displayed: list[Notification] = []

    async def send(self, notification: Notification) -> bool:
        logger.info("[%s] %s: %s", self.channel.value.upper(), notification.title, notification.message)
        self.displayed.append(notification)
        return True


# --- External channels ---


class MockEmailSender:
    """Email adapter that records messages in an in-memory outbox."""

    channel = NotificationChannel.EMAIL

    def __init__(self) -> None:
        self.outbox: list[Notification] = []

    async def send(self, notification: Notification) -> bool:
        logger.info("[EMAIL] Sending: %s", notification.title)
        self.outbox.append(notification)
        return True


class MockSMSSender:
    """SMS adapter that records messages in an in-memory outbox."""

    channel = NotificationChannel.SMS

    def __init__(self) -> None:
        self.outbox: list[Notification] = []

    async def send(self, notification: Notification) -> bool:
        logger.info("[SMS] Sending: %s", notification.title)
        self.outbox.append(notification)
        return True


class WebhookChannelSender:
    """POSTs the notification as JSON to a configured URL."""

    channel = NotificationChannel.WEBHOOK

    def __init__(self, config: WebhookConfig | None = None) -> None:
        self._config = config or WebhookConfig()
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.timeout_seconds),
            headers=self._config.headers,
        )

    async def send(self, notification: Notification) -> bool:
        if not self._config.url:
            return False
        payload: dict[str, Any] = {
            "event": "notification",
            "notification": notification.model_dump(mode="json"),
        }
        try:
            resp = await self._http.post(self._config.url, json=payload)
        except httpx.HTTPError as exc:
            raise ChannelSendFailure(self.channel.value, f"Webhook request failed: {exc}") from exc
        if resp.is_error:
            # Only 5xx is worth another attempt
            raise ChannelSendFailure(
                self.channel.value,
                f"Webhook returned HTTP {resp.status_code}",
                retryable=resp.is_server_error,
            )
        return True

    async def close(self) -> None:
        await self._http.aclose()


def build_channel_senders(
    platform: NotificationPlatform | None = None,
    webhook_config: WebhookConfig | None = None,
) -> dict[NotificationChannel, ChannelSender]:
    """Static channel-to-sender mapping, resolved once at engine construction."""
    return {
        NotificationChannel.BROWSER: BrowserChannelSender(platform),
        NotificationChannel.SYSTEM: LocalDisplaySender(NotificationChannel.SYSTEM),
        NotificationChannel.TOAST: LocalDisplaySender(NotificationChannel.TOAST),
        NotificationChannel.BANNER: LocalDisplaySender(NotificationChannel.BANNER),
        NotificationChannel.EMAIL: MockEmailSender(),
        NotificationChannel.SMS: MockSMSSender(),
        NotificationChannel.WEBHOOK: WebhookChannelSender(webhook_config),
    }
