"""Exceptions raised by the notification pipeline."""

from __future__ import annotations


class NotificationError(Exception):
    """Base class for notification pipeline errors."""


class NotificationValidationError(NotificationError, ValueError):
    """A candidate notification (or preferences update) broke a field constraint."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"Invalid {field}: {message}")
        self.field = field
        self.reason = message


class RateLimitExceeded(NotificationError):
    """Admission refused because the sliding window is full."""

    def __init__(self, limit: int, window_ms: int) -> None:
        super().__init__(f"Rate limit exceeded: {limit} notifications per {window_ms} ms")
        self.limit = limit
        self.window_ms = window_ms


class ChannelSendFailure(NotificationError):
    """A channel sender could not deliver. Never propagated past the dispatcher.

    ``retryable`` is False when repeating the send cannot help (a client error).
    """

    def __init__(self, channel: str, message: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.channel = channel
        self.retryable = retryable
