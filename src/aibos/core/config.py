"""Application configuration loaded from environment and config files."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class NotificationConfig(BaseSettings):
    """Notification engine configuration."""

    model_config = {"env_prefix": "AIBOS_NOTIFICATION_"}

    queue_interval_ms: int = 100
    cleanup_interval_ms: int = 5 * 60 * 1000
    rate_limit_count: int = 10
    rate_limit_window_ms: int = 60_000
    max_retries: int = 3
    retry_backoff_seconds: float = 0.1
    default_channels: list[str] = Field(default_factory=lambda: ["browser"])
    templates_path: str | None = None


class WebhookConfig(BaseSettings):
    """Outbound webhook channel configuration."""

    model_config = {"env_prefix": "AIBOS_WEBHOOK_"}

    url: str | None = None
    timeout_seconds: float = 10.0
    headers: dict[str, str] = Field(default_factory=dict)


class Settings(BaseSettings):
    """Root application settings."""

    model_config = {"env_prefix": "AIBOS_"}

    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    notification: NotificationConfig = Field(default_factory=NotificationConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
