"""Core type definitions shared across AI-BOS modules."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default wall-clock source: the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)
