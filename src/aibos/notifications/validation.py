"""Admission-time validation of candidate notifications."""

from __future__ import annotations

import uuid
from typing import Any, Mapping

from pydantic import ValidationError

from aibos.core.types import Clock, utc_now
from aibos.notifications.errors import NotificationValidationError
from aibos.notifications.models import Notification, NotificationDraft


def first_error(exc: ValidationError) -> NotificationValidationError:
    """Convert the first pydantic error into a NotificationValidationError naming its field."""
    err = exc.errors()[0]
    field = ".".join(str(part) for part in err.get("loc", ())) or "notification"
    return NotificationValidationError(field, err.get("msg", "invalid value"))


class NotificationValidator:
    """Assigns ids and enforces the field constraints of a notification."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock

    def validate(self, candidate: NotificationDraft | Mapping[str, Any]) -> Notification:
        if isinstance(candidate, NotificationDraft):
            data = candidate.model_dump()
            data["actions"] = list(candidate.actions)
        else:
            data = dict(candidate)

        if "id" in data:
            raise NotificationValidationError("id", "ids are assigned by the engine")

        try:
            draft = NotificationDraft.model_validate(data)
        except ValidationError as exc:
            raise first_error(exc) from exc

        return Notification(
            **draft.model_dump(exclude={"actions"}),
            actions=draft.actions,
            id=str(uuid.uuid4()),
            created_at=self._clock(),
        )
