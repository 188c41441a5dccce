"""FastAPI router for notification endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from aibos.notifications.engine import NotificationEngine
from aibos.notifications.errors import NotificationValidationError, RateLimitExceeded

router = APIRouter()


class ActionRequest(BaseModel):
    id: str
    label: str
    style: str | None = None


class SendNotificationRequest(BaseModel):
    title: str
    message: str
    type: str = "info"
    priority: str = "normal"
    category: str | None = None
    actions: list[ActionRequest] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    expires_at: datetime | None = None
    persistent: bool = False
    require_interaction: bool = False
    silent: bool = False
    sound: str | None = None
    icon: str | None = None
    image: str | None = None
    badge: str | None = None
    tag: str | None = None
    channels: list[str] | None = None


class ClickRequest(BaseModel):
    action_id: str | None = None


def _engine(request: Request) -> NotificationEngine:
    engine = getattr(request.app.state, "notification_engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Notification engine not available")
    return engine


def _not_found(notification_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Notification {notification_id!r} not found")


@router.post("/api/notifications/send")
async def send_notification(body: SendNotificationRequest, request: Request) -> dict[str, Any]:
    """Admit a notification for delivery."""
    engine = _engine(request)
    draft = body.model_dump(exclude={"channels"})
    try:
        notification_id = engine.send(draft, body.channels)
    except NotificationValidationError as exc:
        raise HTTPException(status_code=422, detail={"field": exc.field, "message": exc.reason})
    except RateLimitExceeded as exc:
        raise HTTPException(status_code=429, detail=str(exc))
    return {"id": notification_id, "pending": engine.pending_count}


@router.get("/api/notifications")
async def list_notifications(
    request: Request,
    limit: int = Query(50, ge=1),
    category: str | None = None,
) -> list[dict[str, Any]]:
    """Notification history, most recent first."""
    engine = _engine(request)
    return [
        n.model_dump(mode="json")
        for n in engine.get_history(limit=limit, category=category)
    ]


@router.get("/api/notifications/analytics")
async def get_analytics(request: Request) -> dict[str, Any]:
    return _engine(request).get_analytics().model_dump(mode="json")


@router.get("/api/notifications/export")
async def export_notifications(request: Request, format: str = "json") -> Response:
    """Export the store and analytics as JSON or CSV."""
    engine = _engine(request)
    if format not in ("json", "csv"):
        raise HTTPException(status_code=400, detail=f"Unsupported export format {format!r}")
    media_type = "text/csv" if format == "csv" else "application/json"
    return Response(content=engine.export_data(format), media_type=media_type)


@router.get("/api/notifications/preferences")
async def get_preferences(request: Request) -> dict[str, Any]:
    return _engine(request).get_preferences().model_dump(mode="json")


@router.patch("/api/notifications/preferences")
async def update_preferences(partial: dict[str, Any], request: Request) -> dict[str, Any]:
    """Merge a partial preferences document into the current preferences."""
    engine = _engine(request)
    try:
        prefs = engine.update_preferences(partial)
    except NotificationValidationError as exc:
        raise HTTPException(status_code=422, detail={"field": exc.field, "message": exc.reason})
    return prefs.model_dump(mode="json")


@router.post("/api/notifications/read-all")
async def mark_all_read(request: Request) -> dict[str, Any]:
    engine = _engine(request)
    engine.mark_all_as_read()
    return {"unread": engine.get_unread_count()}


@router.get("/api/notifications/{notification_id}")
async def get_notification(notification_id: str, request: Request) -> dict[str, Any]:
    notification = _engine(request).store.get(notification_id)
    if notification is None:
        raise _not_found(notification_id)
    return notification.model_dump(mode="json")


@router.post("/api/notifications/{notification_id}/read")
async def mark_read(notification_id: str, request: Request) -> dict[str, Any]:
    if not _engine(request).mark_as_read(notification_id):
        raise _not_found(notification_id)
    return {"id": notification_id, "read": True}


@router.post("/api/notifications/{notification_id}/click")
async def click_notification(
    notification_id: str,
    request: Request,
    body: ClickRequest | None = None,
) -> dict[str, Any]:
    action_id = body.action_id if body else None
    if not _engine(request).click(notification_id, action_id=action_id):
        raise _not_found(notification_id)
    return {"id": notification_id, "clicked": True}


@router.delete("/api/notifications/{notification_id}")
async def dismiss_notification(
    notification_id: str,
    request: Request,
    reason: str = "user",
) -> dict[str, Any]:
    if not _engine(request).dismiss(notification_id, reason=reason):
        raise _not_found(notification_id)
    return {"id": notification_id, "dismissed": True}
