"""API tests for the notification endpoints."""

from __future__ import annotations

import time
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from aibos.core.config import NotificationConfig, Settings
from aibos.notifications.engine import NotificationEngine
from aibos.web.app import create_app


@pytest.fixture
def api_engine(senders) -> NotificationEngine:
    config = NotificationConfig(
        queue_interval_ms=5,
        cleanup_interval_ms=50,
        max_retries=0,
        retry_backoff_seconds=0.0,
        default_channels=["toast"],
    )
    return NotificationEngine(config=config, senders=senders)


@pytest.fixture
def client(api_engine) -> Iterator[TestClient]:
    app = create_app(settings=Settings(), notification_engine=api_engine)
    with TestClient(app) as client:
        yield client


def _send(client: TestClient, **overrides) -> str:
    body = {"title": "Backup complete", "message": "3 folders synced"}
    body.update(overrides)
    resp = client.post("/api/notifications/send", json=body)
    assert resp.status_code == 200, resp.text
    return resp.json()["id"]


def _wait_delivered(client: TestClient, notification_id: str) -> dict:
    for _ in range(200):
        resp = client.get(f"/api/notifications/{notification_id}")
        if resp.status_code == 200:
            return resp.json()
        time.sleep(0.01)
    raise AssertionError(f"{notification_id} was never delivered")


class TestSendEndpoint:
    def test_send_and_deliver(self, client: TestClient) -> None:
        nid = _send(client, category="backup", priority="high")
        data = _wait_delivered(client, nid)
        assert data["title"] == "Backup complete"
        assert data["priority"] == "high"
        assert data["delivered_at"] is not None
        assert data["read"] is False

    def test_validation_error(self, client: TestClient) -> None:
        resp = client.post("/api/notifications/send", json={"title": "", "message": "m"})
        assert resp.status_code == 422
        assert resp.json()["detail"]["field"] == "title"

    def test_unknown_channel(self, client: TestClient) -> None:
        resp = client.post(
            "/api/notifications/send",
            json={"title": "t", "message": "m", "channels": ["pager"]},
        )
        assert resp.status_code == 422
        assert resp.json()["detail"]["field"] == "channels"

    def test_rate_limited(self, client: TestClient) -> None:
        for _ in range(10):
            _send(client)
        resp = client.post("/api/notifications/send", json={"title": "t", "message": "m"})
        assert resp.status_code == 429


class TestStoreEndpoints:
    def test_list_and_filter(self, client: TestClient) -> None:
        a = _send(client, category="windows")
        b = _send(client, category="files")
        _wait_delivered(client, a)
        _wait_delivered(client, b)
        resp = client.get("/api/notifications", params={"category": "windows"})
        assert [n["id"] for n in resp.json()] == [a]
        assert len(client.get("/api/notifications").json()) == 2

    def test_list_rejects_non_positive_limit(self, client: TestClient) -> None:
        assert client.get("/api/notifications", params={"limit": 0}).status_code == 422
        assert client.get("/api/notifications", params={"limit": -1}).status_code == 422

    def test_read_click_dismiss(self, client: TestClient) -> None:
        nid = _send(client)
        _wait_delivered(client, nid)

        assert client.post(f"/api/notifications/{nid}/read").status_code == 200
        assert client.get(f"/api/notifications/{nid}").json()["read"] is True

        resp = client.post(f"/api/notifications/{nid}/click")
        assert resp.json() == {"id": nid, "clicked": True}

        assert client.delete(f"/api/notifications/{nid}").status_code == 200
        assert client.delete(f"/api/notifications/{nid}").status_code == 404

    def test_read_all(self, client: TestClient) -> None:
        nid = _send(client)
        _wait_delivered(client, nid)
        resp = client.post("/api/notifications/read-all")
        assert resp.json() == {"unread": 0}

    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/notifications/missing"),
            ("post", "/api/notifications/missing/read"),
            ("post", "/api/notifications/missing/click"),
            ("delete", "/api/notifications/missing"),
        ],
    )
    def test_unknown_id(self, client: TestClient, method: str, path: str) -> None:
        assert getattr(client, method)(path).status_code == 404


class TestAnalyticsAndExport:
    def test_analytics(self, client: TestClient) -> None:
        nid = _send(client, category="windows")
        _wait_delivered(client, nid)
        data = client.get("/api/notifications/analytics").json()
        assert data["sent"] == 1
        assert data["delivered"] == 1
        assert data["category_breakdown"] == {"windows": 1}

    def test_export_formats(self, client: TestClient) -> None:
        nid = _send(client)
        _wait_delivered(client, nid)

        resp = client.get("/api/notifications/export", params={"format": "csv"})
        assert resp.headers["content-type"].startswith("text/csv")
        assert resp.text.splitlines()[0] == "id,title,message,type,priority,category,timestamp"

        resp = client.get("/api/notifications/export")
        assert resp.headers["content-type"].startswith("application/json")
        assert resp.json()["notifications"][0]["id"] == nid

        assert client.get("/api/notifications/export", params={"format": "xml"}).status_code == 400


class TestPreferencesEndpoints:
    def test_get_defaults(self, client: TestClient) -> None:
        data = client.get("/api/notifications/preferences").json()
        assert data["do_not_disturb"] is False
        assert data["channels"]["toast"] is True
        assert data["channels"]["email"] is False

    def test_patch_merges(self, client: TestClient) -> None:
        resp = client.patch(
            "/api/notifications/preferences",
            json={"do_not_disturb": True, "channels": {"email": True}},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["do_not_disturb"] is True
        assert data["channels"]["email"] is True
        assert data["channels"]["toast"] is True

    def test_patch_invalid(self, client: TestClient) -> None:
        resp = client.patch("/api/notifications/preferences", json={"max_notifications": 0})
        assert resp.status_code == 422
        assert resp.json()["detail"]["field"] == "max_notifications"


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["service"] == "aibos-notifications"
        assert data["engine_running"] is True
