from datetime import datetime, timedelta, timezone

from farmwatch.db import SessionLocal
from farmwatch.models import Notification


def _post(client, headers, **overrides):
    payload = {"type": "fire", "severity": "high", "title": "Fire near barn", "message": "Smoke reported"}
    payload.update(overrides)
    response = client.post("/api/notifications", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_and_list(client, admin_headers):
    created = _post(client, admin_headers, metadata={"zone": "north"})
    assert created["read"] is False
    assert created["metadata"] == {"zone": "north"}

    listed = client.get("/api/notifications", headers=admin_headers).json()
    assert [n["id"] for n in listed] == [created["id"]]


def test_filters(client, admin_headers):
    _post(client, admin_headers, type="fire", severity="critical", title="Blaze")
    _post(client, admin_headers, type="security", severity="low", title="Gate open", message="North gate left open")
    _post(client, admin_headers, type="system", severity="medium", title="Sync restored", message="ok")

    def titles(**params):
        return [n["title"] for n in client.get("/api/notifications", params=params, headers=admin_headers).json()]

    assert titles(type="security") == ["Gate open"]
    assert titles(severity="critical") == ["Blaze"]
    assert titles(search="north") == ["Gate open"]
    assert titles(search="SYNC") == ["Sync restored"]
    assert len(titles(time_frame="today")) == 3


def test_time_frame_excludes_older_entries(client, admin_headers):
    old = _post(client, admin_headers, title="Ancient")
    with SessionLocal() as db:
        db.get(Notification, old["id"]).created_at = datetime.now(timezone.utc) - timedelta(days=10)
        db.commit()
    _post(client, admin_headers, title="Fresh")

    def titles(frame):
        response = client.get("/api/notifications", params={"time_frame": frame}, headers=admin_headers)
        return [n["title"] for n in response.json()]

    assert titles("week") == ["Fresh"]
    assert titles("month") == ["Fresh", "Ancient"]
    assert titles("all") == ["Fresh", "Ancient"]


def test_mark_read(client, admin_headers):
    created = _post(client, admin_headers)
    response = client.patch(f"/api/notifications/{created['id']}", json={"read": True}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["read"] is True


def test_delete_requires_exactly_one_selector(client, admin_headers):
    assert client.delete("/api/notifications", headers=admin_headers).status_code == 400
    response = client.delete("/api/notifications", params={"type": "fire", "all": "true"}, headers=admin_headers)
    assert response.status_code == 400


def test_delete_by_id_type_and_all(client, admin_headers):
    first = _post(client, admin_headers, type="fire")
    _post(client, admin_headers, type="fire")
    _post(client, admin_headers, type="security")
    _post(client, admin_headers, type="system")

    assert client.delete("/api/notifications", params={"id": first["id"]}, headers=admin_headers).json() == {"deleted": 1}
    assert client.delete("/api/notifications", params={"type": "fire"}, headers=admin_headers).json() == {"deleted": 1}
    assert client.delete("/api/notifications", params={"all": "true"}, headers=admin_headers).json() == {"deleted": 2}
    assert client.get("/api/notifications", headers=admin_headers).json() == []


def test_private_notifications_are_hidden_from_others(client, admin_headers, viewer_headers):
    admin = client.get("/api/auth/me", headers=admin_headers).json()
    _post(client, admin_headers, title="For admin only", user_id=admin["id"])
    _post(client, admin_headers, title="Everyone")

    assert [n["title"] for n in client.get("/api/notifications", headers=viewer_headers).json()] == ["Everyone"]
    assert len(client.get("/api/notifications", headers=admin_headers).json()) == 2
