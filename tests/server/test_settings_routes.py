import uuid


def _config(name, **overrides):
    payload = {"name": name, "center_latitude": -33.9, "center_longitude": 18.4}
    payload.update(overrides)
    return payload


def _feed(title, url, **overrides):
    payload = {"title": title, "stream_url": url}
    payload.update(overrides)
    return payload


def test_only_one_map_config_is_active(client, admin_headers):
    first = client.post("/api/map-configs", json=_config("Main farm", is_active=True), headers=admin_headers).json()
    second = client.post("/api/map-configs", json=_config("Orchard"), headers=admin_headers).json()

    active = client.get("/api/map-configs/active", headers=admin_headers)
    assert active.json()["id"] == first["id"]

    client.put(f"/api/map-configs/{second['id']}", json={"is_active": True}, headers=admin_headers)
    active = client.get("/api/map-configs/active", headers=admin_headers)
    assert active.json()["id"] == second["id"]

    configs = client.get("/api/map-configs", headers=admin_headers).json()
    assert [c["name"] for c in configs] == ["Orchard", "Main farm"]
    assert [c["is_active"] for c in configs] == [True, False]


def test_map_config_zoom_must_be_consistent(client, admin_headers):
    response = client.post(
        "/api/map-configs", json=_config("Bad", default_zoom=20, max_zoom=18), headers=admin_headers
    )
    assert response.status_code == 400


def test_no_active_map_config(client, admin_headers):
    assert client.get("/api/map-configs/active", headers=admin_headers).status_code == 404


def test_map_config_writes_need_admin(client, viewer_headers):
    assert client.post("/api/map-configs", json=_config("Nope"), headers=viewer_headers).status_code == 403
    assert client.get("/api/map-configs", headers=viewer_headers).status_code == 200


def test_map_config_delete(client, admin_headers):
    config = client.post("/api/map-configs", json=_config("Temp"), headers=admin_headers).json()
    assert client.delete(f"/api/map-configs/{config['id']}", headers=admin_headers).status_code == 204
    assert client.get(f"/api/map-configs/{config['id']}", headers=admin_headers).status_code == 404
    assert client.get("/api/map-configs/xyz", headers=admin_headers).status_code == 400


def test_public_feed_list_is_enabled_and_ordered(client, admin_headers, viewer_headers):
    client.post("/api/live-feeds/settings", json=_feed("Gate", "https://cams.example/gate", display_order=2), headers=admin_headers)
    client.post("/api/live-feeds/settings", json=_feed("Barn", "https://cams.example/barn", display_order=1), headers=admin_headers)
    client.post("/api/live-feeds/settings", json=_feed("Alley", "https://cams.example/alley", display_order=2), headers=admin_headers)
    client.post(
        "/api/live-feeds/settings",
        json=_feed("Off", "https://cams.example/off", is_enabled=False),
        headers=admin_headers,
    )

    feeds = client.get("/api/live-feeds", headers=viewer_headers).json()
    assert [f["title"] for f in feeds] == ["Barn", "Alley", "Gate"]
    assert set(feeds[0]) == {"id", "title", "stream_url"}

    settings = client.get("/api/live-feeds/settings", headers=admin_headers).json()
    assert len(settings) == 4


def test_feed_validation(client, admin_headers):
    assert client.post("/api/live-feeds/settings", json=_feed("", "https://cams.example/a"), headers=admin_headers).status_code == 422
    assert client.post("/api/live-feeds/settings", json=_feed("Cam", "not a url"), headers=admin_headers).status_code == 422
    assert (
        client.post(
            "/api/live-feeds/settings", json=_feed("Cam", "https://cams.example/a", display_order=-1), headers=admin_headers
        ).status_code
        == 422
    )


def test_duplicate_stream_url_conflicts(client, admin_headers):
    url = "https://cams.example/dup"
    assert client.post("/api/live-feeds/settings", json=_feed("One", url), headers=admin_headers).status_code == 201
    assert client.post("/api/live-feeds/settings", json=_feed("Two", url), headers=admin_headers).status_code == 409


def test_feed_update_and_delete(client, admin_headers):
    feed = client.post("/api/live-feeds/settings", json=_feed("Cam", "https://cams.example/a"), headers=admin_headers).json()

    updated = client.put(
        f"/api/live-feeds/settings/{feed['id']}", json={"title": "Cam 1", "is_enabled": False}, headers=admin_headers
    )
    assert updated.status_code == 200
    assert updated.json()["title"] == "Cam 1"
    assert client.get("/api/live-feeds", headers=admin_headers).json() == []

    assert client.delete(f"/api/live-feeds/settings/{feed['id']}", headers=admin_headers).status_code == 204
    assert client.get(f"/api/live-feeds/settings/{uuid.uuid4()}", headers=admin_headers).status_code == 404


def test_users_admin_listing_and_filters(client, admin_headers, viewer_headers):
    users = client.get("/api/users", headers=admin_headers).json()
    assert [u["full_name"] for u in users] == ["Ada Admin", "Vic Viewer"]
    assert "password_hash" not in users[0]

    viewers = client.get("/api/users", params={"role": "viewer"}, headers=admin_headers).json()
    assert [u["email"] for u in viewers] == ["viewer@farm.example"]

    by_team = client.get("/api/users", params={"team": "Management"}, headers=admin_headers).json()
    assert [u["email"] for u in by_team] == ["admin@farm.example"]

    assert client.get("/api/users", headers=viewer_headers).status_code == 403


def test_roles_and_teams(client, viewer_headers):
    assert client.get("/api/users/roles", headers=viewer_headers).json()["roles"] == [
        "admin",
        "manager",
        "responder",
        "viewer",
    ]
    assert client.get("/api/users/teams", headers=viewer_headers).json()["teams"] == ["Security", "Fire", "Management"]


def test_admin_cannot_demote_or_delete_self(client, admin_headers):
    me = client.get("/api/auth/me", headers=admin_headers).json()
    assert client.put(f"/api/users/{me['id']}", json={"role": "viewer"}, headers=admin_headers).status_code == 400
    assert client.delete(f"/api/users/{me['id']}", headers=admin_headers).status_code == 400


def test_delete_user(client, admin_headers, viewer_headers):
    viewer = client.get("/api/auth/me", headers=viewer_headers).json()
    assert client.delete(f"/api/users/{viewer['id']}", headers=admin_headers).status_code == 204
    assert client.get(f"/api/users/{viewer['id']}", headers=admin_headers).status_code == 404
