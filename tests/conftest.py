import os
import tempfile

# The engine is created when farmwatch.db is first imported, so point it at a
# throwaway SQLite file before any test module imports the app.
_DB_DIR = tempfile.mkdtemp(prefix="farmwatch-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402


@pytest.fixture
def client():
    """App client with a running lifespan and empty tables."""
    from farmwatch.db import engine
    from farmwatch.main import app
    from farmwatch.models import Base

    Base.metadata.drop_all(bind=engine)
    with TestClient(app) as c:
        yield c


def _signup(client, email, full_name, password="secret-pass", team=None):
    response = client.post(
        "/api/auth/signup",
        json={"email": email, "password": password, "full_name": full_name, "team": team},
    )
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def admin_headers(client):
    # The first account on an empty database becomes the admin.
    return _signup(client, "admin@farm.example", "Ada Admin", team="Management")


@pytest.fixture
def viewer_headers(client, admin_headers):
    return _signup(client, "viewer@farm.example", "Vic Viewer", team="Security")


@pytest.fixture
def responder_headers(client, admin_headers):
    headers = _signup(client, "responder@farm.example", "Rae Responder", team="Fire")
    me = client.get("/api/auth/me", headers=headers).json()
    response = client.put(f"/api/users/{me['id']}", json={"role": "responder"}, headers=admin_headers)
    assert response.status_code == 200, response.text
    return headers
