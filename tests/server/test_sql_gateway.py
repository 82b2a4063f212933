import asyncio
import time
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from livesync.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from livesync.identity import Credentials
from livesync.records import Collection
from farmwatch.changes import change_hub, install_change_capture
from farmwatch.gateway import SqlGateway
from farmwatch.identity import LocalIdentityProvider
from farmwatch.models import Base


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'gateway.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    install_change_capture(factory)
    yield factory
    engine.dispose()


async def _until(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def _member(name, **overrides):
    row = {"name": name, "role": "Guard", "email": f"{name.lower()}@farm.example", "team": "Security"}
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_crud_round_trip(session_factory):
    gateway = SqlGateway(session_factory, change_hub)

    zone = await gateway.insert(Collection.FIRE_ZONES, {"name": "Barn", "latitude": 1.0, "longitude": 2.0})
    assert zone["status"] == "Active"
    assert zone["severity"] == "Medium"

    fetched = await gateway.fetch_one(Collection.FIRE_ZONES, zone["id"])
    assert fetched["name"] == "Barn"

    updated = await gateway.update(Collection.FIRE_ZONES, zone["id"], {"status": "Contained"})
    assert updated["status"] == "Contained"

    await gateway.delete(Collection.FIRE_ZONES, zone["id"])
    with pytest.raises(NotFoundError):
        await gateway.fetch_one(Collection.FIRE_ZONES, zone["id"])
    with pytest.raises(NotFoundError):
        await gateway.delete(Collection.FIRE_ZONES, zone["id"])


@pytest.mark.asyncio
async def test_fetch_all_filters_and_default_order(session_factory):
    gateway = SqlGateway(session_factory, change_hub)
    for name, team in (("carol", "Fire"), ("Bob", "Security"), ("alice", "Security")):
        await gateway.insert(Collection.TEAM_MEMBERS, _member(name, team=team))

    rows = await gateway.fetch_all(Collection.TEAM_MEMBERS)
    assert [r["name"] for r in rows] == ["alice", "Bob", "carol"]

    rows = await gateway.fetch_all(Collection.TEAM_MEMBERS, filters={"team": "Security"}, order_by=["-name"])
    assert [r["name"] for r in rows] == ["Bob", "alice"]


@pytest.mark.asyncio
async def test_bad_columns_and_rows_are_validation_errors(session_factory):
    gateway = SqlGateway(session_factory, change_hub)

    with pytest.raises(ValidationError):
        await gateway.insert(Collection.FIRE_ZONES, {"name": "x", "latitude": 0, "longitude": 0, "colour": "red"})
    with pytest.raises(ValidationError):
        await gateway.fetch_all(Collection.FIRE_ZONES, order_by=["colour"])
    with pytest.raises(ValidationError):
        await gateway.insert(Collection.FIRE_ZONES, {"name": "x", "latitude": 200.0, "longitude": 0})

    # The rejected row was rolled back.
    assert await gateway.fetch_all(Collection.FIRE_ZONES) == []


@pytest.mark.asyncio
async def test_committed_writes_reach_change_subscribers(session_factory):
    change_hub.bind(asyncio.get_running_loop())
    try:
        gateway = SqlGateway(session_factory, change_hub)
        events = []
        dispose = gateway.subscribe_to_changes(Collection.SECURITY_POINTS, events.append)

        point = await gateway.insert(
            Collection.SECURITY_POINTS, {"name": "Gate", "latitude": 1.0, "longitude": 1.0, "type": "Camera"}
        )
        await gateway.update(Collection.SECURITY_POINTS, point["id"], {"status": "Alert"})
        await gateway.delete(Collection.SECURITY_POINTS, point["id"])
        await _until(lambda: len(events) == 3)

        assert [e.operation for e in events] == ["insert", "update", "delete"]
        assert events[1].row.status == "Alert"
        assert events[2].row_id == point["id"]

        dispose()
        await gateway.insert(Collection.SECURITY_POINTS, {"name": "Fence", "latitude": 1.0, "longitude": 1.0})
        await asyncio.sleep(0.05)
        assert len(events) == 3
    finally:
        await change_hub.close()


def test_identity_first_user_is_admin(session_factory):
    identity = LocalIdentityProvider(session_factory)
    first = identity.create_user("Ada@Farm.example", "secret-pass", "Ada")
    second = identity.create_user("bo@farm.example", "secret-pass", "Bo")

    assert first.email == "ada@farm.example"
    assert first.role == "admin"
    assert second.role == "viewer"

    with pytest.raises(ConflictError):
        identity.create_user("ADA@farm.example", "secret-pass", "Ada again")
    with pytest.raises(ValidationError):
        identity.create_user("short@farm.example", "123", "Short")


def test_identity_login_and_revocation(session_factory):
    identity = LocalIdentityProvider(session_factory)
    identity.create_user("ada@farm.example", "secret-pass", "Ada")
    identity.create_user("off@farm.example", "secret-pass", "Off", status="inactive")

    with pytest.raises(AuthorizationError):
        identity.login("ada@farm.example", "wrong-pass")
    with pytest.raises(AuthorizationError):
        identity.login("off@farm.example", "secret-pass")

    user, token = identity.login("ADA@farm.example", "secret-pass")
    assert identity.authenticate(token) == user

    identity.logout(token)
    with pytest.raises(AuthorizationError, match="revoked"):
        identity.authenticate(token)
    with pytest.raises(AuthorizationError):
        identity.authenticate("not-a-token")


@pytest.mark.asyncio
async def test_identity_sign_in_notifies_listeners(session_factory):
    identity = LocalIdentityProvider(session_factory)
    identity.create_user("ada@farm.example", "secret-pass", "Ada")
    seen = []
    identity.on_user_changed(seen.append)

    user = await identity.sign_in(Credentials(email="ada@farm.example", password="secret-pass"))
    token = identity.token
    assert identity.current_user() == user

    await identity.sign_out()
    assert identity.token is None
    assert seen == [None, user, None]
    with pytest.raises(AuthorizationError):
        identity.authenticate(token)


def test_identity_forgets_revocations_of_expired_tokens(session_factory, monkeypatch):
    import farmwatch.identity as identity_module
    from farmwatch.security import decode_token

    identity = LocalIdentityProvider(session_factory)
    identity.create_user("ada@farm.example", "secret-pass", "Ada")
    _, first = identity.login("ada@farm.example", "secret-pass")
    _, second = identity.login("ada@farm.example", "secret-pass")

    identity.logout(first)
    assert identity._revoked.keys() == {decode_token(first)["jti"]}

    # A week and a day later the first token has expired on its own.
    later = time.time() + 8 * 24 * 3600
    monkeypatch.setattr(identity_module, "time", SimpleNamespace(time=lambda: later))
    identity.logout(second)
    assert identity._revoked.keys() == {decode_token(second)["jti"]}
