import asyncio

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from livesync.errors import TransportError
from livesync.records import ChangeEvent, Collection

from farmwatch.changes import ChangeHub, change_hub, install_change_capture
from farmwatch.models import Base, FireZone, MapConfig

FZ = Collection.FIRE_ZONES


def _delete(row_id):
    return ChangeEvent(collection=FZ, operation="delete", row_id=row_id)


@pytest.mark.asyncio
async def test_open_requires_a_bound_loop():
    with pytest.raises(TransportError):
        await ChangeHub().open(FZ)


@pytest.mark.asyncio
async def test_published_events_reach_streams_of_that_collection():
    hub = ChangeHub()
    hub.bind(asyncio.get_running_loop())
    fire = await hub.open(FZ)
    team = await hub.open(Collection.TEAM_MEMBERS)

    hub.publish([_delete("z1")])
    received = await asyncio.wait_for(fire.__anext__(), 1)
    assert received.row_id == "z1"

    await asyncio.sleep(0)
    assert team._queue.empty()
    await hub.close()


@pytest.mark.asyncio
async def test_closed_stream_stops_iterating():
    hub = ChangeHub()
    hub.bind(asyncio.get_running_loop())
    stream = await hub.open(FZ)
    await stream.aclose()
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()


@pytest.mark.asyncio
async def test_overflow_disconnects_slow_consumer():
    hub = ChangeHub(queue_size=2)
    hub.bind(asyncio.get_running_loop())
    stream = await hub.open(FZ)

    hub.publish([_delete("a"), _delete("b"), _delete("c")])
    await asyncio.sleep(0.01)

    with pytest.raises(TransportError):
        await stream.__anext__()
    await hub.close()


@pytest.mark.asyncio
async def test_callback_subscribers_and_disposal():
    hub = ChangeHub()
    hub.bind(asyncio.get_running_loop())
    seen = []
    dispose = hub.subscribe(FZ, seen.append)

    hub.publish([_delete("a")])
    await asyncio.sleep(0.01)
    dispose()
    hub.publish([_delete("b")])
    await asyncio.sleep(0.01)

    assert [e.row_id for e in seen] == ["a"]
    await hub.close()


@pytest.fixture
def session_factory():
    engine = create_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    install_change_capture(factory)
    install_change_capture(factory)
    yield factory
    engine.dispose()


@pytest.mark.asyncio
async def test_committed_writes_become_change_events(session_factory):
    change_hub.bind(asyncio.get_running_loop())
    seen = []
    dispose = change_hub.subscribe(FZ, seen.append)
    try:
        with session_factory() as db:
            zone = FireZone(name="Barn", latitude=1.0, longitude=2.0, severity="High", status="Active")
            db.add(zone)
            db.add(MapConfig(name="Farm", center_latitude=1.0, center_longitude=2.0))
            db.commit()
            zone_id = zone.id

            zone.status = "Contained"
            db.commit()

            db.delete(zone)
            db.commit()

        await asyncio.sleep(0.01)
    finally:
        dispose()
        await change_hub.close()

    # Capture is installed twice but each write is reported once.
    assert [(e.operation, e.row_id) for e in seen] == [
        ("insert", zone_id),
        ("update", zone_id),
        ("delete", zone_id),
    ]
    assert seen[0].row.name == "Barn"
    assert seen[1].row.status == "Contained"


@pytest.mark.asyncio
async def test_rolled_back_writes_are_not_published(session_factory):
    change_hub.bind(asyncio.get_running_loop())
    seen = []
    dispose = change_hub.subscribe(FZ, seen.append)
    try:
        with session_factory() as db:
            db.add(FireZone(name="Ghost", latitude=1.0, longitude=2.0))
            db.flush()
            db.rollback()
        await asyncio.sleep(0.01)
    finally:
        dispose()
        await change_hub.close()

    assert seen == []
