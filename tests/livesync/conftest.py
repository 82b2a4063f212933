import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from livesync.errors import TransportError
from livesync.gateway import ChangeFeed, ChangeStream, PersistenceGateway

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _zone(row_id, name="Barn fire", minutes=0, **overrides):
    row = {
        "id": row_id,
        "name": name,
        "latitude": -33.9,
        "longitude": 18.4,
        "severity": "High",
        "status": "Active",
        "description": None,
        "reported_at": (T0 + timedelta(minutes=minutes)).isoformat(),
        "updated_at": (T0 + timedelta(minutes=minutes)).isoformat(),
    }
    row.update(overrides)
    return row


def _member(row_id, name, **overrides):
    row = {
        "id": row_id,
        "name": name,
        "role": "Patrol",
        "email": f"{name.lower()}@farm.example",
        "phone": "555-0100",
        "status": "Active",
        "team": "Security",
    }
    row.update(overrides)
    return row


@pytest.fixture
def make_zone():
    return _zone


@pytest.fixture
def make_member():
    return _member


class FakeGateway(PersistenceGateway):
    """In-memory gateway; fetch_all returns whatever `rows` holds at call time."""

    def __init__(self, rows=None):
        self.rows = rows or {}
        self.fetches = 0
        self.fail_with = None
        self.gate = None

    async def fetch_all(self, collection, filters=None, order_by=None):
        self.fetches += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.rows.get(collection, []))

    async def fetch_one(self, collection, row_id):
        raise NotImplementedError

    async def insert(self, collection, row):
        raise NotImplementedError

    async def update(self, collection, row_id, partial):
        raise NotImplementedError

    async def delete(self, collection, row_id):
        raise NotImplementedError

    def subscribe_to_changes(self, collection, callback):
        raise NotImplementedError


class FakeStream(ChangeStream):
    def __init__(self):
        self.queue = asyncio.Queue()
        self.closed = False

    def push(self, item):
        self.queue.put_nowait(item)

    def drop(self, message="connection reset"):
        self.queue.put_nowait(TransportError(message))

    async def __anext__(self):
        item = await self.queue.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def aclose(self):
        self.closed = True


class FakeFeed(ChangeFeed):
    """Hands out FakeStreams; `fail_opens` makes the next N opens fail."""

    def __init__(self):
        self.streams = []
        self.fail_opens = 0
        self.opens = 0

    async def open(self, collection):
        self.opens += 1
        if self.fail_opens:
            self.fail_opens -= 1
            raise TransportError("feed unreachable")
        stream = FakeStream()
        self.streams.append(stream)
        return stream


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def feed():
    return FakeFeed()


async def _wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def wait_for():
    return _wait_for
