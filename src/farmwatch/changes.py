"""
In-process change feed for the watched collections.

Session hooks turn committed ORM writes into ChangeEvents:
- after_flush collects inserted/updated/deleted watched rows into session.info
- after_commit hands them to the ChangeHub
- rollbacks discard them

Commits happen in request worker threads, so the hub re-enters its event loop
with call_soon_threadsafe before touching any subscriber.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session, sessionmaker

from livesync.errors import TransportError, ValidationError
from livesync.gateway import ChangeCallback, ChangeFeed, ChangeStream, Disposer
from livesync.records import ChangeEvent, Collection, validate_row

from .models import FireZone, SecurityPoint, TeamMember

logger = logging.getLogger(__name__)

MODEL_COLLECTIONS: dict[type, Collection] = {
    FireZone: Collection.FIRE_ZONES,
    SecurityPoint: Collection.SECURITY_POINTS,
    TeamMember: Collection.TEAM_MEMBERS,
}

_PENDING_KEY = "farmwatch_changes"
_CLOSED = object()


class _HubStream(ChangeStream):
    """Bounded queue of events for one consumer of one collection."""

    def __init__(self, hub: "ChangeHub", collection: Collection, maxsize: int) -> None:
        self.collection = collection
        self._hub = hub
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize + 1)
        self._maxsize = maxsize
        self._closed = False
        self._error: Optional[TransportError] = None

    def push(self, change: ChangeEvent) -> None:
        if self._closed:
            return
        if self._queue.qsize() >= self._maxsize:
            # A consumer this far behind has to re-fetch anyway.
            logger.warning("Change stream for %s overflowed; disconnecting consumer", self.collection.value)
            self._finish(TransportError("change feed overflow"))
            return
        self._queue.put_nowait(change)

    def _finish(self, error: Optional[TransportError]) -> None:
        if self._closed:
            return
        self._closed = True
        self._error = error
        self._hub._discard(self)
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    async def __anext__(self) -> ChangeEvent:
        if self._closed and self._queue.empty():
            raise self._error or StopAsyncIteration()
        item = await self._queue.get()
        if item is _CLOSED:
            if self._error is not None:
                raise self._error
            raise StopAsyncIteration()
        return item

    async def aclose(self) -> None:
        self._finish(None)


class ChangeHub(ChangeFeed):
    """
    Fan-out point for committed changes.

    Consumers either open a stream (the synchronizer, WebSocket clients) or
    register a plain callback (PersistenceGateway.subscribe_to_changes).
    """

    def __init__(self, queue_size: int = 1000) -> None:
        self.queue_size = queue_size
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._streams: dict[Collection, set[_HubStream]] = {c: set() for c in Collection}
        self._callbacks: dict[Collection, dict[int, ChangeCallback]] = {c: {} for c in Collection}
        self._next_token = 0

    @property
    def bound(self) -> bool:
        return self._loop is not None and not self._loop.is_closed()

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    async def open(self, collection: Collection) -> ChangeStream:
        if not self.bound:
            raise TransportError("change feed is not running")
        stream = _HubStream(self, collection, self.queue_size)
        self._streams[collection].add(stream)
        logger.debug("Opened %s change stream (%d open)", collection.value, len(self._streams[collection]))
        return stream

    def subscribe(self, collection: Collection, callback: ChangeCallback) -> Disposer:
        token = self._next_token
        self._next_token += 1
        self._callbacks[collection][token] = callback

        def dispose() -> None:
            self._callbacks[collection].pop(token, None)

        return dispose

    def publish(self, changes: list[ChangeEvent]) -> None:
        """Thread-safe: schedule delivery on the hub's loop."""
        if not changes:
            return
        if not self.bound:
            logger.debug("Change hub not running; dropping %d change(s)", len(changes))
            return
        try:
            self._loop.call_soon_threadsafe(self._dispatch, changes)
        except RuntimeError:
            # Loop closed between the check and the call (shutdown).
            logger.debug("Change hub loop closed; dropping %d change(s)", len(changes))

    def _dispatch(self, changes: list[ChangeEvent]) -> None:
        for change in changes:
            for stream in list(self._streams[change.collection]):
                stream.push(change)
            for callback in list(self._callbacks[change.collection].values()):
                try:
                    callback(change)
                except Exception:
                    logger.exception("Change callback for %s failed", change.collection.value)

    def _discard(self, stream: _HubStream) -> None:
        self._streams[stream.collection].discard(stream)

    async def close(self) -> None:
        """End every open stream and forget the loop."""
        for streams in self._streams.values():
            for stream in list(streams):
                await stream.aclose()
        for callbacks in self._callbacks.values():
            callbacks.clear()
        self._loop = None


change_hub = ChangeHub()


def _capture(session: Session, flush_context) -> None:
    pending = session.info.setdefault(_PENDING_KEY, [])
    for operation, objects in (("insert", session.new), ("update", session.dirty), ("delete", session.deleted)):
        for obj in objects:
            collection = MODEL_COLLECTIONS.get(type(obj))
            if collection is None:
                continue
            if operation == "delete":
                pending.append(ChangeEvent(collection=collection, operation="delete", row_id=str(obj.id)))
                continue
            if operation == "update" and not session.is_modified(obj):
                continue
            try:
                row = validate_row(collection, obj)
            except ValidationError as e:
                logger.warning("Not publishing %s of %s row %s: %s", operation, collection.value, obj.id, e)
                continue
            pending.append(ChangeEvent(collection=collection, operation=operation, row=row))


def _publish(session: Session) -> None:
    changes = session.info.pop(_PENDING_KEY, [])
    change_hub.publish(changes)


def _discard(session: Session, *args) -> None:
    session.info.pop(_PENDING_KEY, None)


def install_change_capture(factory: sessionmaker) -> None:
    """Attach the capture hooks to a session factory (idempotent)."""
    hooks: list[tuple[str, Callable]] = [
        ("after_flush", _capture),
        ("after_commit", _publish),
        ("after_rollback", _discard),
    ]
    for name, fn in hooks:
        if not event.contains(factory, name, fn):
            event.listen(factory, name, fn)
