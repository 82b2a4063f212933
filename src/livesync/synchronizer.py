"""
Live State Synchronizer.

Keeps one snapshot per watched collection and republishes it to every
subscriber whenever it changes. Snapshots are seeded from a full fetch and
then patched by change events from a ChangeFeed. When the feed drops, the
synchronizer reconnects with capped exponential backoff and re-fetches the
whole collection, because events missed during the outage cannot be replayed.
Until then subscribers keep seeing the last known snapshot.

Everything runs on one asyncio loop: subscriber callbacks are plain
synchronous functions called one after another, so a single change's fan-out
never interleaves with another.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from .errors import TransportError, ValidationError
from .gateway import ChangeFeed, PersistenceGateway
from .records import ChangeEvent, Collection, parse_collection, validate_rows
from .snapshot import EMPTY, Snapshot, apply_change

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[Snapshot], None]
StatusCallback = Callable[[Collection, "FeedStatus"], None]
EventCallback = Callable[[ChangeEvent], None]

# Consecutive failures after which the outage is reported as persistent.
PERSISTENT_FAILURE_THRESHOLD = 3


@dataclass(frozen=True)
class ReconnectPolicy:
    """
    Capped exponential backoff for the change feed.

    Attributes:
        initial_delay: Seconds before the first reconnect attempt
        max_delay: Upper bound for any single delay
        multiplier: Growth factor between attempts
        max_retries: Give up after this many consecutive failures (None = never)
    """
    initial_delay: float = 5.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    max_retries: Optional[int] = None

    def delay(self, attempt: int) -> float:
        """Delay before reconnect attempt number `attempt` (0-based)."""
        return min(self.initial_delay * (self.multiplier ** attempt), self.max_delay)

    def exhausted(self, failures: int) -> bool:
        return self.max_retries is not None and failures > self.max_retries


@dataclass(frozen=True)
class FeedStatus:
    connected: bool = False
    error: Optional[str] = None
    retry_count: int = 0
    last_updated: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "connected": self.connected,
            "error": self.error,
            "retry_count": self.retry_count,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


@dataclass
class _CollectionState:
    snapshot: Snapshot = EMPTY
    listeners: dict[int, SnapshotCallback] = field(default_factory=dict)
    status: FeedStatus = field(default_factory=FeedStatus)
    task: Optional[asyncio.Task] = None
    # One list per in-flight refresh; events applied meanwhile are replayed on the fetched rows.
    in_flight: list[list[ChangeEvent]] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LiveStateSynchronizer:
    """
    Explicitly constructed live-state service.

    Args:
        gateway: Source of full snapshots (fetch_all)
        feed: Source of change streams; None disables background updates
        reconnect: Backoff policy for the change feed
        on_status: Called with (collection, FeedStatus) when connectivity changes
        on_event: Called with every change event that altered a snapshot
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        feed: Optional[ChangeFeed] = None,
        *,
        reconnect: Optional[ReconnectPolicy] = None,
        on_status: Optional[StatusCallback] = None,
        on_event: Optional[EventCallback] = None,
    ) -> None:
        self._gateway = gateway
        self._feed = feed
        self._reconnect = reconnect or ReconnectPolicy()
        self._on_status = on_status
        self._on_event = on_event
        self._states: dict[Collection, _CollectionState] = {}
        self._next_token = 0
        self._closed = False

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def collections(self) -> tuple[Collection, ...]:
        return tuple(self._states)

    def snapshot(self, collection: Any) -> Snapshot:
        state = self._states.get(parse_collection(collection))
        return state.snapshot if state is not None else EMPTY

    def status(self, collection: Any) -> FeedStatus:
        state = self._states.get(parse_collection(collection))
        return state.status if state is not None else FeedStatus()

    # ------------------------------------------------------------------
    # Seeding and refresh
    # ------------------------------------------------------------------

    def initialize(self, collection: Any, initial_rows: Iterable[Any]) -> Snapshot:
        """
        Seed the snapshot with caller-supplied rows. A later call wins.
        """
        collection = parse_collection(collection)
        rows = validate_rows(collection, initial_rows)
        self._publish(collection, self._state(collection), rows)
        return rows

    async def load(self, collection: Any) -> Snapshot:
        """Fetch the collection once and seed it. TransportError propagates."""
        collection = parse_collection(collection)
        rows = await self._gateway.fetch_all(collection)
        return self.initialize(collection, rows)

    async def refresh(self, collection: Any) -> Snapshot:
        """
        Replace the snapshot with a fresh full fetch.

        Events applied while the fetch is in flight are re-applied on top of
        the fetched rows so no subscriber ever steps back in time. On
        TransportError the last good snapshot stays published and the error
        is recorded in the collection status before being re-raised.
        """
        collection = parse_collection(collection)
        state = self._state(collection)
        applied_meanwhile: list[ChangeEvent] = []
        state.in_flight.append(applied_meanwhile)
        try:
            fetched = await self._gateway.fetch_all(collection)
        except TransportError as e:
            self._set_status(collection, state, error=str(e) or type(e).__name__)
            raise
        finally:
            state.in_flight.remove(applied_meanwhile)

        rows = validate_rows(collection, fetched)
        for event in applied_meanwhile:
            rows = apply_change(rows, event)

        if self._states.get(collection) is not state:
            # Torn down while fetching.
            return rows
        self._publish(collection, state, rows)
        logger.info("Refreshed %s: %d rows", collection.value, len(rows))
        return rows

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, collection: Any, on_change: SnapshotCallback) -> Callable[[], None]:
        """
        Register on_change for a collection.

        on_change receives the current snapshot immediately and again after
        every change, in subscription order. The returned disposer is safe to
        call more than once; after it runs on_change is never invoked again.
        The first subscription starts the collection's change feed, so a
        running event loop is required when a feed is configured.
        """
        if self._closed:
            raise RuntimeError("Synchronizer is closed")
        collection = parse_collection(collection)
        state = self._state(collection)

        # Start the feed first so a failure leaves nothing registered.
        if self._feed is not None:
            self._ensure_feed(collection, state)

        token = self._next_token
        self._next_token += 1
        state.listeners[token] = on_change

        self._deliver(collection, on_change, state.snapshot)

        def dispose() -> None:
            state.listeners.pop(token, None)

        return dispose

    def apply_change_event(self, event: Any) -> Snapshot:
        """
        Apply one change event (ChangeEvent or its JSON mapping) and publish.

        Raises ValidationError for a malformed mapping. An event that changes
        nothing (duplicate update, delete of an absent id) publishes nothing.
        Events for a collection that was never seeded or subscribed, or has
        been torn down, are dropped.
        """
        event = ChangeEvent.from_json(event)
        state = self._states.get(event.collection)
        if state is None:
            logger.debug("Dropping %s event for inactive %s", event.operation, event.collection.value)
            return EMPTY
        for applied_meanwhile in state.in_flight:
            applied_meanwhile.append(event)

        rows = apply_change(state.snapshot, event)
        if rows is state.snapshot:
            logger.debug("No-op %s on %s row %s", event.operation, event.collection.value, event.row_id)
            return rows

        self._publish(event.collection, state, rows)
        if self._on_event is not None:
            try:
                self._on_event(event)
            except Exception:
                logger.exception("Change event listener failed for %s", event.collection.value)
        return rows

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def teardown(self, collection: Any) -> None:
        """Cancel the collection's feed and release its snapshot. Idempotent."""
        collection = parse_collection(collection)
        state = self._states.pop(collection, None)
        if state is None:
            return

        state.listeners.clear()
        task, state.task = state.task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait([task])
        logger.info("Live state for %s torn down", collection.value)

    async def close(self) -> None:
        self._closed = True
        for collection in list(self._states):
            await self.teardown(collection)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _state(self, collection: Collection) -> _CollectionState:
        state = self._states.get(collection)
        if state is None:
            state = self._states[collection] = _CollectionState()
        return state

    def _deliver(self, collection: Collection, callback: SnapshotCallback, rows: Snapshot) -> None:
        try:
            callback(rows)
        except Exception:
            # One broken consumer must not starve the others.
            logger.exception("Snapshot subscriber for %s failed", collection.value)

    def _publish(self, collection: Collection, state: _CollectionState, rows: Snapshot) -> None:
        state.snapshot = rows
        state.status = replace(state.status, last_updated=_utcnow())
        for token, callback in list(state.listeners.items()):
            # A callback earlier in this fan-out may have disposed a later one.
            if token in state.listeners:
                self._deliver(collection, callback, rows)

    def _set_status(self, collection: Collection, state: _CollectionState, **changes: Any) -> None:
        previous = state.status
        state.status = replace(previous, **changes)
        if self._on_status is None:
            return
        if (previous.connected, previous.error, previous.retry_count) == (
            state.status.connected,
            state.status.error,
            state.status.retry_count,
        ):
            return
        try:
            self._on_status(collection, state.status)
        except Exception:
            logger.exception("Status listener failed for %s", collection.value)

    def _ensure_feed(self, collection: Collection, state: _CollectionState) -> None:
        if state.task is not None and not state.task.done():
            return
        loop = asyncio.get_running_loop()
        state.task = loop.create_task(
            self._run_feed(collection, state),
            name=f"livesync-feed-{collection.value}",
        )
        state.task.add_done_callback(self._feed_finished)

    @staticmethod
    def _feed_finished(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Change feed task %s crashed", task.get_name(), exc_info=exc)

    def _handle_raw(self, collection: Collection, raw: Any) -> None:
        try:
            event = ChangeEvent.from_json(raw)
        except ValidationError as e:
            logger.warning("Dropping malformed %s change event: %s", collection.value, e)
            return
        if event.collection is not collection:
            logger.warning(
                "Dropping %s event delivered on the %s feed", event.collection.value, collection.value
            )
            return
        self.apply_change_event(event)

    async def _run_feed(self, collection: Collection, state: _CollectionState) -> None:
        """
        Connect, re-fetch, stream events; on any drop back off and start over.
        """
        failures = 0

        while self._states.get(collection) is state:
            stream = None
            try:
                stream = await self._feed.open(collection)
                # Open first, fetch second: events committed during the fetch
                # queue up on the stream and are applied afterwards.
                await self.refresh(collection)

                failures = 0
                self._set_status(collection, state, connected=True, error=None, retry_count=0)
                logger.info("Change feed for %s connected", collection.value)

                async for raw in stream:
                    self._handle_raw(collection, raw)
                error = "change feed closed"
            except (TransportError, ValidationError) as e:
                error = str(e) or type(e).__name__
            finally:
                if stream is not None:
                    try:
                        await stream.aclose()
                    except Exception as exc:
                        logger.debug("Ignoring error while closing %s stream: %s", collection.value, exc)

            if self._states.get(collection) is not state:
                return

            failures += 1
            self._set_status(collection, state, connected=False, error=error, retry_count=failures)

            if self._reconnect.exhausted(failures):
                logger.error(
                    "Max retries for %s change feed reached. Last error: %s", collection.value, error
                )
                return

            if failures >= PERSISTENT_FAILURE_THRESHOLD:
                logger.warning(
                    "Persistent connection problem with %s updates (%d failures). Last error: %s",
                    collection.value, failures, error,
                )
            else:
                logger.warning("Change feed for %s lost: %s", collection.value, error)

            delay = self._reconnect.delay(failures - 1)
            logger.info("Reconnecting %s change feed in %.1fs", collection.value, delay)
            await asyncio.sleep(delay)
