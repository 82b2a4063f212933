"""
Live state routes.

REST exposes the server's own synchronizer snapshots and feed status.
Two WebSocket endpoints stream updates:

- /ws/changes/{collection}: every committed change event, as JSON
- /ws/live/{collection}: the full snapshot each time it changes

Both authenticate with ?token=<access token> before accepting the socket
(close code 4401 when the token is missing or invalid, 4404 for an unknown
collection).
"""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from livesync.errors import TransportError, ValidationError
from livesync.identity import User
from livesync.records import Collection, parse_collection
from livesync.synchronizer import LiveStateSynchronizer

from ..changes import change_hub
from ..deps import get_current_user, get_synchronizer, user_for_ws_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/live", tags=["live"])
ws_router = APIRouter(tags=["live"])


def _snapshot_payload(synchronizer: LiveStateSynchronizer, collection: Collection) -> dict:
    return {
        "collection": collection.value,
        "rows": [row.model_dump(mode="json") for row in synchronizer.snapshot(collection)],
        "status": synchronizer.status(collection).to_dict(),
    }


@router.get("/status")
def live_status(
    synchronizer: LiveStateSynchronizer = Depends(get_synchronizer),
    user: User = Depends(get_current_user),
):
    return {c.value: synchronizer.status(c).to_dict() for c in Collection}


@router.post("/refresh")
async def refresh_live_state(
    collection: Optional[str] = None,
    synchronizer: LiveStateSynchronizer = Depends(get_synchronizer),
    user: User = Depends(get_current_user),
):
    """Re-fetch one collection (or every watched collection) from the database."""
    targets = [parse_collection(collection)] if collection else list(Collection)
    counts = {}
    for target in targets:
        rows = await synchronizer.refresh(target)
        counts[target.value] = len(rows)
    return {"refreshed": counts}


@router.get("/{collection}")
def live_snapshot(
    collection: str,
    synchronizer: LiveStateSynchronizer = Depends(get_synchronizer),
    user: User = Depends(get_current_user),
):
    return _snapshot_payload(synchronizer, parse_collection(collection))


async def _authorize(websocket: WebSocket, collection: str) -> Optional[Collection]:
    """Authenticate before the handshake is accepted; close and return None on failure."""
    user = await asyncio.to_thread(user_for_ws_token, websocket.query_params.get("token"))
    if user is None:
        logger.info("WebSocket auth failed for %s feed", collection)
        await websocket.close(code=4401, reason="Unauthorized")
        return None
    try:
        target = parse_collection(collection)
    except ValidationError:
        await websocket.close(code=4404, reason="Unknown collection")
        return None
    logger.info("User %s connected to %s feed", user.id, target.value)
    return target


async def _drain(websocket: WebSocket) -> None:
    # Clients only listen; reading is how a disconnect is noticed.
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


async def _serve(websocket: WebSocket, pump) -> None:
    """Run pump until it finishes or the client goes away, whichever is first."""
    pump_task = asyncio.create_task(pump)
    drain_task = asyncio.create_task(_drain(websocket))
    done, pending = await asyncio.wait({pump_task, drain_task}, return_when=asyncio.FIRST_COMPLETED)
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)
    for task in done:
        if not task.cancelled() and task.exception() is not None:
            exc = task.exception()
            if isinstance(exc, (WebSocketDisconnect, RuntimeError)):
                continue
            raise exc


@ws_router.websocket("/ws/changes/{collection}")
async def change_events(websocket: WebSocket, collection: str):
    target = await _authorize(websocket, collection)
    if target is None:
        return

    try:
        stream = await change_hub.open(target)
    except TransportError as e:
        await websocket.close(code=1011, reason=str(e))
        return

    async def pump() -> None:
        try:
            async for event in stream:
                await websocket.send_json(event.to_dict())
        except TransportError as e:
            # Consumer fell too far behind; it must reconnect and re-fetch.
            await websocket.close(code=1013, reason=str(e))

    try:
        await websocket.accept()
        await _serve(websocket, pump())
    finally:
        await stream.aclose()
        logger.info("Client left %s change feed", target.value)


@ws_router.websocket("/ws/live/{collection}")
async def live_snapshots(websocket: WebSocket, collection: str):
    target = await _authorize(websocket, collection)
    if target is None:
        return

    synchronizer = getattr(websocket.app.state, "synchronizer", None)
    if synchronizer is None:
        await websocket.close(code=1011, reason="Live state is not running")
        return

    # Only the newest snapshot matters to a slow client.
    latest: asyncio.Queue = asyncio.Queue(maxsize=1)

    def on_change(rows) -> None:
        if latest.full():
            latest.get_nowait()
        latest.put_nowait(rows)

    async def pump() -> None:
        while True:
            await latest.get()
            await websocket.send_json(_snapshot_payload(synchronizer, target))

    dispose = synchronizer.subscribe(target, on_change)
    try:
        await websocket.accept()
        await _serve(websocket, pump())
    finally:
        dispose()
        logger.info("Client left %s live snapshots", target.value)
