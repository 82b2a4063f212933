from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from livesync.identity import User
from livesync.records import Collection, FireSeverity, FireStatus, FireZone

from ..deps import get_current_user, get_gateway, require_editor, require_uuid
from ..gateway import SqlGateway
from ..schemas import FireZoneCreate, FireZoneUpdate

# Fire incidents plotted on the farm map. Writes reach live subscribers
# through the change feed.
# Prefix: /api/fire-zones
router = APIRouter(prefix="/api/fire-zones", tags=["fire-zones"])


@router.get("")
async def list_fire_zones(
    status_: Optional[FireStatus] = Query(None, alias="status"),
    severity: Optional[FireSeverity] = None,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(get_current_user),
):
    """List fire zones, newest report first. Optional filters: status, severity."""
    filters = {}
    if status_:
        filters["status"] = status_
    if severity:
        filters["severity"] = severity
    rows = await gateway.fetch_all(Collection.FIRE_ZONES, filters=filters)
    return {"fire_zones": rows}


@router.post("", response_model=FireZone, status_code=status.HTTP_201_CREATED)
async def create_fire_zone(
    payload: FireZoneCreate,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(require_editor),
):
    return await gateway.insert(Collection.FIRE_ZONES, payload.model_dump(exclude_none=True))


@router.get("/{zone_id}", response_model=FireZone)
async def get_fire_zone(
    zone_id: str,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(get_current_user),
):
    return await gateway.fetch_one(Collection.FIRE_ZONES, require_uuid(zone_id, "fire zone id"))


@router.put("/{zone_id}", response_model=FireZone)
async def replace_fire_zone(
    zone_id: str,
    payload: FireZoneCreate,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(require_editor),
):
    values = payload.model_dump(exclude={"reported_at"})
    if payload.reported_at is not None:
        values["reported_at"] = payload.reported_at
    return await gateway.update(Collection.FIRE_ZONES, require_uuid(zone_id, "fire zone id"), values)


@router.patch("/{zone_id}", response_model=FireZone)
async def update_fire_zone(
    zone_id: str,
    payload: FireZoneUpdate,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(require_editor),
):
    return await gateway.update(
        Collection.FIRE_ZONES, require_uuid(zone_id, "fire zone id"), payload.changes("description")
    )


@router.delete("/{zone_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_fire_zone(
    zone_id: str,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(require_editor),
):
    await gateway.delete(Collection.FIRE_ZONES, require_uuid(zone_id, "fire zone id"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
