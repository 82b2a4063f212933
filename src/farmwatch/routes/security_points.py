from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from livesync.identity import User
from livesync.records import Collection, SecurityPoint, SecurityPointStatus, SecurityPointType

from ..deps import get_current_user, get_gateway, require_editor, require_uuid
from ..gateway import SqlGateway
from ..schemas import SecurityPointCreate, SecurityPointUpdate

# Checkpoints, cameras, sensors and guard posts.
# Prefix: /api/security-points
router = APIRouter(prefix="/api/security-points", tags=["security-points"])


@router.get("")
async def list_security_points(
    status_: Optional[SecurityPointStatus] = Query(None, alias="status"),
    type_: Optional[SecurityPointType] = Query(None, alias="type"),
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(get_current_user),
):
    filters = {}
    if status_:
        filters["status"] = status_
    if type_:
        filters["type"] = type_
    rows = await gateway.fetch_all(Collection.SECURITY_POINTS, filters=filters)
    return {"security_points": rows}


@router.post("", response_model=SecurityPoint, status_code=status.HTTP_201_CREATED)
async def create_security_point(
    payload: SecurityPointCreate,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(require_editor),
):
    return await gateway.insert(Collection.SECURITY_POINTS, payload.model_dump(exclude_none=True))


@router.get("/{point_id}", response_model=SecurityPoint)
async def get_security_point(
    point_id: str,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(get_current_user),
):
    return await gateway.fetch_one(Collection.SECURITY_POINTS, require_uuid(point_id, "security point id"))


@router.put("/{point_id}", response_model=SecurityPoint)
async def replace_security_point(
    point_id: str,
    payload: SecurityPointCreate,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(require_editor),
):
    return await gateway.update(
        Collection.SECURITY_POINTS, require_uuid(point_id, "security point id"), payload.model_dump()
    )


@router.patch("/{point_id}", response_model=SecurityPoint)
async def update_security_point(
    point_id: str,
    payload: SecurityPointUpdate,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(require_editor),
):
    return await gateway.update(
        Collection.SECURITY_POINTS, require_uuid(point_id, "security point id"), payload.changes("description")
    )


@router.delete("/{point_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_security_point(
    point_id: str,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(require_editor),
):
    await gateway.delete(Collection.SECURITY_POINTS, require_uuid(point_id, "security point id"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
