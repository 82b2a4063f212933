from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from livesync.identity import User
from livesync.records import Collection, TeamMember, TeamMemberStatus

from ..deps import get_current_user, get_gateway, require_editor, require_uuid
from ..gateway import SqlGateway
from ..schemas import (
    Team,
    TeamMemberCreate,
    TeamMemberLocationUpdate,
    TeamMemberStatusUpdate,
    TeamMemberUpdate,
)

# Responders on the roster, and where they are on the map.
# Prefix: /api/team-members
router = APIRouter(prefix="/api/team-members", tags=["team-members"])

_NULLABLE = ("avatar", "responsibility", "latitude", "longitude")


@router.get("")
async def list_team_members(
    team: Optional[Team] = None,
    status_: Optional[TeamMemberStatus] = Query(None, alias="status"),
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(get_current_user),
):
    """List team members alphabetically. Optional filters: team, status."""
    filters = {}
    if team:
        filters["team"] = team
    if status_:
        filters["status"] = status_
    rows = await gateway.fetch_all(Collection.TEAM_MEMBERS, filters=filters)
    return {"team_members": rows}


@router.post("", response_model=TeamMember, status_code=status.HTTP_201_CREATED)
async def create_team_member(
    payload: TeamMemberCreate,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(require_editor),
):
    return await gateway.insert(Collection.TEAM_MEMBERS, payload.model_dump(exclude_none=True))


@router.get("/{member_id}", response_model=TeamMember)
async def get_team_member(
    member_id: str,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(get_current_user),
):
    return await gateway.fetch_one(Collection.TEAM_MEMBERS, require_uuid(member_id, "team member id"))


@router.put("/{member_id}", response_model=TeamMember)
async def replace_team_member(
    member_id: str,
    payload: TeamMemberCreate,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(require_editor),
):
    return await gateway.update(
        Collection.TEAM_MEMBERS, require_uuid(member_id, "team member id"), payload.model_dump()
    )


@router.patch("/{member_id}", response_model=TeamMember)
async def update_team_member(
    member_id: str,
    payload: TeamMemberUpdate,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(require_editor),
):
    return await gateway.update(
        Collection.TEAM_MEMBERS, require_uuid(member_id, "team member id"), payload.changes(*_NULLABLE)
    )


@router.patch("/{member_id}/status", response_model=TeamMember)
async def update_team_member_status(
    member_id: str,
    payload: TeamMemberStatusUpdate,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(get_current_user),
):
    """Any signed-in responder may change a duty status (e.g. going On Call)."""
    return await gateway.update(
        Collection.TEAM_MEMBERS, require_uuid(member_id, "team member id"), {"status": payload.status}
    )


@router.patch("/{member_id}/location", response_model=TeamMember)
async def update_team_member_location(
    member_id: str,
    payload: TeamMemberLocationUpdate,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(get_current_user),
):
    return await gateway.update(
        Collection.TEAM_MEMBERS, require_uuid(member_id, "team member id"), payload.model_dump()
    )


@router.delete("/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_team_member(
    member_id: str,
    gateway: SqlGateway = Depends(get_gateway),
    user: User = Depends(require_editor),
):
    await gateway.delete(Collection.TEAM_MEMBERS, require_uuid(member_id, "team member id"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
