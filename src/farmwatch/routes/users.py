from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from livesync.identity import User, UserRole, UserStatus

from ..db import get_db
from ..deps import get_current_user, require_admin, require_uuid
from ..models.user import User as UserRow
from ..schemas import ROLES, TEAMS, Team, UserUpdate

# Account administration.
# Prefix: /api/users
router = APIRouter(prefix="/api/users", tags=["users"])


def _get_or_404(db: Session, user_id: str) -> UserRow:
    row = db.get(UserRow, require_uuid(user_id, "user id"))
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return row


@router.get("", response_model=list[User])
def list_users(
    role: Optional[UserRole] = None,
    status_: Optional[UserStatus] = Query(None, alias="status"),
    team: Optional[Team] = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    query = db.query(UserRow)
    if role:
        query = query.filter(UserRow.role == role)
    if status_:
        query = query.filter(UserRow.status == status_)
    if team:
        query = query.filter(UserRow.team == team)
    return query.order_by(UserRow.full_name.asc()).all()


@router.get("/roles")
def list_roles(user: User = Depends(get_current_user)):
    return {"roles": ROLES}


@router.get("/teams")
def list_teams(user: User = Depends(get_current_user)):
    return {"teams": TEAMS}


@router.get("/{user_id}", response_model=User)
def get_user(user_id: str, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return _get_or_404(db, user_id)


@router.put("/{user_id}", response_model=User)
def update_user(
    user_id: str,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    row = _get_or_404(db, user_id)
    changes = payload.changes("team")
    if row.id == admin.id and (changes.get("role", "admin") != "admin" or changes.get("status", "active") != "active"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Admins cannot demote or deactivate themselves")
    for key, value in changes.items():
        setattr(row, key, value)
    db.commit()
    db.refresh(row)
    return row


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(user_id: str, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    row = _get_or_404(db, user_id)
    if row.id == admin.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Admins cannot delete themselves")
    db.delete(row)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
