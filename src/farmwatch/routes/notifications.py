from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Query as OrmQuery, Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from livesync.identity import User
from livesync.notifications import NotificationSeverity, NotificationType

from ..db import get_db
from ..deps import get_current_user, require_uuid
from ..models.notification import Notification
from ..schemas import NotificationCreate, NotificationOut, NotificationReadUpdate

# Server-side notification inbox (the dashboard bell).
# Prefix: /api/notifications
router = APIRouter(prefix="/api/notifications", tags=["notifications"])

TimeFrame = Literal["today", "week", "month", "all"]


def _since(time_frame: TimeFrame, now: Optional[datetime] = None) -> Optional[datetime]:
    now = now or datetime.now(timezone.utc)
    if time_frame == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if time_frame == "week":
        return now - timedelta(days=7)
    if time_frame == "month":
        return now - timedelta(days=30)
    return None


def _visible_to(db: Session, user: User) -> OrmQuery:
    # Broadcasts (no user_id) plus the caller's own notifications.
    return db.query(Notification).filter(or_(Notification.user_id.is_(None), Notification.user_id == user.id))


@router.get("", response_model=list[NotificationOut])
def list_notifications(
    type_: Optional[NotificationType] = Query(None, alias="type"),
    severity: Optional[NotificationSeverity] = None,
    time_frame: TimeFrame = "all",
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    List notifications, newest first.

    Filters: type, severity, time_frame (today/week/month/all), search (title or message).
    """
    query = _visible_to(db, user)
    if type_:
        query = query.filter(Notification.type == type_)
    if severity:
        query = query.filter(Notification.severity == severity)
    since = _since(time_frame)
    if since is not None:
        query = query.filter(Notification.created_at >= since)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Notification.title.ilike(pattern), Notification.message.ilike(pattern)))
    return query.order_by(Notification.created_at.desc()).all()


@router.post("", response_model=NotificationOut, status_code=status.HTTP_201_CREATED)
def create_notification(
    payload: NotificationCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    values = payload.model_dump(exclude={"metadata"})
    notification = Notification(**values, details=payload.metadata)
    db.add(notification)
    try:
        db.commit()
        db.refresh(notification)
        return notification
    except IntegrityError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown user_id") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save notification",
        ) from e


@router.patch("/{notification_id}", response_model=NotificationOut)
def mark_notification(
    notification_id: str,
    payload: NotificationReadUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    notification_id = require_uuid(notification_id, "notification id")
    notification = _visible_to(db, user).filter(Notification.id == notification_id).first()
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    notification.read = payload.read
    db.commit()
    db.refresh(notification)
    return notification


@router.delete("")
def delete_notifications(
    id: Optional[str] = None,
    type_: Optional[NotificationType] = Query(None, alias="type"),
    all_: bool = Query(False, alias="all"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Delete one notification (id), every notification of a type, or all of them."""
    chosen = sum([id is not None, type_ is not None, all_])
    if chosen != 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Specify exactly one of id, type or all=true",
        )

    query = _visible_to(db, user)
    if id is not None:
        query = query.filter(Notification.id == require_uuid(id, "notification id"))
    elif type_ is not None:
        query = query.filter(Notification.type == type_)

    deleted = query.delete(synchronize_session=False)
    db.commit()
    return {"deleted": deleted}
