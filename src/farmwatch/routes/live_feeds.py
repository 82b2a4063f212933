from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from livesync.identity import User

from ..db import get_db
from ..deps import get_current_user, require_admin, require_uuid
from ..models.live_feed_setting import LiveFeedSetting
from ..schemas import LiveFeedOut, LiveFeedSettingCreate, LiveFeedSettingOut, LiveFeedSettingUpdate

# Camera streams shown on the live-feed wall.
# Prefix: /api/live-feeds  (settings CRUD under /api/live-feeds/settings)
router = APIRouter(prefix="/api/live-feeds", tags=["live-feeds"])


def _commit(db: Session, feed: LiveFeedSetting) -> LiveFeedSetting:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A live feed with this stream URL already exists",
        ) from e
    except SQLAlchemyError as e:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save live feed setting",
        ) from e
    db.refresh(feed)
    return feed


def _get_or_404(db: Session, feed_id: str) -> LiveFeedSetting:
    feed = db.get(LiveFeedSetting, require_uuid(feed_id, "live feed id"))
    if feed is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Live feed setting not found")
    return feed


@router.get("", response_model=list[LiveFeedOut])
def list_live_feeds(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """Enabled feeds in display order."""
    return (
        db.query(LiveFeedSetting)
        .filter(LiveFeedSetting.is_enabled.is_(True))
        .order_by(LiveFeedSetting.display_order.asc(), LiveFeedSetting.title.asc())
        .all()
    )


@router.get("/settings", response_model=list[LiveFeedSettingOut])
def list_live_feed_settings(db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return (
        db.query(LiveFeedSetting)
        .order_by(LiveFeedSetting.display_order.asc(), LiveFeedSetting.title.asc())
        .all()
    )


@router.post("/settings", response_model=LiveFeedSettingOut, status_code=status.HTTP_201_CREATED)
def create_live_feed_setting(
    payload: LiveFeedSettingCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    values = payload.model_dump()
    values["stream_url"] = str(payload.stream_url)
    feed = LiveFeedSetting(**values)
    db.add(feed)
    return _commit(db, feed)


@router.get("/settings/{feed_id}", response_model=LiveFeedSettingOut)
def get_live_feed_setting(feed_id: str, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return _get_or_404(db, feed_id)


@router.put("/settings/{feed_id}", response_model=LiveFeedSettingOut)
def update_live_feed_setting(
    feed_id: str,
    payload: LiveFeedSettingUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    feed = _get_or_404(db, feed_id)
    for key, value in payload.changes().items():
        setattr(feed, key, str(value) if key == "stream_url" else value)
    return _commit(db, feed)


@router.delete("/settings/{feed_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_live_feed_setting(feed_id: str, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    feed = _get_or_404(db, feed_id)
    db.delete(feed)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
