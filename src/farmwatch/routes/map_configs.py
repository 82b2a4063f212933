from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from livesync.identity import User

from ..db import get_db
from ..deps import get_current_user, require_admin, require_uuid
from ..models.map_config import MapConfig
from ..schemas import MapConfigCreate, MapConfigOut, MapConfigUpdate

# Saved map viewports. At most one config is active; the dashboard opens on it.
# Prefix: /api/map-configs
router = APIRouter(prefix="/api/map-configs", tags=["map-configs"])


def _deactivate_others(db: Session, keep_id: str) -> None:
    db.query(MapConfig).filter(MapConfig.id != keep_id, MapConfig.is_active.is_(True)).update(
        {MapConfig.is_active: False}, synchronize_session=False
    )


def _check_zoom(config: MapConfig) -> None:
    if not config.min_zoom <= config.default_zoom <= config.max_zoom:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="default_zoom must lie between min_zoom and max_zoom",
        )


def _get_or_404(db: Session, config_id: str) -> MapConfig:
    config = db.get(MapConfig, require_uuid(config_id, "map config id"))
    if config is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Map configuration not found")
    return config


def _save(db: Session, config: MapConfig) -> MapConfig:
    _check_zoom(config)
    try:
        db.flush()
        if config.is_active:
            _deactivate_others(db, config.id)
        db.commit()
        db.refresh(config)
        return config
    except SQLAlchemyError as e:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save map configuration",
        ) from e


@router.get("", response_model=list[MapConfigOut])
def list_map_configs(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """List map configurations, newest first."""
    return db.query(MapConfig).order_by(MapConfig.created_at.desc()).all()


@router.get("/active", response_model=MapConfigOut)
def get_active_map_config(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    config = db.query(MapConfig).filter(MapConfig.is_active.is_(True)).first()
    if config is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active map configuration")
    return config


@router.post("", response_model=MapConfigOut, status_code=status.HTTP_201_CREATED)
def create_map_config(payload: MapConfigCreate, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    config = MapConfig(**payload.model_dump())
    db.add(config)
    return _save(db, config)


@router.get("/{config_id}", response_model=MapConfigOut)
def get_map_config(config_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return _get_or_404(db, config_id)


@router.put("/{config_id}", response_model=MapConfigOut)
def update_map_config(
    config_id: str,
    payload: MapConfigUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    config = _get_or_404(db, config_id)
    nullable = ("description", "bounds_north", "bounds_south", "bounds_east", "bounds_west")
    for key, value in payload.changes(*nullable).items():
        setattr(config, key, value)
    return _save(db, config)


@router.delete("/{config_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_map_config(config_id: str, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    config = _get_or_404(db, config_id)
    db.delete(config)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
