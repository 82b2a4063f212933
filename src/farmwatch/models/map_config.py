from sqlalchemy import Boolean, Column, String, DateTime, Float, Integer, Text

from .base import Base, new_id, utcnow


class MapConfig(Base):
    __tablename__ = "map_configs"
    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    center_latitude = Column(Float, nullable=False)
    center_longitude = Column(Float, nullable=False)
    default_zoom = Column(Integer, nullable=False, default=13)
    min_zoom = Column(Integer, nullable=False, default=1)
    max_zoom = Column(Integer, nullable=False, default=18)
    bounds_north = Column(Float, nullable=True)
    bounds_south = Column(Float, nullable=True)
    bounds_east = Column(Float, nullable=True)
    bounds_west = Column(Float, nullable=True)
    is_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
