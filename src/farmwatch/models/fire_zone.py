from sqlalchemy import Column, String, DateTime, Float, Text

from .base import Base, new_id, utcnow


class FireZone(Base):
    __tablename__ = "fire_zones"
    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    severity = Column(String, nullable=False, default="Medium")
    status = Column(String, nullable=False, default="Active", index=True)
    description = Column(Text, nullable=True)
    reported_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
