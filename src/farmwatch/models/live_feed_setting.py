from sqlalchemy import Boolean, Column, String, DateTime, Integer

from .base import Base, new_id, utcnow


class LiveFeedSetting(Base):
    __tablename__ = "live_feed_settings"
    id = Column(String, primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    stream_url = Column(String, nullable=False, unique=True)
    display_order = Column(Integer, nullable=False, default=0)
    is_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
