from sqlalchemy import Boolean, Column, ForeignKey, String, DateTime, JSON, Text

from .base import Base, new_id, utcnow


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(String, primary_key=True, default=new_id)
    type = Column(String, nullable=False, index=True)
    severity = Column(String, nullable=False, default="medium")
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    read = Column(Boolean, nullable=False, default=False)
    # NULL means a broadcast visible to every user.
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    # "metadata" is reserved on declarative classes.
    details = Column("metadata", JSON, nullable=False, default=dict)
