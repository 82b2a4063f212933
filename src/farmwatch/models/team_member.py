from sqlalchemy import Boolean, Column, String, DateTime, Float

from .base import Base, new_id, utcnow


class TeamMember(Base):
    __tablename__ = "team_members"
    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False, index=True)
    role = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=False, default="")
    avatar = Column(String, nullable=True)
    status = Column(String, nullable=False, default="Active")
    responsibility = Column(String, nullable=True)
    team = Column(String, nullable=False, index=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    is_on_map = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
