from sqlalchemy import Column, String, DateTime

from .base import Base, new_id, utcnow


class User(Base):
    __tablename__ = "users"
    id = Column(String, primary_key=True, default=new_id)
    email = Column(String, nullable=False, unique=True, index=True)
    full_name = Column(String, nullable=False)
    role = Column(String, nullable=False, default="viewer")
    team = Column(String, nullable=True)
    status = Column(String, nullable=False, default="active")
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
