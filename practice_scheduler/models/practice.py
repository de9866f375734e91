"""Practice model definitions."""

from sqlalchemy import Boolean, Column, Integer, JSON, String
from practice_scheduler.database import Base


class Practice(Base):
    """A tenant; every scheduling row belongs to exactly one practice."""
    __tablename__ = "practices"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    owner_email = Column(String, unique=True, index=True)
    phone = Column(String)
    email = Column(String)
    business_hours = Column(JSON)  # {"monday": {"open": "09:00", "close": "17:00", "closed": false}, ...}
    webhook_url = Column(String)
    webhook_enabled = Column(Boolean, default=False)
