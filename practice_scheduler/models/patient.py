"""Patient model definitions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from practice_scheduler.database import Base


class Patient(Base):
    """Represents a patient of one practice."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    practice_id = Column(Integer, ForeignKey("practices.id"), nullable=False, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False, default="")
    phone = Column(String, index=True)
    email = Column(String)
    privacy_consent = Column(Boolean, default=False)
    consent_date = Column(DateTime(timezone=True))
