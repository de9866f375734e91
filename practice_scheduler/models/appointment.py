"""Appointment model definitions."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, String, Time, UniqueConstraint
from practice_scheduler.database import Base


class Appointment(Base):
    """Represents a scheduled appointment."""
    __tablename__ = "appointments"
    __table_args__ = (
        UniqueConstraint("practice_id", "patient_id", "date", "time", name="uq_appointments_patient_slot"),
    )

    id = Column(Integer, primary_key=True)
    practice_id = Column(Integer, ForeignKey("practices.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    date = Column(Date, nullable=False)
    time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=30)
    service = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    ai_booked = Column(Boolean, nullable=False, default=False)
    notes = Column(String)
    recurring_appointment_id = Column(Integer, ForeignKey("recurring_appointments.id", ondelete="SET NULL"))
