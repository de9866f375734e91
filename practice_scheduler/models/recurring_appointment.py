"""Recurring appointment rule definitions."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, JSON, String, Time
from practice_scheduler.database import Base


class RecurringAppointment(Base):
    """A recurrence rule that is expanded into concrete appointments."""
    __tablename__ = "recurring_appointments"

    id = Column(Integer, primary_key=True)
    practice_id = Column(Integer, ForeignKey("practices.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    service = Column(String, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=30)
    notes = Column(String)
    recurrence_type = Column(String, nullable=False)  # daily/weekly/monthly
    recurrence_interval = Column(Integer, nullable=False, default=1)
    days_of_week = Column(JSON)  # weekday indices, Sunday=0
    day_of_month = Column(Integer)
    start_time = Column(Time, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date)
    is_active = Column(Boolean, nullable=False, default=True)
