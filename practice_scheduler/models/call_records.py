"""Records written by the AI telephony integration."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from practice_scheduler.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransferRequest(Base):
    """A request to hand a call to staff; queued when the practice is closed."""
    __tablename__ = "transfer_requests"

    id = Column(Integer, primary_key=True)
    practice_id = Column(Integer, ForeignKey("practices.id"), nullable=False, index=True)
    call_id = Column(String)
    reason = Column(String)
    priority = Column(String, nullable=False, default="normal")
    status = Column(String, nullable=False)  # queued/pending/urgent
    outside_business_hours = Column(Boolean, nullable=False, default=False)
    notes = Column(String)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class AICallLog(Base):
    """Outcome of an AI-handled call."""
    __tablename__ = "ai_call_logs"

    id = Column(Integer, primary_key=True)
    practice_id = Column(Integer, ForeignKey("practices.id"), nullable=False, index=True)
    call_id = Column(String, index=True)
    caller_phone = Column(String)
    outcome = Column(String, nullable=False)
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="SET NULL"))
    transcript = Column(String)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
