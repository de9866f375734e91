from dataclasses import dataclass
from datetime import date, time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from practice_scheduler.models.appointment import Appointment
from practice_scheduler.scheduling.errors import LookupFailed


@dataclass(frozen=True)
class ConflictResult:
    conflict: bool
    conflicting_id: int | None = None


def check_conflict(
    db: Session,
    practice_id: int,
    patient_id: int,
    slot_date: date,
    slot_time: time,
    exclude_appointment_id: int | None = None,
) -> ConflictResult:
    """Report whether the patient already holds the (date, time) slot in this practice.

    The check is patient-scoped: other patients may share the same slot.
    """
    try:
        query = db.query(Appointment.id).filter(
            Appointment.practice_id == practice_id,
            Appointment.patient_id == patient_id,
            Appointment.date == slot_date,
            Appointment.time == slot_time.replace(second=0, microsecond=0),
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)

        existing = query.first()
    except SQLAlchemyError as exc:
        raise LookupFailed('Appointment lookup failed. Please try again.') from exc

    if existing is None:
        return ConflictResult(conflict=False)

    return ConflictResult(conflict=True, conflicting_id=existing.id)
