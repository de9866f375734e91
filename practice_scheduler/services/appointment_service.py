"""Appointment mutations: conflict check, day policy, status machine, webhook event.

Every mutation commits first and dispatches its event afterwards; a failed
webhook never undoes a committed change.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, time
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from practice_scheduler.core import config
from practice_scheduler.models.appointment import Appointment
from practice_scheduler.models.patient import Patient
from practice_scheduler.scheduling.business_hours import DayHours, ensure_bookable_day, parse_business_hours
from practice_scheduler.scheduling.conflicts import check_conflict
from practice_scheduler.scheduling.errors import (
    AppointmentNotFound,
    DuplicateBooking,
    InvalidAppointmentChange,
    LookupFailed,
    PatientNotFound,
    WeekendBlocked,
)
from practice_scheduler.scheduling.recurrence import expand_occurrences
from practice_scheduler.scheduling.state_machine import (
    AppointmentEvent,
    build_event,
    deletion_event,
    transition,
    validate_transition,
    appointment_snapshot,
)
from practice_scheduler.scheduling.status import AppointmentStatus
from practice_scheduler.services.webhooks import EventDispatcher

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('patient_id', 'date', 'time', 'duration_minutes', 'service', 'notes', 'status')
NULLABLE_FIELDS = ('notes',)


@dataclass
class MaterializationResult:
    created: list[int] = field(default_factory=list)
    skipped: list[dict[str, Any]] = field(default_factory=list)


def _practice_hours(practice) -> dict[str, DayHours] | None:
    try:
        return parse_business_hours(practice.business_hours)
    except LookupFailed:
        return None


def _dispatch(dispatcher: EventDispatcher | None, event: AppointmentEvent) -> None:
    if dispatcher is None:
        return

    try:
        dispatcher.dispatch(event)
    except Exception:
        logger.exception('Dispatching %s event for appointment %s failed', event.action.value, event.appointment_id)


def _commit(db: Session, patient_id: int, slot_date: date, slot_time: time) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info('Store rejected duplicate slot for patient %s on %s %s', patient_id, slot_date, slot_time)
        raise DuplicateBooking() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise LookupFailed('Saving the appointment failed. Please try again.') from exc


def get_patient(db: Session, practice_id: int, patient_id: int) -> Patient:
    try:
        patient = db.query(Patient).filter(
            Patient.id == patient_id,
            Patient.practice_id == practice_id,
        ).first()
    except SQLAlchemyError as exc:
        raise LookupFailed('Patient lookup failed.') from exc

    if patient is None:
        raise PatientNotFound()
    return patient


def get_appointment(db: Session, practice_id: int, appointment_id: int) -> Appointment:
    try:
        appointment = db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.practice_id == practice_id,
        ).first()
    except SQLAlchemyError as exc:
        raise LookupFailed('Appointment lookup failed.') from exc

    if appointment is None:
        raise AppointmentNotFound()
    return appointment


def list_appointments(
    db: Session,
    practice_id: int,
    start: date | None = None,
    end: date | None = None,
    status: AppointmentStatus | None = None,
) -> list[Appointment]:
    try:
        query = db.query(Appointment).filter(Appointment.practice_id == practice_id)
        if start is not None:
            query = query.filter(Appointment.date >= start)
        if end is not None:
            query = query.filter(Appointment.date <= end)
        if status is not None:
            query = query.filter(Appointment.status == AppointmentStatus(status).value)

        return query.order_by(Appointment.date.asc(), Appointment.time.asc()).all()
    except SQLAlchemyError as exc:
        raise LookupFailed('Appointment lookup failed.') from exc


def create_appointment(
    db: Session,
    practice,
    *,
    patient_id: int,
    slot_date: date,
    slot_time: time,
    service: str,
    duration_minutes: int | None = None,
    status: AppointmentStatus | str = AppointmentStatus.PENDING,
    notes: str | None = None,
    ai_booked: bool = False,
    recurring_appointment_id: int | None = None,
    dispatcher: EventDispatcher | None = None,
    policy: str | None = None,
) -> Appointment:
    slot_time = slot_time.replace(second=0, microsecond=0)
    patient = get_patient(db, practice.id, patient_id)

    ensure_bookable_day(slot_date, _practice_hours(practice), policy or config.WEEKEND_BOOKING_POLICY)

    conflict = check_conflict(db, practice.id, patient_id, slot_date, slot_time)
    if conflict.conflict:
        raise DuplicateBooking(conflicting_id=conflict.conflicting_id)

    appointment = Appointment(
        practice_id=practice.id,
        patient_id=patient_id,
        date=slot_date,
        time=slot_time,
        duration_minutes=duration_minutes or config.DEFAULT_APPOINTMENT_DURATION_MINUTES,
        service=service,
        status=AppointmentStatus(status).value,
        ai_booked=ai_booked,
        notes=notes,
        recurring_appointment_id=recurring_appointment_id,
    )
    db.add(appointment)
    _commit(db, patient_id, slot_date, slot_time)
    db.refresh(appointment)

    logger.info('Appointment %s created for patient %s on %s %s', appointment.id, patient_id, slot_date, slot_time)
    _dispatch(dispatcher, build_event(appointment, patient))

    return appointment


def update_appointment(
    db: Session,
    practice,
    appointment_id: int,
    changes: dict[str, Any],
    dispatcher: EventDispatcher | None = None,
    policy: str | None = None,
) -> Appointment:
    appointment = get_appointment(db, practice.id, appointment_id)
    changes = {key: value for key, value in changes.items() if key in EDITABLE_FIELDS}
    cleared = sorted(key for key, value in changes.items() if value is None and key not in NULLABLE_FIELDS)
    if cleared:
        raise InvalidAppointmentChange(f"These fields cannot be cleared: {', '.join(cleared)}.")
    if 'time' in changes:
        changes['time'] = changes['time'].replace(second=0, microsecond=0)

    new_patient_id = changes.get('patient_id', appointment.patient_id)
    new_date = changes.get('date', appointment.date)
    new_time = changes.get('time', appointment.time)

    patient = get_patient(db, practice.id, new_patient_id)

    if new_date != appointment.date:
        ensure_bookable_day(new_date, _practice_hours(practice), policy or config.WEEKEND_BOOKING_POLICY)

    if (new_patient_id, new_date, new_time) != (appointment.patient_id, appointment.date, appointment.time):
        conflict = check_conflict(
            db,
            practice.id,
            new_patient_id,
            new_date,
            new_time,
            exclude_appointment_id=appointment.id,
        )
        if conflict.conflict:
            raise DuplicateBooking(conflicting_id=conflict.conflicting_id)

    new_status = changes.get('status')
    if new_status is not None and AppointmentStatus(new_status).value != appointment.status:
        validate_transition(appointment.status, new_status)
        changes['status'] = AppointmentStatus(new_status).value
    else:
        changes.pop('status', None)

    previous = appointment_snapshot(appointment)
    for field_name, value in changes.items():
        setattr(appointment, field_name, value)

    _commit(db, new_patient_id, new_date, new_time)
    db.refresh(appointment)

    logger.info('Appointment %s updated (%s)', appointment.id, ', '.join(sorted(changes)) or 'no changes')
    _dispatch(dispatcher, build_event(appointment, patient, previous))

    return appointment


def change_status(
    db: Session,
    practice,
    appointment_id: int,
    new_status: AppointmentStatus | str,
    dispatcher: EventDispatcher | None = None,
) -> Appointment:
    appointment = get_appointment(db, practice.id, appointment_id)
    patient = get_patient(db, practice.id, appointment.patient_id)

    result = transition(appointment, new_status, patient)
    _commit(db, appointment.patient_id, appointment.date, appointment.time)
    db.refresh(appointment)

    logger.info(
        'Appointment %s moved from %s to %s',
        appointment.id,
        result.event.previous['status'],
        appointment.status,
    )
    _dispatch(dispatcher, result.event)

    return result.appointment


def delete_appointment(
    db: Session,
    practice,
    appointment_id: int,
    dispatcher: EventDispatcher | None = None,
) -> AppointmentEvent:
    appointment = get_appointment(db, practice.id, appointment_id)
    patient = get_patient(db, practice.id, appointment.patient_id)
    event = deletion_event(appointment, patient)

    try:
        db.delete(appointment)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise LookupFailed('Deleting the appointment failed. Please try again.') from exc

    logger.info('Appointment %s deleted', appointment_id)
    _dispatch(dispatcher, event)

    return event


def materialize_recurring_rule(
    db: Session,
    practice,
    rule,
    range_start: date,
    range_end: date,
    dispatcher: EventDispatcher | None = None,
    policy: str | None = None,
) -> MaterializationResult:
    """Create appointments for the rule's occurrences in the range.

    Occurrences the patient already holds, or that fall on blocked days, are
    skipped and reported rather than failing the whole run.
    """
    result = MaterializationResult()

    for occurrence in expand_occurrences(rule, range_start, range_end):
        try:
            appointment = create_appointment(
                db,
                practice,
                patient_id=rule.patient_id,
                slot_date=occurrence.date,
                slot_time=occurrence.time,
                service=rule.service,
                duration_minutes=rule.duration_minutes,
                notes=rule.notes,
                recurring_appointment_id=rule.id,
                dispatcher=dispatcher,
                policy=policy,
            )
        except DuplicateBooking:
            result.skipped.append({'date': occurrence.date, 'time': occurrence.time, 'reason': 'duplicate'})
            continue
        except WeekendBlocked:
            result.skipped.append({'date': occurrence.date, 'time': occurrence.time, 'reason': 'blocked_day'})
            continue

        result.created.append(appointment.id)

    logger.info(
        'Recurring rule %s materialized: %s created, %s skipped',
        rule.id,
        len(result.created),
        len(result.skipped),
    )
    return result
