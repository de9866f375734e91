"""Booking operations invoked by the AI call-handling agent."""

import logging
import re
from datetime import date, datetime, time
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from practice_scheduler.core import config
from practice_scheduler.models.appointment import Appointment
from practice_scheduler.models.call_records import AICallLog
from practice_scheduler.models.patient import Patient
from practice_scheduler.scheduling.business_hours import generate_available_slots, hours_for_day, load_practice_hours
from practice_scheduler.scheduling.errors import LookupFailed
from practice_scheduler.scheduling.status import AppointmentStatus
from practice_scheduler.services import appointment_service
from practice_scheduler.services.webhooks import EventDispatcher

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY_PREFIX = '+49'


def clean_phone_number(phone: str) -> str:
    cleaned = re.sub(r'[^\d+]', '', phone)

    if cleaned.startswith('+'):
        return cleaned
    if cleaned.startswith('49'):
        return '+' + cleaned
    if cleaned.startswith('0'):
        return DEFAULT_COUNTRY_PREFIX + cleaned[1:]
    return DEFAULT_COUNTRY_PREFIX + cleaned


def split_name(full_name: str) -> tuple[str, str]:
    parts = full_name.split()
    if not parts:
        return 'Patient', ''
    return parts[0], ' '.join(parts[1:]) or 'Patient'


def find_or_create_patient(db: Session, practice_id: int, full_name: str, phone: str, now: datetime) -> Patient:
    cleaned_phone = clean_phone_number(phone)

    try:
        patient = db.query(Patient).filter(
            Patient.practice_id == practice_id,
            Patient.phone == cleaned_phone,
        ).first()
        if patient is not None:
            return patient

        first_name, last_name = split_name(full_name)
        patient = Patient(
            practice_id=practice_id,
            first_name=first_name,
            last_name=last_name,
            phone=cleaned_phone,
            privacy_consent=True,
            consent_date=now,
        )
        db.add(patient)
        db.commit()
        db.refresh(patient)
    except SQLAlchemyError as exc:
        db.rollback()
        raise LookupFailed('Creating the patient profile failed.') from exc

    logger.info('Created patient %s from AI call', patient.id)
    return patient


def log_call(
    db: Session,
    practice_id: int,
    call_id: str | None,
    outcome: str,
    caller_phone: str | None = None,
    appointment_id: int | None = None,
    transcript: str | None = None,
) -> None:
    """Record an AI call outcome; a failed log entry never fails the call."""
    try:
        db.add(
            AICallLog(
                practice_id=practice_id,
                call_id=call_id,
                caller_phone=caller_phone,
                outcome=outcome,
                appointment_id=appointment_id,
                transcript=transcript,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Failed to write AI call log for call %s', call_id)


def book_appointment(
    db: Session,
    practice,
    *,
    patient_name: str,
    phone_number: str,
    service: str,
    appointment_date: date,
    appointment_time: time,
    call_id: str | None,
    now: datetime,
    dispatcher: EventDispatcher | None = None,
) -> dict[str, Any]:
    patient = find_or_create_patient(db, practice.id, patient_name, phone_number, now)

    appointment = appointment_service.create_appointment(
        db,
        practice,
        patient_id=patient.id,
        slot_date=appointment_date,
        slot_time=appointment_time,
        service=service,
        status=AppointmentStatus.PENDING,
        notes=f'Booked by AI agent. Call ID: {call_id}' if call_id else 'Booked by AI agent.',
        ai_booked=True,
        dispatcher=dispatcher,
    )

    log_call(
        db,
        practice.id,
        call_id,
        'appointment_booked',
        caller_phone=patient.phone,
        appointment_id=appointment.id,
    )

    return {
        'success': True,
        'message': f"Appointment booked for {appointment_date.isoformat()} at {appointment_time.strftime('%H:%M')}.",
        'appointment_id': appointment.id,
    }


def get_available_slots(db: Session, practice, day: date) -> dict[str, Any]:
    hours = load_practice_hours(db, practice.id)
    day_hours = hours_for_day(hours, day)

    if day_hours is None or day_hours.closed:
        return {
            'success': True,
            'date': day.isoformat(),
            'available_slots': [],
            'message': 'The practice is closed on this day.',
        }

    try:
        booked = db.query(Appointment.time, Appointment.duration_minutes).filter(
            Appointment.practice_id == practice.id,
            Appointment.date == day,
            Appointment.status != AppointmentStatus.CANCELLED.value,
        ).all()
    except SQLAlchemyError as exc:
        raise LookupFailed('Appointment lookup failed.') from exc

    slots = generate_available_slots(
        day_hours,
        [(start, duration or config.DEFAULT_APPOINTMENT_DURATION_MINUTES) for start, duration in booked],
        config.AVAILABLE_SLOT_INCREMENT_MINUTES,
    )

    return {
        'success': True,
        'date': day.isoformat(),
        'available_slots': [slot.strftime('%H:%M') for slot in slots],
        'message': f'{len(slots)} slots available on {day.isoformat()}.',
    }


def cancel_appointment(
    db: Session,
    practice,
    appointment_id: int,
    dispatcher: EventDispatcher | None = None,
) -> dict[str, Any]:
    appointment = appointment_service.change_status(
        db,
        practice,
        appointment_id,
        AppointmentStatus.CANCELLED,
        dispatcher=dispatcher,
    )

    return {
        'success': True,
        'message': f'The appointment on {appointment.date.isoformat()} has been cancelled.',
        'appointment_id': appointment.id,
    }
