"""Appointment status transitions and the events they emit."""

from dataclasses import dataclass, field
from typing import Any

from practice_scheduler.scheduling.errors import InvalidTransition
from practice_scheduler.scheduling.status import AppointmentStatus, EventAction, classify_event, status_label

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CANCELLED: frozenset({AppointmentStatus.PENDING}),
    AppointmentStatus.COMPLETED: frozenset(),
}


@dataclass
class AppointmentEvent:
    action: EventAction
    appointment_id: int | None
    appointment: dict[str, Any]
    patient: dict[str, Any] | None = None
    previous: dict[str, Any] | None = field(default=None)


@dataclass
class TransitionResult:
    appointment: Any
    event: AppointmentEvent


def appointment_snapshot(appointment) -> dict[str, Any]:
    return {
        'id': appointment.id,
        'practice_id': appointment.practice_id,
        'patient_id': appointment.patient_id,
        'appointment_date': appointment.date.isoformat() if appointment.date else None,
        'appointment_time': appointment.time.strftime('%H:%M') if appointment.time else None,
        'duration_minutes': appointment.duration_minutes,
        'service': appointment.service,
        'status': appointment.status,
        'ai_booked': bool(appointment.ai_booked),
        'notes': appointment.notes,
    }


def patient_snapshot(patient) -> dict[str, Any] | None:
    if patient is None:
        return None

    return {
        'id': patient.id,
        'first_name': patient.first_name,
        'last_name': patient.last_name,
        'phone': patient.phone,
        'email': patient.email,
    }


def can_transition(current: AppointmentStatus | str, new: AppointmentStatus | str) -> bool:
    return AppointmentStatus(new) in ALLOWED_TRANSITIONS[AppointmentStatus(current)]


def validate_transition(current: AppointmentStatus | str, new: AppointmentStatus | str) -> None:
    current_status = AppointmentStatus(current)
    new_status = AppointmentStatus(new)

    if current_status == new_status:
        raise InvalidTransition(f'Appointment is already {status_label(current_status)}.')

    if not ALLOWED_TRANSITIONS[current_status]:
        raise InvalidTransition(
            f'Appointments that are {status_label(current_status)} cannot change status.'
        )

    if new_status not in ALLOWED_TRANSITIONS[current_status]:
        raise InvalidTransition(
            f'Cannot change status from {status_label(current_status)} to {status_label(new_status)}.'
        )


def build_event(appointment, patient=None, previous: dict[str, Any] | None = None) -> AppointmentEvent:
    old_status = previous['status'] if previous else None
    return AppointmentEvent(
        action=classify_event(old_status, appointment.status),
        appointment_id=appointment.id,
        appointment=appointment_snapshot(appointment),
        patient=patient_snapshot(patient),
        previous=previous,
    )


def transition(appointment, new_status: AppointmentStatus | str, patient=None) -> TransitionResult:
    validate_transition(appointment.status, new_status)

    previous = appointment_snapshot(appointment)
    appointment.status = AppointmentStatus(new_status).value

    return TransitionResult(appointment=appointment, event=build_event(appointment, patient, previous))


def deletion_event(appointment, patient=None) -> AppointmentEvent:
    snapshot = appointment_snapshot(appointment)
    return AppointmentEvent(
        action=EventAction.CANCELLED,
        appointment_id=appointment.id,
        appointment=snapshot,
        patient=patient_snapshot(patient),
        previous=snapshot,
    )
