import datetime
from datetime import date, time

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from practice_scheduler.auth.dependencies import get_current_practice
from practice_scheduler.database import get_db
from practice_scheduler.models.appointment import Appointment
from practice_scheduler.models.practice import Practice
from practice_scheduler.routes.dependencies import ensure_database_ready, get_webhook_dispatcher
from practice_scheduler.scheduling.conflicts import check_conflict
from practice_scheduler.scheduling.status import STATUS_DISPLAY, AppointmentStatus, status_color, status_label
from practice_scheduler.services import appointment_service
from practice_scheduler.services.webhooks import EventDispatcher

router = APIRouter(tags=['appointments'])

MAX_APPOINTMENT_NOTES_LENGTH = 600
MAX_SERVICE_LENGTH = 120


def _normalize_service(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError('Service is required.')
    if len(normalized) > MAX_SERVICE_LENGTH:
        raise ValueError(f'Service must be {MAX_SERVICE_LENGTH} characters or fewer.')
    return normalized


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


def _validate_duration(value: int | None) -> int | None:
    if value is not None and value <= 0:
        raise ValueError('Duration must be a positive number of minutes.')
    return value


class CreateAppointmentRequest(BaseModel):
    patient_id: int
    date: date
    time: time
    service: str
    duration_minutes: int | None = None
    status: AppointmentStatus = AppointmentStatus.PENDING
    notes: str | None = None

    @field_validator('service')
    @classmethod
    def validate_service(cls, value: str) -> str:
        return _normalize_service(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)

    @field_validator('duration_minutes')
    @classmethod
    def validate_duration(cls, value: int | None) -> int | None:
        return _validate_duration(value)


class UpdateAppointmentRequest(BaseModel):
    patient_id: int | None = None
    date: datetime.date | None = None
    time: datetime.time | None = None
    service: str | None = None
    duration_minutes: int | None = None
    status: AppointmentStatus | None = None
    notes: str | None = None

    @field_validator('service')
    @classmethod
    def validate_service(cls, value: str | None) -> str | None:
        return None if value is None else _normalize_service(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)

    @field_validator('duration_minutes')
    @classmethod
    def validate_duration(cls, value: int | None) -> int | None:
        return _validate_duration(value)


class StatusChangeRequest(BaseModel):
    status: AppointmentStatus


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    date: date
    time: time
    duration_minutes: int
    service: str
    status: AppointmentStatus
    status_label: str
    status_color: str
    ai_booked: bool
    notes: str | None = None
    recurring_appointment_id: int | None = None


class StatusOptionResponse(BaseModel):
    status: AppointmentStatus
    label: str
    color: str


class ConflictResponse(BaseModel):
    conflict: bool
    conflicting_id: int | None = None


def to_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        patient_id=appointment.patient_id,
        date=appointment.date,
        time=appointment.time,
        duration_minutes=appointment.duration_minutes,
        service=appointment.service,
        status=appointment.status,
        status_label=status_label(appointment.status),
        status_color=status_color(appointment.status),
        ai_booked=bool(appointment.ai_booked),
        notes=appointment.notes,
        recurring_appointment_id=appointment.recurring_appointment_id,
    )


@router.get('/statuses', response_model=list[StatusOptionResponse])
def list_statuses():
    return [
        StatusOptionResponse(status=appointment_status, label=display['label'], color=display['color'])
        for appointment_status, display in STATUS_DISPLAY.items()
    ]


@router.get('/conflicts', response_model=ConflictResponse)
def probe_conflict(
    patient_id: int = Query(...),
    slot_date: date = Query(..., alias='date'),
    slot_time: time = Query(..., alias='time'),
    exclude_appointment_id: int | None = Query(default=None),
    practice: Practice = Depends(get_current_practice),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    result = check_conflict(db, practice.id, patient_id, slot_date, slot_time, exclude_appointment_id)
    return ConflictResponse(conflict=result.conflict, conflicting_id=result.conflicting_id)


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    status_filter: AppointmentStatus | None = Query(default=None, alias='status'),
    practice: Practice = Depends(get_current_practice),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointments = appointment_service.list_appointments(db, practice.id, start, end, status_filter)
    return [to_response(appointment) for appointment in appointments]


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    practice: Practice = Depends(get_current_practice),
    dispatcher: EventDispatcher = Depends(get_webhook_dispatcher),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment = appointment_service.create_appointment(
        db,
        practice,
        patient_id=data.patient_id,
        slot_date=data.date,
        slot_time=data.time,
        service=data.service,
        duration_minutes=data.duration_minutes,
        status=data.status,
        notes=data.notes,
        dispatcher=dispatcher,
    )
    return to_response(appointment)


@router.patch('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    practice: Practice = Depends(get_current_practice),
    dispatcher: EventDispatcher = Depends(get_webhook_dispatcher),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment = appointment_service.update_appointment(
        db,
        practice,
        appointment_id,
        data.model_dump(exclude_unset=True),
        dispatcher=dispatcher,
    )
    return to_response(appointment)


@router.post('/{appointment_id}/status', response_model=AppointmentResponse)
def change_appointment_status(
    appointment_id: int,
    data: StatusChangeRequest,
    practice: Practice = Depends(get_current_practice),
    dispatcher: EventDispatcher = Depends(get_webhook_dispatcher),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment = appointment_service.change_status(db, practice, appointment_id, data.status, dispatcher=dispatcher)
    return to_response(appointment)


@router.delete('/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: int,
    practice: Practice = Depends(get_current_practice),
    dispatcher: EventDispatcher = Depends(get_webhook_dispatcher),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment_service.delete_appointment(db, practice, appointment_id, dispatcher=dispatcher)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
