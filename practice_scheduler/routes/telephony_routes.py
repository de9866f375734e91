import logging
import re
from datetime import date, time
from typing import Any, Literal

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, ValidationError, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from practice_scheduler.auth.dependencies import verify_telephony_secret
from practice_scheduler.core.clock import Clock, get_clock
from practice_scheduler.database import get_db
from practice_scheduler.models.practice import Practice
from practice_scheduler.routes.dependencies import build_dispatcher, ensure_database_ready
from practice_scheduler.scheduling.errors import LookupFailed, PracticeNotFound, SchedulingError
from practice_scheduler.services import telephony_service, transfer_service

router = APIRouter(tags=['telephony'], dependencies=[Depends(verify_telephony_secret)])
logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')
TIME_PATTERN = re.compile(r'^\d{2}:\d{2}$')


class FunctionCallRequest(BaseModel):
    practice_id: int
    call_id: str | None = None
    name: str
    arguments: dict[str, Any] = {}


class TransferCallRequest(BaseModel):
    practice_id: int
    call_id: str | None = None
    reason: str | None = None
    priority: Literal['normal', 'urgent'] = 'normal'


class BookAppointmentArguments(BaseModel):
    patientName: str
    phoneNumber: str
    service: str
    appointmentDate: date
    appointmentTime: time

    @field_validator('patientName', 'phoneNumber', 'service')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Value is required.')
        return normalized

    @field_validator('appointmentDate', mode='before')
    @classmethod
    def validate_date_format(cls, value):
        if isinstance(value, str) and not DATE_PATTERN.match(value.strip()):
            raise ValueError('Date must use the YYYY-MM-DD format.')
        return value.strip() if isinstance(value, str) else value

    @field_validator('appointmentTime', mode='before')
    @classmethod
    def validate_time_format(cls, value):
        if isinstance(value, str) and not TIME_PATTERN.match(value.strip()):
            raise ValueError('Time must use the HH:MM format.')
        return value.strip() if isinstance(value, str) else value


class AvailableSlotsArguments(BaseModel):
    date: date


class CancelAppointmentArguments(BaseModel):
    appointment_id: int


class TransferArguments(BaseModel):
    reason: str | None = None
    priority: Literal['normal', 'urgent'] = 'normal'


class TransferCallResponse(BaseModel):
    success: bool
    transferred: bool
    outside_business_hours: bool
    message: str
    transfer_request_id: int
    estimated_wait: str | None = None


def load_practice(db: Session, practice_id: int) -> Practice:
    try:
        practice = db.query(Practice).filter(Practice.id == practice_id).first()
    except SQLAlchemyError as exc:
        raise LookupFailed('Practice lookup failed.') from exc

    if practice is None:
        raise PracticeNotFound()
    return practice


def transfer_response(outcome: transfer_service.TransferOutcome) -> TransferCallResponse:
    return TransferCallResponse(
        success=True,
        transferred=outcome.transferred,
        outside_business_hours=outcome.outside_business_hours,
        message=outcome.message,
        transfer_request_id=outcome.transfer_request_id,
        estimated_wait=outcome.estimated_wait,
    )


def error_response(detail: str, retryable: bool = False) -> dict[str, Any]:
    return {'success': False, 'error': detail, 'retryable': retryable}


def _book_appointment(db, practice, data, now, dispatcher):
    arguments = BookAppointmentArguments(**data.arguments)
    try:
        return telephony_service.book_appointment(
            db,
            practice,
            patient_name=arguments.patientName,
            phone_number=arguments.phoneNumber,
            service=arguments.service,
            appointment_date=arguments.appointmentDate,
            appointment_time=arguments.appointmentTime,
            call_id=data.call_id,
            now=now,
            dispatcher=dispatcher,
        )
    except SchedulingError:
        telephony_service.log_call(
            db,
            practice.id,
            data.call_id,
            'booking_failed',
            caller_phone=telephony_service.clean_phone_number(arguments.phoneNumber),
        )
        raise


def _get_available_slots(db, practice, data, now, dispatcher):
    arguments = AvailableSlotsArguments(**data.arguments)
    return telephony_service.get_available_slots(db, practice, arguments.date)


def _cancel_appointment(db, practice, data, now, dispatcher):
    arguments = CancelAppointmentArguments(**data.arguments)
    return telephony_service.cancel_appointment(db, practice, arguments.appointment_id, dispatcher=dispatcher)


def _transfer_call(db, practice, data, now, dispatcher):
    arguments = TransferArguments(**data.arguments)
    outcome = transfer_service.request_transfer(
        db,
        practice.id,
        now,
        reason=arguments.reason,
        priority=arguments.priority,
        call_id=data.call_id,
    )
    return transfer_response(outcome).model_dump()


FUNCTION_HANDLERS = {
    'book_appointment': _book_appointment,
    'get_available_slots': _get_available_slots,
    'cancel_appointment': _cancel_appointment,
    'transfer_call': _transfer_call,
}


@router.post('/function-call')
def handle_function_call(
    data: FunctionCallRequest,
    background_tasks: BackgroundTasks,
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    """Entry point for tool calls issued by the voice agent.

    Failures are reported in the body so the agent can relay them to the
    caller; only authentication problems surface as HTTP errors.
    """
    handler = FUNCTION_HANDLERS.get(data.name)
    if handler is None:
        return error_response(f'Unknown function: {data.name}')

    try:
        ensure_database_ready()
        practice = load_practice(db, data.practice_id)
        dispatcher = build_dispatcher(practice, background_tasks)
        return handler(db, practice, data, clock.now(), dispatcher)
    except ValidationError as exc:
        logger.info('Rejected arguments for %s: %s', data.name, exc.errors())
        return error_response(f'Invalid arguments for {data.name}.')
    except SchedulingError as exc:
        logger.info('Function %s failed for call %s: %s', data.name, data.call_id, exc.detail)
        return error_response(exc.detail, exc.retryable)


@router.post('/transfer', response_model=TransferCallResponse)
def transfer_call(
    data: TransferCallRequest,
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    practice = load_practice(db, data.practice_id)
    outcome = transfer_service.request_transfer(
        db,
        practice.id,
        clock.now(),
        reason=data.reason,
        priority=data.priority,
        call_id=data.call_id,
    )
    return transfer_response(outcome)
