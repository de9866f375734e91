from datetime import date, time, timedelta
from typing import Literal

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from practice_scheduler.auth.dependencies import get_current_practice
from practice_scheduler.core import config
from practice_scheduler.core.clock import Clock, get_clock
from practice_scheduler.database import get_db
from practice_scheduler.models.practice import Practice
from practice_scheduler.models.recurring_appointment import RecurringAppointment
from practice_scheduler.routes.dependencies import ensure_database_ready, get_webhook_dispatcher
from practice_scheduler.scheduling.errors import InvalidRecurrenceRule
from practice_scheduler.scheduling.recurrence import describe_rule, expand_occurrences
from practice_scheduler.services import appointment_service, recurring_service
from practice_scheduler.services.webhooks import EventDispatcher

router = APIRouter(tags=['recurring'])

MAX_PREVIEW_DAYS = 366


class CreateRecurringRequest(BaseModel):
    patient_id: int
    service: str
    duration_minutes: int | None = None
    notes: str | None = None
    recurrence_type: Literal['daily', 'weekly', 'monthly']
    recurrence_interval: int = 1
    days_of_week: list[int] | None = None
    day_of_month: int | None = None
    start_time: time
    start_date: date
    end_date: date | None = None

    @field_validator('service')
    @classmethod
    def validate_service(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Service is required.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class ToggleActiveRequest(BaseModel):
    is_active: bool


class MaterializeRequest(BaseModel):
    start: date | None = None
    end: date | None = None


class RecurringResponse(BaseModel):
    id: int
    patient_id: int
    service: str
    duration_minutes: int
    notes: str | None = None
    recurrence_type: str
    recurrence_interval: int
    days_of_week: list[int] | None = None
    day_of_month: int | None = None
    start_time: time
    start_date: date
    end_date: date | None = None
    is_active: bool
    description: str


class OccurrenceResponse(BaseModel):
    date: date
    time: time


class SkippedOccurrenceResponse(BaseModel):
    date: date
    time: time
    reason: str


class MaterializeResponse(BaseModel):
    created_appointment_ids: list[int]
    skipped: list[SkippedOccurrenceResponse]


def to_response(rule: RecurringAppointment) -> RecurringResponse:
    return RecurringResponse(
        id=rule.id,
        patient_id=rule.patient_id,
        service=rule.service,
        duration_minutes=rule.duration_minutes,
        notes=rule.notes,
        recurrence_type=rule.recurrence_type,
        recurrence_interval=rule.recurrence_interval,
        days_of_week=rule.days_of_week,
        day_of_month=rule.day_of_month,
        start_time=rule.start_time,
        start_date=rule.start_date,
        end_date=rule.end_date,
        is_active=rule.is_active,
        description=describe_rule(rule),
    )


def resolve_range(start: date | None, end: date | None, today: date) -> tuple[date, date]:
    range_start = start or today
    range_end = end or range_start + timedelta(days=config.RECURRENCE_HORIZON_DAYS)

    if range_end < range_start:
        raise InvalidRecurrenceRule('The range end must not be before its start.')
    if (range_end - range_start).days > MAX_PREVIEW_DAYS:
        raise InvalidRecurrenceRule(f'The range may span at most {MAX_PREVIEW_DAYS} days.')

    return range_start, range_end


@router.post('', response_model=RecurringResponse, status_code=status.HTTP_201_CREATED)
def create_recurring_appointment(
    data: CreateRecurringRequest,
    practice: Practice = Depends(get_current_practice),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    rule = recurring_service.create_rule(db, practice, **data.model_dump())
    return to_response(rule)


@router.get('', response_model=list[RecurringResponse])
def list_recurring_appointments(
    practice: Practice = Depends(get_current_practice),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return [to_response(rule) for rule in recurring_service.list_rules(db, practice.id)]


@router.patch('/{rule_id}/active', response_model=RecurringResponse)
def toggle_recurring_appointment(
    rule_id: int,
    data: ToggleActiveRequest,
    practice: Practice = Depends(get_current_practice),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    rule = recurring_service.set_rule_active(db, practice.id, rule_id, data.is_active)
    return to_response(rule)


@router.delete('/{rule_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_recurring_appointment(
    rule_id: int,
    practice: Practice = Depends(get_current_practice),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    recurring_service.delete_rule(db, practice.id, rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get('/{rule_id}/occurrences', response_model=list[OccurrenceResponse])
def preview_occurrences(
    rule_id: int,
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    practice: Practice = Depends(get_current_practice),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    rule = recurring_service.get_rule(db, practice.id, rule_id)
    range_start, range_end = resolve_range(start, end, clock.today())

    return [
        OccurrenceResponse(date=occurrence.date, time=occurrence.time)
        for occurrence in expand_occurrences(rule, range_start, range_end)
    ]


@router.post('/{rule_id}/materialize', response_model=MaterializeResponse)
def materialize_occurrences(
    rule_id: int,
    data: MaterializeRequest,
    practice: Practice = Depends(get_current_practice),
    dispatcher: EventDispatcher = Depends(get_webhook_dispatcher),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    rule = recurring_service.get_rule(db, practice.id, rule_id)
    range_start, range_end = resolve_range(data.start, data.end, clock.today())

    result = appointment_service.materialize_recurring_rule(
        db,
        practice,
        rule,
        range_start,
        range_end,
        dispatcher=dispatcher,
    )
    return MaterializeResponse(
        created_appointment_ids=result.created,
        skipped=[SkippedOccurrenceResponse(**skipped) for skipped in result.skipped],
    )
