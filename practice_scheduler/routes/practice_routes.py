from datetime import datetime, time

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from practice_scheduler.auth.dependencies import get_current_practice
from practice_scheduler.core.clock import Clock, get_clock
from practice_scheduler.database import get_db
from practice_scheduler.models.practice import Practice
from practice_scheduler.routes.dependencies import ensure_database_ready
from practice_scheduler.scheduling.business_hours import (
    DEFAULT_BUSINESS_HOURS,
    WEEKDAY_NAMES,
    check_practice_hours,
)
from practice_scheduler.scheduling.errors import LookupFailed

router = APIRouter(tags=['practice'])


class DayHoursModel(BaseModel):
    open: time
    close: time
    closed: bool = False

    @model_validator(mode='after')
    def validate_range(self) -> 'DayHoursModel':
        if not self.closed and self.close <= self.open:
            raise ValueError('Closing time must be after opening time.')
        return self


class BusinessHoursRequest(BaseModel):
    hours: dict[str, DayHoursModel]

    @field_validator('hours')
    @classmethod
    def validate_days(cls, value: dict[str, DayHoursModel]) -> dict[str, DayHoursModel]:
        normalized = {day.strip().lower(): hours for day, hours in value.items()}
        unknown = set(normalized) - set(WEEKDAY_NAMES)
        if unknown:
            raise ValueError(f"Unknown weekdays: {', '.join(sorted(unknown))}.")
        return normalized


class BusinessHoursResponse(BaseModel):
    hours: dict[str, DayHoursModel]
    configured: bool


class OpenNowResponse(BaseModel):
    open: bool
    checked_at: datetime


@router.get('/business-hours', response_model=BusinessHoursResponse)
def get_business_hours(practice: Practice = Depends(get_current_practice)):
    if practice.business_hours:
        return BusinessHoursResponse(hours=practice.business_hours, configured=True)
    return BusinessHoursResponse(hours=DEFAULT_BUSINESS_HOURS, configured=False)


@router.put('/business-hours', response_model=BusinessHoursResponse)
def update_business_hours(
    data: BusinessHoursRequest,
    practice: Practice = Depends(get_current_practice),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    practice.business_hours = {
        day: {
            'open': hours.open.strftime('%H:%M'),
            'close': hours.close.strftime('%H:%M'),
            'closed': hours.closed,
        }
        for day, hours in data.hours.items()
    }

    try:
        db.commit()
        db.refresh(practice)
    except SQLAlchemyError as exc:
        db.rollback()
        raise LookupFailed('Saving business hours failed.') from exc

    return BusinessHoursResponse(hours=practice.business_hours, configured=True)


@router.get('/open-now', response_model=OpenNowResponse)
def is_open_now(
    practice: Practice = Depends(get_current_practice),
    clock: Clock = Depends(get_clock),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    now = clock.now()
    return OpenNowResponse(open=check_practice_hours(db, practice.id, now), checked_at=now)
