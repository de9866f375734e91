"""Opening-hours decisions: call-transfer gating, bookable days and free slots."""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from practice_scheduler.models.practice import Practice
from practice_scheduler.scheduling.errors import LookupFailed, WeekendBlocked

WEEKDAY_NAMES = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')

WEEKDAYS_ONLY_POLICY = 'weekdays_only'
BUSINESS_HOURS_POLICY = 'business_hours'

DEFAULT_BUSINESS_HOURS = {
    'monday': {'open': '09:00', 'close': '17:00', 'closed': False},
    'tuesday': {'open': '09:00', 'close': '17:00', 'closed': False},
    'wednesday': {'open': '09:00', 'close': '17:00', 'closed': False},
    'thursday': {'open': '09:00', 'close': '17:00', 'closed': False},
    'friday': {'open': '09:00', 'close': '17:00', 'closed': False},
    'saturday': {'open': '09:00', 'close': '17:00', 'closed': True},
    'sunday': {'open': '09:00', 'close': '17:00', 'closed': True},
}


@dataclass(frozen=True)
class DayHours:
    open: time | None
    close: time | None
    closed: bool = False


def _parse_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise ValueError(f'Invalid time value: {value!r}')
    return time.fromisoformat(value.strip())


def parse_business_hours(raw: Any) -> dict[str, DayHours]:
    if not raw or not isinstance(raw, dict):
        raise LookupFailed('Business hours are not configured.')

    hours: dict[str, DayHours] = {}
    try:
        for day_name, entry in raw.items():
            normalized = str(day_name).strip().lower()
            if normalized not in WEEKDAY_NAMES or not isinstance(entry, dict):
                raise ValueError(f'Invalid business hours entry: {day_name!r}')

            closed = bool(entry.get('closed', False))
            if closed:
                hours[normalized] = DayHours(open=None, close=None, closed=True)
                continue

            open_time = _parse_time(entry['open'])
            close_time = _parse_time(entry['close'])
            if close_time <= open_time:
                raise ValueError(f'Closing time must be after opening time on {normalized}.')

            hours[normalized] = DayHours(open=open_time, close=close_time)
    except (KeyError, ValueError) as exc:
        raise LookupFailed('Business hours are misconfigured.') from exc

    return hours


def hours_for_day(hours: dict[str, DayHours], day: date) -> DayHours | None:
    return hours.get(WEEKDAY_NAMES[day.weekday()])


def is_within_business_hours(hours: dict[str, DayHours], at: datetime) -> bool:
    """True iff ``at`` falls on an open day within ``[open, close)``.

    ``at`` must already be expressed in the practice's local time.
    """
    day_hours = hours_for_day(hours, at.date())
    if day_hours is None or day_hours.closed:
        return False

    return day_hours.open <= at.time() < day_hours.close


def load_practice_hours(db: Session, practice_id: int) -> dict[str, DayHours]:
    try:
        practice = db.query(Practice).filter(Practice.id == practice_id).first()
    except SQLAlchemyError as exc:
        raise LookupFailed('Business hours lookup failed.') from exc

    if practice is None:
        raise LookupFailed('Business hours are not configured.')

    return parse_business_hours(practice.business_hours)


def check_practice_hours(db: Session, practice_id: int, at: datetime) -> bool:
    return is_within_business_hours(load_practice_hours(db, practice_id), at)


def ensure_bookable_day(day: date, hours: dict[str, DayHours] | None, policy: str) -> None:
    """Reject days on which appointments may not be created or moved to.

    Under the business-hours policy a practice without usable hours falls back
    to the weekday rule.
    """
    if policy == BUSINESS_HOURS_POLICY and hours is not None:
        day_hours = hours_for_day(hours, day)
        if day_hours is None or day_hours.closed:
            raise WeekendBlocked('The practice is closed on this day.')
        return

    if day.weekday() >= 5:
        raise WeekendBlocked('Appointments cannot be booked on weekends.')


def generate_available_slots(
    day_hours: DayHours | None,
    booked: list[tuple[time, int]],
    increment_minutes: int,
) -> list[time]:
    """Slot starts between opening and closing that no booked appointment covers."""
    if day_hours is None or day_hours.closed:
        return []

    anchor = date.min
    booked_ranges = [
        (datetime.combine(anchor, start), datetime.combine(anchor, start) + timedelta(minutes=duration))
        for start, duration in booked
    ]

    slots: list[time] = []
    current = datetime.combine(anchor, day_hours.open)
    close = datetime.combine(anchor, day_hours.close)
    while current < close:
        if not any(start <= current < end for start, end in booked_ranges):
            slots.append(current.time())
        current += timedelta(minutes=increment_minutes)

    return slots
