"""Expansion of recurring appointment rules into concrete occurrences.

Rules follow the stored ``RecurringAppointment`` shape: weekday indices run
Sunday=0 .. Saturday=6, weeks start on Monday, and monthly rules clamp
``day_of_month`` to the last day of shorter months. Expansion is a pure
function of the rule and the requested range; materialising occurrences
into appointments is done by the appointment service.
"""

from dataclasses import dataclass
from datetime import date, time, timedelta

from dateutil.relativedelta import relativedelta

from practice_scheduler.scheduling.errors import InvalidRecurrenceRule

RECURRENCE_TYPES = ('daily', 'weekly', 'monthly')

WEEKDAY_SHORT_LABELS = {1: 'Mo', 2: 'Di', 3: 'Mi', 4: 'Do', 5: 'Fr', 6: 'Sa', 0: 'So'}


@dataclass(frozen=True, order=True)
class Occurrence:
    date: date
    time: time


def sunday_based_weekday(day: date) -> int:
    return (day.weekday() + 1) % 7


def week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def validate_rule(rule) -> None:
    if rule.recurrence_type not in RECURRENCE_TYPES:
        raise InvalidRecurrenceRule('Recurrence type must be daily, weekly or monthly.')

    interval = rule.recurrence_interval
    if not isinstance(interval, int) or isinstance(interval, bool) or interval < 1:
        raise InvalidRecurrenceRule('Recurrence interval must be a whole number of at least 1.')

    if rule.start_date is None or rule.start_time is None:
        raise InvalidRecurrenceRule('Recurring appointments need a start date and a start time.')

    if rule.end_date is not None and rule.end_date < rule.start_date:
        raise InvalidRecurrenceRule('End date must not be before the start date.')

    if rule.recurrence_type == 'weekly':
        days = rule.days_of_week or []
        if not days:
            raise InvalidRecurrenceRule('Weekly recurrence needs at least one weekday.')
        for day in days:
            if not isinstance(day, int) or isinstance(day, bool) or not 0 <= day <= 6:
                raise InvalidRecurrenceRule('Weekdays must be numbers from 0 (Sunday) to 6 (Saturday).')

    if rule.recurrence_type == 'monthly':
        day_of_month = rule.day_of_month
        if not isinstance(day_of_month, int) or isinstance(day_of_month, bool) or not 1 <= day_of_month <= 31:
            raise InvalidRecurrenceRule('Monthly recurrence needs a day of month between 1 and 31.')


def _daily_dates(rule, first: date, last: date) -> list[date]:
    step = rule.recurrence_interval
    offset = (first - rule.start_date).days
    current = rule.start_date + timedelta(days=-(-offset // step) * step)

    dates: list[date] = []
    while current <= last:
        dates.append(current)
        current += timedelta(days=step)

    return dates


def _weekly_dates(rule, first: date, last: date) -> list[date]:
    weekdays = set(rule.days_of_week)
    origin_week = week_start(rule.start_date)

    dates: list[date] = []
    current = first
    while current <= last:
        weeks_elapsed = (week_start(current) - origin_week).days // 7
        if weeks_elapsed % rule.recurrence_interval == 0 and sunday_based_weekday(current) in weekdays:
            dates.append(current)
        current += timedelta(days=1)

    return dates


def _monthly_dates(rule, first: date, last: date) -> list[date]:
    origin_month = rule.start_date.replace(day=1)

    dates: list[date] = []
    month = first.replace(day=1)
    while month <= last:
        months_elapsed = (month.year - origin_month.year) * 12 + (month.month - origin_month.month)
        if months_elapsed % rule.recurrence_interval == 0:
            # relativedelta(day=N) clamps to the month's last day.
            candidate = month + relativedelta(day=rule.day_of_month)
            if first <= candidate <= last:
                dates.append(candidate)
        month += relativedelta(months=1)

    return dates


_EXPANDERS = {
    'daily': _daily_dates,
    'weekly': _weekly_dates,
    'monthly': _monthly_dates,
}


def expand_occurrences(rule, range_start: date, range_end: date) -> list[Occurrence]:
    """Return the rule's occurrences within ``[range_start, range_end]``, ordered by date."""
    validate_rule(rule)

    if rule.is_active is False:
        return []

    first = max(rule.start_date, range_start)
    last = range_end if rule.end_date is None else min(rule.end_date, range_end)
    if first > last:
        return []

    slot_time = rule.start_time.replace(second=0, microsecond=0)
    return [Occurrence(date=day, time=slot_time) for day in _EXPANDERS[rule.recurrence_type](rule, first, last)]


def describe_rule(rule) -> str:
    interval = rule.recurrence_interval

    if rule.recurrence_type == 'daily':
        return 'Täglich' + (f' alle {interval} Tage' if interval > 1 else '')

    if rule.recurrence_type == 'weekly':
        ordered = sorted(rule.days_of_week or [], key=lambda day: (day + 6) % 7)
        day_names = ', '.join(WEEKDAY_SHORT_LABELS[day] for day in ordered)
        return 'Wöchentlich' + (f' alle {interval} Wochen' if interval > 1 else '') + f' ({day_names})'

    if rule.recurrence_type == 'monthly':
        return 'Monatlich' + (f' alle {interval} Monate' if interval > 1 else '') + f' am {rule.day_of_month}.'

    return 'Unbekannt'
