import logging
from datetime import date, time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from practice_scheduler.core import config
from practice_scheduler.models.recurring_appointment import RecurringAppointment
from practice_scheduler.scheduling.errors import LookupFailed, RecurringRuleNotFound
from practice_scheduler.scheduling.recurrence import validate_rule
from practice_scheduler.services.appointment_service import get_patient

logger = logging.getLogger(__name__)


def build_rule(
    practice_id: int,
    *,
    patient_id: int,
    service: str,
    recurrence_type: str,
    start_time: time,
    start_date: date,
    recurrence_interval: int = 1,
    days_of_week: list[int] | None = None,
    day_of_month: int | None = None,
    end_date: date | None = None,
    duration_minutes: int | None = None,
    notes: str | None = None,
) -> RecurringAppointment:
    """Build and validate an unsaved rule; only the fields of its type are kept."""
    rule = RecurringAppointment(
        practice_id=practice_id,
        patient_id=patient_id,
        service=service,
        duration_minutes=duration_minutes or config.DEFAULT_APPOINTMENT_DURATION_MINUTES,
        notes=notes,
        recurrence_type=recurrence_type,
        recurrence_interval=recurrence_interval,
        days_of_week=sorted(set(days_of_week)) if recurrence_type == 'weekly' and days_of_week else None,
        day_of_month=day_of_month if recurrence_type == 'monthly' else None,
        start_time=start_time.replace(second=0, microsecond=0),
        start_date=start_date,
        end_date=end_date,
        is_active=True,
    )
    validate_rule(rule)
    return rule


def create_rule(db: Session, practice, **fields) -> RecurringAppointment:
    get_patient(db, practice.id, fields['patient_id'])
    rule = build_rule(practice.id, **fields)

    try:
        db.add(rule)
        db.commit()
        db.refresh(rule)
    except SQLAlchemyError as exc:
        db.rollback()
        raise LookupFailed('Saving the recurring appointment failed.') from exc

    logger.info('Recurring rule %s created (%s)', rule.id, rule.recurrence_type)
    return rule


def get_rule(db: Session, practice_id: int, rule_id: int) -> RecurringAppointment:
    try:
        rule = db.query(RecurringAppointment).filter(
            RecurringAppointment.id == rule_id,
            RecurringAppointment.practice_id == practice_id,
        ).first()
    except SQLAlchemyError as exc:
        raise LookupFailed('Recurring appointment lookup failed.') from exc

    if rule is None:
        raise RecurringRuleNotFound()
    return rule


def list_rules(db: Session, practice_id: int) -> list[RecurringAppointment]:
    try:
        return db.query(RecurringAppointment).filter(
            RecurringAppointment.practice_id == practice_id,
        ).order_by(RecurringAppointment.id.desc()).all()
    except SQLAlchemyError as exc:
        raise LookupFailed('Recurring appointment lookup failed.') from exc


def set_rule_active(db: Session, practice_id: int, rule_id: int, is_active: bool) -> RecurringAppointment:
    """Toggle expansion of a rule; already materialized appointments stay untouched."""
    rule = get_rule(db, practice_id, rule_id)
    rule.is_active = is_active

    try:
        db.commit()
        db.refresh(rule)
    except SQLAlchemyError as exc:
        db.rollback()
        raise LookupFailed('Updating the recurring appointment failed.') from exc

    logger.info('Recurring rule %s %s', rule.id, 'activated' if is_active else 'deactivated')
    return rule


def delete_rule(db: Session, practice_id: int, rule_id: int) -> None:
    rule = get_rule(db, practice_id, rule_id)

    try:
        db.delete(rule)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise LookupFailed('Deleting the recurring appointment failed.') from exc

    logger.info('Recurring rule %s deleted', rule_id)
