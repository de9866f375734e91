from fastapi import BackgroundTasks, Depends
from sqlalchemy.exc import SQLAlchemyError

from practice_scheduler.auth.dependencies import get_current_practice
from practice_scheduler.database import ensure_appointment_schema, ensure_practice_schema
from practice_scheduler.models.practice import Practice
from practice_scheduler.scheduling.errors import LookupFailed
from practice_scheduler.services.webhooks import WebhookDispatcher


def ensure_database_ready() -> None:
    try:
        ensure_practice_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise LookupFailed('Database unavailable. Verify DATABASE_URL and Postgres credentials.') from exc


def build_dispatcher(practice: Practice, background_tasks: BackgroundTasks) -> WebhookDispatcher:
    return WebhookDispatcher(practice, schedule=background_tasks.add_task)


def get_webhook_dispatcher(
    background_tasks: BackgroundTasks,
    practice: Practice = Depends(get_current_practice),
) -> WebhookDispatcher:
    return build_dispatcher(practice, background_tasks)
