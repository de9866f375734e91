"""Outbound appointment webhooks.

Events are turned into the automation payload at dispatch time and handed to
a scheduler (FastAPI background tasks in the request path), so delivery never
blocks or rolls back the booking that produced them.
"""

import logging
from collections.abc import Callable
from datetime import date, datetime, timezone
from typing import Any, Protocol

import httpx

from practice_scheduler.core import config
from practice_scheduler.scheduling.state_machine import AppointmentEvent

logger = logging.getLogger(__name__)

GERMAN_WEEKDAYS = ('Montag', 'Dienstag', 'Mittwoch', 'Donnerstag', 'Freitag', 'Samstag', 'Sonntag')
GERMAN_MONTHS = (
    'Januar', 'Februar', 'März', 'April', 'Mai', 'Juni',
    'Juli', 'August', 'September', 'Oktober', 'November', 'Dezember',
)


class EventDispatcher(Protocol):
    def dispatch(self, event: AppointmentEvent) -> None:
        ...


def format_german_date(value: str | None) -> str | None:
    if not value:
        return None
    day = date.fromisoformat(value)
    return f'{GERMAN_WEEKDAYS[day.weekday()]}, {day.day}. {GERMAN_MONTHS[day.month - 1]} {day.year}'


def _format_datetime(snapshot: dict[str, Any]) -> str | None:
    formatted_date = format_german_date(snapshot.get('appointment_date'))
    if formatted_date is None:
        return None
    return f"{formatted_date} um {snapshot.get('appointment_time')} Uhr"


def build_webhook_payload(practice, event: AppointmentEvent, sent_at: datetime) -> dict[str, Any]:
    appointment = event.appointment
    patient = event.patient
    previous = event.previous

    return {
        'trigger_type': event.action.value,
        'timestamp': sent_at.isoformat(),
        'practice': {
            'id': practice.id,
            'name': practice.name,
            'phone': practice.phone,
            'email': practice.email,
        },
        'appointment': {
            'id': event.appointment_id,
            'date': appointment.get('appointment_date'),
            'time': appointment.get('appointment_time'),
            'service': appointment.get('service'),
            'status': appointment.get('status'),
            'notes': appointment.get('notes'),
            'duration_minutes': appointment.get('duration_minutes'),
            'ai_booked': appointment.get('ai_booked'),
            'formatted_date': format_german_date(appointment.get('appointment_date')),
            'formatted_datetime': _format_datetime(appointment),
        },
        'patient': {
            'id': patient['id'],
            'name': f"{patient['first_name']} {patient['last_name']}".strip(),
            'first_name': patient['first_name'],
            'last_name': patient['last_name'],
            'phone': patient['phone'],
            'email': patient['email'],
        } if patient else None,
        'changes': {
            'old_date': previous.get('appointment_date'),
            'old_time': previous.get('appointment_time'),
            'old_status': previous.get('status'),
            'old_service': previous.get('service'),
            'old_formatted_date': format_german_date(previous.get('appointment_date')),
            'old_formatted_datetime': _format_datetime(previous),
        } if previous else None,
        'source': 'appointment_management',
    }


class WebhookDispatcher:
    """Delivers appointment events to the practice's automation webhook."""

    def __init__(
        self,
        practice,
        schedule: Callable[..., Any],
        transport: httpx.BaseTransport | None = None,
    ):
        self.practice = practice
        self._schedule = schedule
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(config.WEBHOOK_ENABLED and self.practice.webhook_enabled and self.practice.webhook_url)

    def dispatch(self, event: AppointmentEvent) -> None:
        if not self.enabled:
            logger.debug('Webhook not configured for practice %s, skipping %s', self.practice.id, event.action.value)
            return

        payload = build_webhook_payload(self.practice, event, datetime.now(timezone.utc))
        self._schedule(self.deliver, self.practice.webhook_url, payload)

    def deliver(self, url: str, payload: dict[str, Any]) -> bool:
        try:
            with httpx.Client(timeout=config.WEBHOOK_TIMEOUT_SECONDS, transport=self._transport) as client:
                response = client.post(url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError:
            logger.exception(
                'Webhook delivery failed for %s of appointment %s',
                payload.get('trigger_type'),
                payload.get('appointment', {}).get('id'),
            )
            return False

        logger.info(
            'Webhook delivered: %s for appointment %s',
            payload.get('trigger_type'),
            payload.get('appointment', {}).get('id'),
        )
        return True
