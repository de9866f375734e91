import os
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from practice_scheduler.core.clock import Clock  # noqa: E402
from practice_scheduler.database import Base  # noqa: E402
from practice_scheduler.models import appointment, call_records, recurring_appointment  # noqa: E402,F401
from practice_scheduler.models.patient import Patient  # noqa: E402
from practice_scheduler.models.practice import Practice  # noqa: E402
from practice_scheduler.scheduling.business_hours import DEFAULT_BUSINESS_HOURS  # noqa: E402

BERLIN = ZoneInfo('Europe/Berlin')


class RecordingDispatcher:
    def __init__(self):
        self.events = []

    def dispatch(self, event) -> None:
        self.events.append(event)

    @property
    def actions(self) -> list[str]:
        return [event.action.value for event in self.events]


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_practice(db):
    def _make_practice(**overrides) -> Practice:
        fields = {
            'name': 'Praxis Dr. Weber',
            'owner_email': 'praxis@example.de',
            'phone': '+4930123456',
            'email': 'info@praxis-weber.de',
            'business_hours': DEFAULT_BUSINESS_HOURS,
            'webhook_url': None,
            'webhook_enabled': False,
        }
        fields.update(overrides)
        practice = Practice(**fields)
        db.add(practice)
        db.commit()
        db.refresh(practice)
        return practice

    return _make_practice


@pytest.fixture
def practice(make_practice) -> Practice:
    return make_practice()


@pytest.fixture
def make_patient(db):
    def _make_patient(practice_id: int, **overrides) -> Patient:
        fields = {
            'practice_id': practice_id,
            'first_name': 'Anna',
            'last_name': 'Schmidt',
            'phone': '+491701234567',
            'email': 'anna.schmidt@example.de',
            'privacy_consent': True,
        }
        fields.update(overrides)
        patient = Patient(**fields)
        db.add(patient)
        db.commit()
        db.refresh(patient)
        return patient

    return _make_patient


@pytest.fixture
def patient(make_patient, practice) -> Patient:
    return make_patient(practice.id)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


def fixed_clock(*args) -> Clock:
    instant = datetime(*args, tzinfo=BERLIN)
    return Clock('Europe/Berlin', now_fn=lambda: instant)


@pytest.fixture
def make_clock():
    return fixed_clock


@pytest.fixture
def monday_morning() -> Clock:
    return fixed_clock(2025, 3, 10, 10, 0)
