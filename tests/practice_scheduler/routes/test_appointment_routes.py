from datetime import date, time

import pytest
from pydantic import ValidationError

from practice_scheduler.models.appointment import Appointment
from practice_scheduler.routes.appointment_routes import (
    CreateAppointmentRequest,
    StatusChangeRequest,
    UpdateAppointmentRequest,
    change_appointment_status,
    create_appointment,
    delete_appointment,
    list_appointments,
    list_statuses,
    probe_conflict,
    update_appointment,
)
from practice_scheduler.scheduling.errors import DuplicateBooking, InvalidTransition


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('practice_scheduler.routes.appointment_routes.ensure_database_ready', lambda: None)


def create_request(patient_id: int, **overrides) -> CreateAppointmentRequest:
    fields = {'patient_id': patient_id, 'date': date(2025, 3, 10), 'time': time(9, 0), 'service': ' Erstberatung '}
    fields.update(overrides)
    return CreateAppointmentRequest(**fields)


def test_create_appointment_request_normalizes_fields() -> None:
    request = create_request(1, notes='   ')

    assert request.service == 'Erstberatung'
    assert request.notes is None
    assert request.status == 'pending'


@pytest.mark.parametrize(
    'overrides',
    [
        {'service': '   '},
        {'service': 'x' * 121},
        {'duration_minutes': 0},
        {'notes': 'x' * 601},
        {'status': 'archived'},
    ],
)
def test_create_appointment_request_rejects_invalid_fields(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        create_request(1, **overrides)


def test_list_statuses_returns_display_metadata() -> None:
    statuses = list_statuses()

    assert [status.label for status in statuses] == ['Geplant', 'Bestätigt', 'Abgeschlossen', 'Abgesagt']


def test_create_appointment_returns_response(db, practice, patient, dispatcher) -> None:
    response = create_appointment(data=create_request(patient.id), practice=practice, dispatcher=dispatcher, db=db)

    assert response.id is not None
    assert response.service == 'Erstberatung'
    assert response.status_label == 'Geplant'
    assert response.status_color == 'yellow'
    assert dispatcher.actions == ['created']


def test_create_appointment_twice_raises_conflict(db, practice, patient, dispatcher) -> None:
    create_appointment(data=create_request(patient.id), practice=practice, dispatcher=dispatcher, db=db)

    with pytest.raises(DuplicateBooking) as exception_info:
        create_appointment(data=create_request(patient.id), practice=practice, dispatcher=dispatcher, db=db)

    assert exception_info.value.detail == 'This patient already has an appointment at this time.'
    assert db.query(Appointment).count() == 1


def test_probe_conflict(db, practice, patient, dispatcher) -> None:
    created = create_appointment(data=create_request(patient.id), practice=practice, dispatcher=dispatcher, db=db)

    taken = probe_conflict(
        patient_id=patient.id,
        slot_date=date(2025, 3, 10),
        slot_time=time(9, 0),
        exclude_appointment_id=None,
        practice=practice,
        db=db,
    )
    own = probe_conflict(
        patient_id=patient.id,
        slot_date=date(2025, 3, 10),
        slot_time=time(9, 0),
        exclude_appointment_id=created.id,
        practice=practice,
        db=db,
    )

    assert taken.conflict is True
    assert taken.conflicting_id == created.id
    assert own.conflict is False


def test_update_appointment_only_applies_sent_fields(db, practice, patient, dispatcher) -> None:
    created = create_appointment(
        data=create_request(patient.id, notes='Nüchtern erscheinen'),
        practice=practice,
        dispatcher=dispatcher,
        db=db,
    )

    response = update_appointment(
        appointment_id=created.id,
        data=UpdateAppointmentRequest(time=time(10, 30)),
        practice=practice,
        dispatcher=dispatcher,
        db=db,
    )

    assert response.time == time(10, 30)
    assert response.notes == 'Nüchtern erscheinen'
    assert dispatcher.actions == ['created', 'updated']


def test_change_status_rejects_leaving_completed(db, practice, patient, dispatcher) -> None:
    created = create_appointment(data=create_request(patient.id), practice=practice, dispatcher=dispatcher, db=db)
    for new_status in ('confirmed', 'completed'):
        change_appointment_status(
            appointment_id=created.id,
            data=StatusChangeRequest(status=new_status),
            practice=practice,
            dispatcher=dispatcher,
            db=db,
        )

    with pytest.raises(InvalidTransition):
        change_appointment_status(
            appointment_id=created.id,
            data=StatusChangeRequest(status='pending'),
            practice=practice,
            dispatcher=dispatcher,
            db=db,
        )


def test_list_and_delete_appointment(db, practice, patient, dispatcher) -> None:
    created = create_appointment(data=create_request(patient.id), practice=practice, dispatcher=dispatcher, db=db)

    listed = list_appointments(start=None, end=None, status_filter=None, practice=practice, db=db)
    response = delete_appointment(appointment_id=created.id, practice=practice, dispatcher=dispatcher, db=db)
    remaining = list_appointments(start=None, end=None, status_filter=None, practice=practice, db=db)

    assert [appointment.id for appointment in listed] == [created.id]
    assert response.status_code == 204
    assert remaining == []
    assert dispatcher.actions == ['created', 'cancelled']


def test_update_appointment_clears_notes_with_empty_string(db, practice, patient, dispatcher) -> None:
    created = create_appointment(
        data=create_request(patient.id, notes='alt'),
        practice=practice,
        dispatcher=dispatcher,
        db=db,
    )

    response = update_appointment(
        appointment_id=created.id,
        data=UpdateAppointmentRequest(notes=''),
        practice=practice,
        dispatcher=dispatcher,
        db=db,
    )

    assert response.notes is None
    assert dispatcher.events[-1].appointment['notes'] is None
