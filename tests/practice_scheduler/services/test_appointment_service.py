from datetime import date, time

import pytest

from practice_scheduler.models.appointment import Appointment
from practice_scheduler.scheduling.conflicts import ConflictResult
from practice_scheduler.scheduling.errors import (
    AppointmentNotFound,
    DuplicateBooking,
    InvalidAppointmentChange,
    InvalidTransition,
    PatientNotFound,
    WeekendBlocked,
)
from practice_scheduler.scheduling.status import AppointmentStatus
from practice_scheduler.services import appointment_service, recurring_service


def book(db, practice, patient, dispatcher=None, **overrides) -> Appointment:
    fields = {
        'patient_id': patient.id,
        'slot_date': date(2025, 3, 10),
        'slot_time': time(9, 0),
        'service': 'Erstberatung',
        'dispatcher': dispatcher,
    }
    fields.update(overrides)
    return appointment_service.create_appointment(db, practice, **fields)


def test_create_appointment_persists_and_emits_created(db, practice, patient, dispatcher) -> None:
    appointment = book(db, practice, patient, dispatcher)

    assert appointment.id is not None
    assert appointment.status == 'pending'
    assert appointment.duration_minutes == 30
    assert appointment.ai_booked is False
    assert dispatcher.actions == ['created']
    assert dispatcher.events[0].patient['last_name'] == 'Schmidt'


def test_second_booking_of_same_slot_is_rejected(db, practice, patient, dispatcher) -> None:
    first = book(db, practice, patient, dispatcher)

    with pytest.raises(DuplicateBooking) as exception_info:
        book(db, practice, patient, dispatcher)

    assert exception_info.value.status_code == 409
    assert exception_info.value.conflicting_id == first.id
    assert db.query(Appointment).count() == 1
    assert dispatcher.actions == ['created']


def test_store_unique_constraint_backs_up_conflict_check(db, practice, patient, monkeypatch: pytest.MonkeyPatch) -> None:
    book(db, practice, patient)
    monkeypatch.setattr(
        'practice_scheduler.services.appointment_service.check_conflict',
        lambda *args, **kwargs: ConflictResult(conflict=False),
    )

    with pytest.raises(DuplicateBooking):
        book(db, practice, patient)

    assert db.query(Appointment).count() == 1


def test_other_patient_may_share_the_slot(db, practice, patient, make_patient) -> None:
    other_patient = make_patient(practice.id, first_name='Jonas', phone='+491709999999')

    book(db, practice, patient)
    book(db, practice, other_patient)

    assert db.query(Appointment).count() == 2


def test_weekend_booking_is_blocked(db, practice, patient, dispatcher) -> None:
    with pytest.raises(WeekendBlocked):
        book(db, practice, patient, dispatcher, slot_date=date(2025, 3, 15))

    assert db.query(Appointment).count() == 0
    assert dispatcher.events == []


def test_business_hours_policy_allows_open_saturday(db, make_practice, make_patient) -> None:
    practice = make_practice(business_hours={'saturday': {'open': '09:00', 'close': '13:00'}})
    patient = make_patient(practice.id)

    appointment = book(db, practice, patient, slot_date=date(2025, 3, 15), policy='business_hours')

    assert appointment.date == date(2025, 3, 15)


def test_patient_of_another_practice_is_rejected(db, practice, make_practice, make_patient) -> None:
    other_practice = make_practice(owner_email='andere@example.de')
    foreign_patient = make_patient(other_practice.id)

    with pytest.raises(PatientNotFound):
        book(db, practice, foreign_patient)


def test_update_appointment_notes_emits_updated(db, practice, patient, dispatcher) -> None:
    appointment = book(db, practice, patient)

    updated = appointment_service.update_appointment(
        db,
        practice,
        appointment.id,
        {'notes': 'Bitte Befunde mitbringen', 'status': 'pending'},
        dispatcher=dispatcher,
    )

    assert updated.notes == 'Bitte Befunde mitbringen'
    assert dispatcher.actions == ['updated']
    assert dispatcher.events[0].previous['notes'] is None


def test_update_appointment_into_confirmed_emits_confirmed(db, practice, patient, dispatcher) -> None:
    appointment = book(db, practice, patient)

    appointment_service.update_appointment(db, practice, appointment.id, {'status': AppointmentStatus.CONFIRMED}, dispatcher=dispatcher)

    assert dispatcher.actions == ['confirmed']


def test_moving_onto_held_slot_is_rejected(db, practice, patient) -> None:
    first = book(db, practice, patient)
    second = book(db, practice, patient, slot_time=time(10, 0))

    with pytest.raises(DuplicateBooking) as exception_info:
        appointment_service.update_appointment(db, practice, second.id, {'time': time(9, 0)})

    assert exception_info.value.conflicting_id == first.id
    db.refresh(second)
    assert second.time == time(10, 0)


def test_moving_to_weekend_is_rejected(db, practice, patient) -> None:
    appointment = book(db, practice, patient)

    with pytest.raises(WeekendBlocked):
        appointment_service.update_appointment(db, practice, appointment.id, {'date': date(2025, 3, 16)})


def test_editing_without_moving_skips_conflict_check(db, practice, patient, monkeypatch: pytest.MonkeyPatch) -> None:
    appointment = book(db, practice, patient)

    def unexpected_check(*args, **kwargs):
        raise AssertionError('conflict check should not run')

    monkeypatch.setattr('practice_scheduler.services.appointment_service.check_conflict', unexpected_check)

    updated = appointment_service.update_appointment(db, practice, appointment.id, {'service': 'Kontrolle'})

    assert updated.service == 'Kontrolle'


def test_change_status_follows_state_machine(db, practice, patient, dispatcher) -> None:
    appointment = book(db, practice, patient)

    appointment_service.change_status(db, practice, appointment.id, 'confirmed', dispatcher=dispatcher)
    appointment_service.change_status(db, practice, appointment.id, 'completed', dispatcher=dispatcher)

    with pytest.raises(InvalidTransition):
        appointment_service.change_status(db, practice, appointment.id, 'cancelled', dispatcher=dispatcher)

    assert dispatcher.actions == ['confirmed', 'updated']


def test_delete_appointment_emits_cancelled_from_snapshot(db, practice, patient, dispatcher) -> None:
    appointment = book(db, practice, patient)
    appointment_id = appointment.id

    event = appointment_service.delete_appointment(db, practice, appointment_id, dispatcher=dispatcher)

    assert db.query(Appointment).filter(Appointment.id == appointment_id).first() is None
    assert event.action.value == 'cancelled'
    assert event.appointment['appointment_date'] == '2025-03-10'
    assert dispatcher.events == [event]


def test_appointments_are_practice_scoped(db, practice, patient, make_practice) -> None:
    appointment = book(db, practice, patient)
    other_practice = make_practice(owner_email='andere@example.de')

    with pytest.raises(AppointmentNotFound):
        appointment_service.delete_appointment(db, other_practice, appointment.id)


def test_list_appointments_filters_by_range_and_status(db, practice, patient) -> None:
    book(db, practice, patient)
    second = book(db, practice, patient, slot_date=date(2025, 3, 12))
    book(db, practice, patient, slot_date=date(2025, 3, 20))
    appointment_service.change_status(db, practice, second.id, 'confirmed')

    in_range = appointment_service.list_appointments(db, practice.id, date(2025, 3, 10), date(2025, 3, 14))
    confirmed = appointment_service.list_appointments(db, practice.id, status=AppointmentStatus.CONFIRMED)

    assert [appointment.date for appointment in in_range] == [date(2025, 3, 10), date(2025, 3, 12)]
    assert [appointment.id for appointment in confirmed] == [second.id]


def test_materialize_skips_blocked_days_and_existing_slots(db, practice, patient, dispatcher) -> None:
    rule = recurring_service.create_rule(
        db,
        practice,
        patient_id=patient.id,
        service='Physiotherapie',
        recurrence_type='weekly',
        days_of_week=[1, 6],
        start_time=time(8, 30),
        start_date=date(2025, 3, 10),
    )

    first_run = appointment_service.materialize_recurring_rule(
        db, practice, rule, date(2025, 3, 10), date(2025, 3, 23), dispatcher=dispatcher
    )
    second_run = appointment_service.materialize_recurring_rule(
        db, practice, rule, date(2025, 3, 10), date(2025, 3, 23), dispatcher=dispatcher
    )

    assert len(first_run.created) == 2
    assert [skipped['reason'] for skipped in first_run.skipped] == ['blocked_day', 'blocked_day']
    assert second_run.created == []
    assert sorted(skipped['reason'] for skipped in second_run.skipped) == [
        'blocked_day',
        'blocked_day',
        'duplicate',
        'duplicate',
    ]
    assert dispatcher.actions == ['created', 'created']
    appointments = db.query(Appointment).order_by(Appointment.date).all()
    assert [appointment.date for appointment in appointments] == [date(2025, 3, 10), date(2025, 3, 17)]
    assert {appointment.recurring_appointment_id for appointment in appointments} == {rule.id}


class FailingDispatcher:
    def dispatch(self, event) -> None:
        raise RuntimeError('automation endpoint misconfigured')


def test_clearing_notes_is_applied(db, practice, patient, dispatcher) -> None:
    appointment = book(db, practice, patient, notes='alt')

    updated = appointment_service.update_appointment(db, practice, appointment.id, {'notes': None}, dispatcher=dispatcher)

    assert updated.notes is None
    assert dispatcher.events[0].previous['notes'] == 'alt'
    assert dispatcher.events[0].appointment['notes'] is None


@pytest.mark.parametrize('field_name', ['date', 'time', 'service', 'duration_minutes', 'patient_id', 'status'])
def test_required_fields_cannot_be_cleared(db, practice, patient, dispatcher, field_name: str) -> None:
    appointment = book(db, practice, patient)

    with pytest.raises(InvalidAppointmentChange) as exception_info:
        appointment_service.update_appointment(db, practice, appointment.id, {field_name: None}, dispatcher=dispatcher)

    assert exception_info.value.status_code == 422
    assert dispatcher.events == []


def test_failing_dispatcher_does_not_fail_the_booking(db, practice, patient) -> None:
    appointment = book(db, practice, patient, FailingDispatcher())

    assert appointment.id is not None
    assert db.query(Appointment).count() == 1

    deleted = appointment_service.delete_appointment(db, practice, appointment.id, dispatcher=FailingDispatcher())

    assert deleted.action.value == 'cancelled'
    assert db.query(Appointment).count() == 0


def test_delete_uses_practice_scoped_patient(db, practice, make_practice, make_patient, dispatcher) -> None:
    other_practice = make_practice(owner_email='andere@example.de')
    foreign_patient = make_patient(other_practice.id, first_name='Fremd')
    appointment = Appointment(
        practice_id=practice.id,
        patient_id=foreign_patient.id,
        date=date(2025, 3, 10),
        time=time(9, 0),
        service='Erstberatung',
    )
    db.add(appointment)
    db.commit()

    with pytest.raises(PatientNotFound):
        appointment_service.delete_appointment(db, practice, appointment.id, dispatcher=dispatcher)

    assert db.query(Appointment).count() == 1
    assert dispatcher.events == []
