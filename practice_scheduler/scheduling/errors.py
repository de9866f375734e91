"""Scheduling error taxonomy.

Every error carries the message shown to the caller and the HTTP status the
API layer answers with. ``retryable`` marks errors that may succeed on a
plain retry; conflicts and policy rejections need different input.
"""


class SchedulingError(Exception):
    status_code = 400
    retryable = False
    default_detail = 'The scheduling request could not be completed.'

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class DuplicateBooking(SchedulingError):
    status_code = 409
    default_detail = 'This patient already has an appointment at this time.'

    def __init__(self, detail: str | None = None, conflicting_id: int | None = None):
        super().__init__(detail)
        self.conflicting_id = conflicting_id


class InvalidRecurrenceRule(SchedulingError):
    status_code = 422
    default_detail = 'The recurrence rule is invalid.'


class LookupFailed(SchedulingError):
    status_code = 503
    retryable = True
    default_detail = 'Lookup failed. Please try again.'


class InvalidTransition(SchedulingError):
    status_code = 409
    default_detail = 'This status change is not allowed.'


class WeekendBlocked(SchedulingError):
    status_code = 400
    default_detail = 'Appointments cannot be booked on weekends.'


class NotFound(SchedulingError):
    status_code = 404
    default_detail = 'Not found.'


class PracticeNotFound(NotFound):
    default_detail = 'Practice not found.'


class PatientNotFound(NotFound):
    default_detail = 'Patient not found.'


class AppointmentNotFound(NotFound):
    default_detail = 'Appointment not found.'


class RecurringRuleNotFound(NotFound):
    default_detail = 'Recurring appointment not found.'


class InvalidAppointmentChange(SchedulingError):
    status_code = 422
    default_detail = 'This appointment field cannot be cleared.'
