from enum import Enum


class AppointmentStatus(str, Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class EventAction(str, Enum):
    CREATED = 'created'
    UPDATED = 'updated'
    CONFIRMED = 'confirmed'
    CANCELLED = 'cancelled'


# Display metadata for every status, shared by all clients.
STATUS_DISPLAY: dict[AppointmentStatus, dict[str, str]] = {
    AppointmentStatus.PENDING: {'label': 'Geplant', 'color': 'yellow'},
    AppointmentStatus.CONFIRMED: {'label': 'Bestätigt', 'color': 'blue'},
    AppointmentStatus.COMPLETED: {'label': 'Abgeschlossen', 'color': 'green'},
    AppointmentStatus.CANCELLED: {'label': 'Abgesagt', 'color': 'red'},
}


def status_label(status: AppointmentStatus | str) -> str:
    return STATUS_DISPLAY[AppointmentStatus(status)]['label']


def status_color(status: AppointmentStatus | str) -> str:
    return STATUS_DISPLAY[AppointmentStatus(status)]['color']


def classify_event(
    old_status: AppointmentStatus | str | None,
    new_status: AppointmentStatus | str,
) -> EventAction:
    """Pick the webhook action for a mutation that moves ``old_status`` to ``new_status``.

    Creation (no prior status) is always ``created``. A change into confirmed or
    cancelled reports that status; everything else, including edits that keep
    the status, is ``updated``.
    """
    if old_status is None:
        return EventAction.CREATED

    old_status = AppointmentStatus(old_status)
    new_status = AppointmentStatus(new_status)

    if new_status != old_status:
        if new_status == AppointmentStatus.CONFIRMED:
            return EventAction.CONFIRMED
        if new_status == AppointmentStatus.CANCELLED:
            return EventAction.CANCELLED

    return EventAction.UPDATED
