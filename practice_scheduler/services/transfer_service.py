"""Human hand-off for AI-handled calls, gated by the practice's opening hours."""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from practice_scheduler.models.call_records import TransferRequest
from practice_scheduler.scheduling.business_hours import check_practice_hours
from practice_scheduler.scheduling.errors import LookupFailed

logger = logging.getLogger(__name__)

CLOSED_MESSAGE = (
    'Our staff are currently outside office hours. Please use the AI booking or leave a message '
    'and we will get back to you as soon as possible.'
)
TRANSFER_MESSAGE = 'I am transferring your call to a member of our team. Please stay on the line.'
ESTIMATED_WAIT = {
    'urgent': '2-3 minutes',
    'normal': '5-10 minutes',
}


@dataclass
class TransferOutcome:
    transferred: bool
    outside_business_hours: bool
    message: str
    transfer_request_id: int
    estimated_wait: str | None = None


def request_transfer(
    db: Session,
    practice_id: int,
    at: datetime,
    reason: str | None = None,
    priority: str = 'normal',
    call_id: str | None = None,
) -> TransferOutcome:
    """Decide whether a call may reach staff and record the request either way.

    A failed hours lookup counts as closed: the request is still recorded but
    the caller is not handed to a human.
    """
    priority = 'urgent' if priority == 'urgent' else 'normal'

    try:
        is_open = check_practice_hours(db, practice_id, at)
    except LookupFailed:
        logger.warning('Business hours lookup failed for practice %s; treating as closed', practice_id)
        is_open = False

    transfer_request = TransferRequest(
        practice_id=practice_id,
        call_id=call_id,
        reason=reason,
        priority=priority,
        status=priority if is_open else 'queued',
        outside_business_hours=not is_open,
        notes=f'Transfer requested. Reason: {reason}. Priority: {priority}. Call ID: {call_id}',
    )

    try:
        db.add(transfer_request)
        db.commit()
        db.refresh(transfer_request)
    except SQLAlchemyError as exc:
        db.rollback()
        raise LookupFailed('Recording the transfer request failed.') from exc

    if not is_open:
        logger.info('Transfer for call %s queued (practice %s closed)', call_id, practice_id)
        return TransferOutcome(
            transferred=False,
            outside_business_hours=True,
            message=CLOSED_MESSAGE,
            transfer_request_id=transfer_request.id,
        )

    logger.info('Transfer for call %s approved (request %s)', call_id, transfer_request.id)
    return TransferOutcome(
        transferred=True,
        outside_business_hours=False,
        message=TRANSFER_MESSAGE,
        transfer_request_id=transfer_request.id,
        estimated_wait=ESTIMATED_WAIT[priority],
    )
