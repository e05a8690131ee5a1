"""Ticket scanning and manual attendance override."""

import logging
from datetime import datetime

from .domain import EventCatalog, EventDefinition, PaymentState, Registration, RegistrationLedger
from .errors import (
    AlreadyCheckedIn,
    EventNotFound,
    EventNotOngoing,
    InvalidTicket,
    PaymentNotApproved,
    RegistrationNotFound,
)
from .orchestrator import Clock, utcnow

logger = logging.getLogger("registrations")

UNPAID = (PaymentState.PENDING, PaymentState.REJECTED)


class AttendanceService:
    def __init__(self, catalog: EventCatalog, ledger: RegistrationLedger, clock: Clock = utcnow):
        self.catalog = catalog
        self.ledger = ledger
        self.clock = clock

    def check_in(self, event_id: str, ticket_code: str) -> Registration:
        """Mark the holder of ``ticket_code`` as attended.

        The flag is flipped with a conditional update, so two concurrent
        scans of the same ticket produce one success and one
        ``AlreadyCheckedIn``.
        """
        now = self._ongoing(event_id)
        registration = self.ledger.get_by_ticket(event_id, ticket_code)
        if registration is None:
            raise InvalidTicket(field="ticket_code")
        if registration.payment_state in UNPAID:
            raise PaymentNotApproved()
        if registration.attended or not self.ledger.mark_attended(registration.id, now):
            raise AlreadyCheckedIn()

        registration.attended = True
        registration.attended_at = now
        logger.info("checked in", extra={"registration_id": registration.id})
        return registration

    def set_attendance(self, registration_id: str, attended: bool) -> Registration:
        """Organizer override: set attendance to an explicit value."""
        registration = self.ledger.get(registration_id)
        if registration is None:
            raise RegistrationNotFound()
        now = self._ongoing(registration.event_id)
        if registration.payment_state in UNPAID:
            raise PaymentNotApproved()
        if registration.attended == attended:
            return registration

        registration.attended = attended
        registration.attended_at = now if attended else None
        if not self.ledger.write_attendance(registration.id, attended, registration.attended_at):
            raise RegistrationNotFound()
        logger.info(
            "attendance overridden",
            extra={"registration_id": registration.id, "attended": attended},
        )
        return registration

    def _ongoing(self, event_id: str) -> datetime:
        event = self.catalog.get_event(event_id)
        if event is None:
            raise EventNotFound(field="event_id")
        now = self.clock()
        if not is_ongoing(event, now):
            raise EventNotOngoing()
        return now


def is_ongoing(event: EventDefinition, now: datetime) -> bool:
    """Events without a start/end window are treated as always ongoing."""
    if event.starts_at and now < event.starts_at:
        return False
    if event.ends_at and now > event.ends_at:
        return False
    return True
