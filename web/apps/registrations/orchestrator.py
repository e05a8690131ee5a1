"""Reservation orchestrator: capacity- and stock-safe registration.

``RegistrationService.register`` walks a registration intent through
INTAKE -> ELIGIBLE -> CAPACITY_RESERVED -> ITEMS_RESERVED -> LEDGER_WRITTEN
and ends in TICKETED (nothing to pay) or PENDING_PAYMENT. Every reservation
is a guarded atomic primitive on the ``InventoryStore``; there is no lock
spanning primitives. Each successful reservation pushes its exact inverse
onto a ``CompensationStack``; any failure after that point unwinds the stack
in reverse before the original error propagates, so a partial reservation is
never left behind by a failed call.

The one exception is a process crash between reservation and ledger write:
there is no durable intent record, so those units stay stranded until an
external reconciliation sweep releases them.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

from . import eligibility, tickets
from .domain import (
    CommittedItem,
    EventCatalog,
    EventDefinition,
    InventoryStore,
    Notifier,
    PaymentState,
    Registration,
    RegistrationIntent,
    RegistrationLedger,
    ReservationState,
)
from .errors import (
    AlreadyRegistered,
    EventFull,
    EventNotFound,
    InvalidSelection,
    RegistrationError,
    RegistrationNotFound,
    RequiredItemNotSelected,
    StorageFailure,
    VariantSoldOut,
)

logger = logging.getLogger("registrations")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------- Compensation ---------------- #

@dataclass
class Compensation:
    """One undo step. Runs at most once, however often it is invoked."""

    label: str
    undo: Callable[[], None]
    done: bool = False

    def __call__(self) -> None:
        if self.done:
            return
        self.undo()
        self.done = True


@dataclass
class CompensationStack:
    """Undo list for the reservations made by a single invocation.

    ``unwind`` runs the pending compensations newest-first. A compensation
    that raises is logged with its traceback and kept in ``stranded``; the
    remaining ones still run.
    """

    pending: list[Compensation] = field(default_factory=list)
    stranded: list[Compensation] = field(default_factory=list)

    def push(self, label: str, undo: Callable[[], None]) -> None:
        self.pending.append(Compensation(label, undo))

    def unwind(self) -> None:
        while self.pending:
            step = self.pending.pop()
            try:
                step()
                logger.info("compensation executed", extra={"step": step.label})
            except Exception:
                self.stranded.append(step)
                logger.exception("compensation failed, reservation stranded", extra={"step": step.label})

    def discard(self) -> None:
        """Forget pending compensations once the reservations are committed."""
        self.pending.clear()

    def __len__(self) -> int:
        return len(self.pending)


# ---------------- Orchestrator ---------------- #

class RegistrationService:
    """Domain service that registers participants for events.

    It depends only on ports, performs no HTTP or ORM work itself, and
    raises ``RegistrationError`` subclasses for every caller-visible outcome.
    """

    def __init__(
        self,
        catalog: EventCatalog,
        inventory: InventoryStore,
        ledger: RegistrationLedger,
        notifier: Notifier,
        clock: Clock = utcnow,
        ticket_prefix: str = tickets.DEFAULT_PREFIX,
        max_code_attempts: int = 5,
    ):
        self.catalog = catalog
        self.inventory = inventory
        self.ledger = ledger
        self.notifier = notifier
        self.clock = clock
        self.ticket_prefix = ticket_prefix
        self.max_code_attempts = max_code_attempts

    def register(self, intent: RegistrationIntent) -> Registration:
        """Register ``intent.participant`` for ``intent.event_id``.

        Args:
            intent: Participant, form responses and merchandise selections.

        Returns:
            Registration: The persisted registration, ``not_required`` with a
            ticket artifact when nothing is due, ``pending`` otherwise.

        Raises:
            EventNotFound, AlreadyRegistered, IneligibleParticipant,
            RegistrationClosed, MissingRequiredField, InvalidSelection,
            RequiredItemUnavailable, EventFull, RequiredItemNotSelected,
            VariantSoldOut, StorageFailure.
        """
        state = ReservationState.INTAKE
        participant = intent.participant
        event = self.catalog.get_event(intent.event_id)
        if event is None:
            raise EventNotFound(field="event_id")

        if self.ledger.exists(event.id, participant.id):
            raise AlreadyRegistered()

        eligibility.validate_intake(
            event, participant, intent.form_responses, intent.selections, self.clock()
        )
        if event.is_merchandise:
            eligibility.check_required_items_available(event, self.inventory.snapshot(event.id))
        state = ReservationState.ELIGIBLE

        compensation = CompensationStack()
        try:
            if not self.inventory.try_reserve_capacity(event.id):
                raise EventFull()
            compensation.push(
                f"capacity:{event.id}", lambda: self.inventory.release_capacity(event.id)
            )
            state = ReservationState.CAPACITY_RESERVED

            committed = self._reserve_items(event, intent.selections, compensation)
            state = ReservationState.ITEMS_RESERVED

            amount_due = event.fee + sum((c.price for c in committed.values()), Decimal("0"))
            paid = amount_due > 0
            code = self._issue_ticket_code()
            registration = Registration(
                id=None,
                event_id=event.id,
                participant_id=participant.id,
                ticket_code=code,
                payment_state=PaymentState.PENDING if paid else PaymentState.NOT_REQUIRED,
                amount_due=amount_due,
                committed_items=committed,
                form_responses=dict(intent.form_responses),
                contact_email=participant.email,
                ticket_artifact="" if paid else tickets.render_ticket(code),
            )
            registration = self.ledger.create(registration)
            state = ReservationState.LEDGER_WRITTEN
        except Exception as exc:
            logger.warning(
                "registration failed",
                extra={
                    "event_id": event.id,
                    "participant_id": participant.id,
                    "reached": state.value,
                    "error": exc.code.value if isinstance(exc, RegistrationError) else type(exc).__name__,
                    "compensations": len(compensation),
                },
            )
            compensation.unwind()
            if isinstance(exc, RegistrationError):
                raise
            raise StorageFailure() from exc
        compensation.discard()

        state = ReservationState.PENDING_PAYMENT if paid else ReservationState.TICKETED
        logger.info(
            "registration created",
            extra={
                "event_id": event.id,
                "registration_id": registration.id,
                "state": state.value,
                "amount_due": str(registration.amount_due),
            },
        )
        self._notify(registration)
        return registration

    def my_registration(self, event_id: str, participant_id: str) -> Registration:
        registration = self.ledger.find(event_id, participant_id)
        if registration is None:
            raise RegistrationNotFound("Not registered")
        return registration

    def _reserve_items(
        self, event: EventDefinition, selections: dict, compensation: CompensationStack
    ) -> dict[str, CommittedItem]:
        committed: dict[str, CommittedItem] = {}
        if not event.is_merchandise:
            return committed
        for item in event.items:
            variant_id = selections.get(item.id)
            if not variant_id:
                if item.required:
                    raise RequiredItemNotSelected(
                        f"Required item not selected: {item.name}", field=item.name
                    )
                continue
            variant = item.variant(variant_id)
            if variant is None:
                raise InvalidSelection(f"Invalid option for {item.name}", field=item.name)
            if not self.inventory.try_reserve_variant_stock(event.id, variant.id):
                raise VariantSoldOut(f"Out of stock: {item.name} - {variant.label}", field=item.name)
            compensation.push(
                f"variant:{item.id}:{variant.id}",
                lambda vid=variant.id: self.inventory.release_variant_stock(event.id, vid),
            )
            committed[item.id] = CommittedItem(
                item_id=item.id,
                item_name=item.name,
                variant_id=variant.id,
                variant_label=variant.label,
                price=variant.price,
            )
        return committed

    def _issue_ticket_code(self) -> str:
        for _ in range(self.max_code_attempts):
            code = tickets.new_ticket_code(self.ticket_prefix)
            if not self.ledger.ticket_code_taken(code):
                return code
            logger.warning("ticket code collision, regenerating")
        raise StorageFailure("Could not allocate a unique ticket code")

    def _notify(self, registration: Registration) -> None:
        try:
            self.notifier.registration_completed(registration)
        except Exception:
            logger.exception(
                "registration notification failed", extra={"registration_id": registration.id}
            )
