"""Domain models and ports for event registration.

This module contains the dataclasses that describe events, inventory
snapshots and registrations, plus the protocol definitions (ports) the
services depend on: the inventory store, the registration ledger, the event
catalog and the notifier. Nothing here touches Django or the network; the
concrete adapters live in ``inventory``, ``repository``, ``adapters`` and
``http_adapters``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Protocol


# ---- Enums ----
class PaymentState(str, Enum):
    """Payment state of a registration."""

    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Decision(str, Enum):
    """Organizer decision on a submitted payment."""

    APPROVE = "approve"
    REJECT = "reject"


class EventKind(str, Enum):
    NORMAL = "normal"
    MERCHANDISE = "merchandise"


class ReservationState(str, Enum):
    """Steps of a single ``register`` invocation.

    ``FAILED`` is reachable from every step and is always accompanied by the
    release of whatever was reserved so far.
    """

    INTAKE = "INTAKE"
    ELIGIBLE = "ELIGIBLE"
    CAPACITY_RESERVED = "CAPACITY_RESERVED"
    ITEMS_RESERVED = "ITEMS_RESERVED"
    LEDGER_WRITTEN = "LEDGER_WRITTEN"
    TICKETED = "TICKETED"
    PENDING_PAYMENT = "PENDING_PAYMENT"
    FAILED = "FAILED"


ELIGIBLE_TO_ALL = "all"


# ---- Event definition (supplied by the event-management collaborator) ----
@dataclass(frozen=True)
class FormField:
    """A custom registration form field, addressed by ``id`` (labels may repeat)."""

    id: str
    label: str
    required: bool = False
    field_type: str = "text"


@dataclass(frozen=True)
class Variant:
    """A purchasable option of a merchandise item.

    ``stock`` is whatever the reader saw; it is informational only and never
    used to decide a reservation.
    """

    id: str
    label: str
    price: Decimal = Decimal("0")
    stock: int = 0


@dataclass(frozen=True)
class MerchItem:
    id: str
    name: str
    required: bool = False
    variants: tuple[Variant, ...] = ()

    def variant(self, variant_id: str) -> Optional[Variant]:
        for v in self.variants:
            if v.id == variant_id:
                return v
        return None


@dataclass(frozen=True)
class EventDefinition:
    """Immutable-for-this-call view of an event.

    Attributes:
        id: Event identifier.
        name: Display name, used in notifications and messages.
        kind: Normal or merchandise event.
        fee: Base registration fee (>= 0).
        capacity_limit: Maximum number of registrations (>= 1).
        eligibility: ``"all"`` or the participant category allowed in.
        registration_open: Organizer-controlled open/closed flag.
        registration_deadline: Optional cut-off for new registrations.
        starts_at: Optional event start, used for attendance.
        ends_at: Optional event end; registration closes after it.
        form_fields: Custom form fields, in display order.
        items: Merchandise items, in definition order.
    """

    id: str
    name: str
    kind: EventKind = EventKind.NORMAL
    fee: Decimal = Decimal("0")
    capacity_limit: int = 1
    eligibility: str = ELIGIBLE_TO_ALL
    registration_open: bool = True
    registration_deadline: Optional[datetime] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    form_fields: tuple[FormField, ...] = ()
    items: tuple[MerchItem, ...] = ()

    @property
    def is_merchandise(self) -> bool:
        return self.kind == EventKind.MERCHANDISE

    def item(self, item_id: str) -> Optional[MerchItem]:
        for it in self.items:
            if it.id == item_id:
                return it
        return None


@dataclass(frozen=True)
class EventCapacity:
    """Read-only snapshot of an event's counters, for display and pre-checks."""

    event_id: str
    capacity_limit: int
    capacity_used: int
    variants: tuple[Variant, ...] = ()

    @property
    def remaining(self) -> int:
        return max(0, self.capacity_limit - self.capacity_used)

    def stock_of(self, variant_id: str) -> int:
        for v in self.variants:
            if v.id == variant_id:
                return v.stock
        return 0


# ---- Participants and registrations ----
@dataclass(frozen=True)
class Participant:
    """Authenticated participant identity, trusted as supplied."""

    id: str
    category: str = ""
    email: str = ""
    name: str = ""


@dataclass(frozen=True)
class CommittedItem:
    """One inventory unit a registration holds a claim to."""

    item_id: str
    item_name: str
    variant_id: str
    variant_label: str
    price: Decimal


@dataclass(frozen=True)
class RegistrationIntent:
    """What a participant asked for.

    Attributes:
        event_id: Target event.
        participant: Authenticated participant.
        form_responses: Custom form answers keyed by form field id.
        selections: Merchandise choices, item id -> variant id.
    """

    event_id: str
    participant: Participant
    form_responses: dict = field(default_factory=dict)
    selections: dict = field(default_factory=dict)


@dataclass
class Registration:
    """One participant's registration for one event."""

    id: Optional[str]
    event_id: str
    participant_id: str
    ticket_code: str
    payment_state: PaymentState
    amount_due: Decimal = Decimal("0")
    committed_items: dict[str, CommittedItem] = field(default_factory=dict)
    form_responses: dict = field(default_factory=dict)
    contact_email: str = ""
    ticket_artifact: str = ""
    payment_proof: str = ""
    payment_comment: str = ""
    inventory_held: bool = True
    attended: bool = False
    attended_at: Optional[datetime] = None
    registered_at: Optional[datetime] = None

    @property
    def is_ticketed(self) -> bool:
        return bool(self.ticket_artifact)


# ---- Ports (DIP) ----
class InventoryStore(Protocol):
    """Port over the capacity and stock counters.

    Every ``try_*`` call is a single guarded atomic update against the
    backing store. Callers never read a counter to decide whether to write.
    """

    def try_reserve_capacity(self, event_id: str) -> bool:
        """Take one capacity slot if ``capacity_used < capacity_limit``."""
        raise NotImplementedError()

    def release_capacity(self, event_id: str) -> None:
        """Give back one capacity slot (floor at zero)."""
        raise NotImplementedError()

    def try_reserve_variant_stock(self, event_id: str, variant_id: str) -> bool:
        """Take one unit of a variant if ``stock > 0``."""
        raise NotImplementedError()

    def release_variant_stock(self, event_id: str, variant_id: str) -> None:
        """Give back one unit of a variant."""
        raise NotImplementedError()

    def snapshot(self, event_id: str) -> Optional[EventCapacity]:
        """Read the current counters. Display and advisory checks only."""
        raise NotImplementedError()


class RegistrationLedger(Protocol):
    """Port over the durable, uniqueness-constrained registration records."""

    def exists(self, event_id: str, participant_id: str) -> bool:
        raise NotImplementedError()

    def ticket_code_taken(self, ticket_code: str) -> bool:
        raise NotImplementedError()

    def create(self, registration: Registration) -> Registration:
        """Persist a new registration and return it with its id set.

        Raises:
            AlreadyRegistered: On a uniqueness violation for
                ``(event_id, participant_id)``.
            StorageFailure: On any other storage error.
        """
        raise NotImplementedError()

    def transition_payment(
        self,
        registration_id: str,
        expected: PaymentState,
        target: PaymentState,
        *,
        expected_held: Optional[bool] = None,
        **fields,
    ) -> bool:
        """Move ``payment_state`` from ``expected`` to ``target`` in one guarded write.

        The row is only written while it is still in ``expected`` (and, when
        ``expected_held`` is given, still has that ``inventory_held`` value).
        ``fields`` are written together with the state: any of
        ``payment_comment``, ``payment_proof``, ``ticket_artifact``,
        ``inventory_held``. Returns whether the row was updated.
        """
        raise NotImplementedError()

    def write_attendance(self, registration_id: str, attended: bool, at: Optional[datetime]) -> bool:
        """Set the attendance columns only; return False for an unknown id."""
        raise NotImplementedError()

    def get(self, registration_id: str) -> Optional[Registration]:
        raise NotImplementedError()

    def find(self, event_id: str, participant_id: str) -> Optional[Registration]:
        raise NotImplementedError()

    def get_by_ticket(self, event_id: str, ticket_code: str) -> Optional[Registration]:
        raise NotImplementedError()

    def mark_attended(self, registration_id: str, at: datetime) -> bool:
        """Set ``attended`` only if it is currently false; return whether it did."""
        raise NotImplementedError()


class EventCatalog(Protocol):
    """Port onto the event-management collaborator."""

    def get_event(self, event_id: str) -> Optional[EventDefinition]:
        raise NotImplementedError()


class Notifier(Protocol):
    """Port onto the notification collaborator. Delivery is best-effort."""

    def registration_completed(self, registration: Registration) -> None:
        raise NotImplementedError()

    def payment_approved(self, registration: Registration) -> None:
        raise NotImplementedError()
