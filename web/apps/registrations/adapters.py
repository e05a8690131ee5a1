"""In-process adapters for the registration ports.

These implement ``InventoryStore``, ``RegistrationLedger``, ``EventCatalog``
and ``Notifier`` without a database or network. They are intended for unit
tests and local development. The inventory stub keeps the storage contract:
each primitive is atomic on its own (a lock held for that one call only), so
concurrent callers interleave between primitives exactly as they would
against the database.
"""

import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Optional

from .domain import (
    EventCapacity,
    EventCatalog,
    EventDefinition,
    InventoryStore,
    Notifier,
    Registration,
    RegistrationLedger,
    Variant,
)
from .errors import AlreadyRegistered, StorageFailure

logger = logging.getLogger("registrations")


class InMemoryInventoryStore(InventoryStore):
    """Counters held in dictionaries, one lock per primitive call."""

    def __init__(self):
        self._lock = threading.Lock()
        self._limits: dict[str, int] = {}
        self._used: dict[str, int] = {}
        self._stock: dict[tuple[str, str], int] = {}
        self._variants: dict[str, list[Variant]] = {}

    def load(self, event: EventDefinition, capacity_used: int = 0) -> None:
        """Seed counters from an event definition (variant ``stock`` as given)."""
        with self._lock:
            self._limits[event.id] = event.capacity_limit
            self._used[event.id] = capacity_used
            self._variants[event.id] = []
            for item in event.items:
                for v in item.variants:
                    self._stock[(event.id, v.id)] = v.stock
                    self._variants[event.id].append(v)

    def try_reserve_capacity(self, event_id: str) -> bool:
        with self._lock:
            if event_id not in self._limits:
                raise StorageFailure("Unknown event")
            if self._used[event_id] >= self._limits[event_id]:
                return False
            self._used[event_id] += 1
            return True

    def release_capacity(self, event_id: str) -> None:
        with self._lock:
            if self._used.get(event_id, 0) <= 0:
                logger.error("capacity release underflow", extra={"event_id": event_id})
                return
            self._used[event_id] -= 1

    def try_reserve_variant_stock(self, event_id: str, variant_id: str) -> bool:
        with self._lock:
            key = (event_id, variant_id)
            if self._stock.get(key, 0) <= 0:
                return False
            self._stock[key] -= 1
            return True

    def release_variant_stock(self, event_id: str, variant_id: str) -> None:
        with self._lock:
            key = (event_id, variant_id)
            if key not in self._stock:
                raise StorageFailure("Unknown variant")
            self._stock[key] += 1

    def snapshot(self, event_id: str) -> Optional[EventCapacity]:
        with self._lock:
            if event_id not in self._limits:
                return None
            return EventCapacity(
                event_id=event_id,
                capacity_limit=self._limits[event_id],
                capacity_used=self._used[event_id],
                variants=tuple(
                    replace(v, stock=self._stock[(event_id, v.id)])
                    for v in self._variants[event_id]
                ),
            )


class InMemoryRegistrationLedger(RegistrationLedger):
    """Registrations in a dict with a unique ``(event_id, participant_id)`` index."""

    def __init__(self):
        self._lock = threading.Lock()
        self._rows: dict[str, Registration] = {}
        self._by_participant: dict[tuple[str, str], str] = {}
        self._codes: set[str] = set()

    def exists(self, event_id: str, participant_id: str) -> bool:
        with self._lock:
            return (event_id, participant_id) in self._by_participant

    def ticket_code_taken(self, ticket_code: str) -> bool:
        with self._lock:
            return ticket_code in self._codes

    def create(self, registration: Registration) -> Registration:
        key = (registration.event_id, registration.participant_id)
        with self._lock:
            if key in self._by_participant:
                raise AlreadyRegistered()
            if registration.ticket_code in self._codes:
                raise StorageFailure("Duplicate ticket code")
            stored = replace(registration, id=str(uuid.uuid4()), registered_at=datetime.now())
            self._rows[stored.id] = stored
            self._by_participant[key] = stored.id
            self._codes.add(stored.ticket_code)
            return replace(stored)

    def transition_payment(self, registration_id, expected, target, *, expected_held=None, **fields) -> bool:
        with self._lock:
            row = self._rows.get(registration_id)
            if row is None or row.payment_state != expected:
                return False
            if expected_held is not None and row.inventory_held != expected_held:
                return False
            self._rows[registration_id] = replace(row, payment_state=target, **fields)
            return True

    def write_attendance(self, registration_id, attended, at) -> bool:
        with self._lock:
            row = self._rows.get(registration_id)
            if row is None:
                return False
            self._rows[registration_id] = replace(row, attended=attended, attended_at=at)
            return True

    def get(self, registration_id: str) -> Optional[Registration]:
        with self._lock:
            row = self._rows.get(registration_id)
            return replace(row) if row else None

    def find(self, event_id: str, participant_id: str) -> Optional[Registration]:
        with self._lock:
            rid = self._by_participant.get((event_id, participant_id))
            return replace(self._rows[rid]) if rid else None

    def get_by_ticket(self, event_id: str, ticket_code: str) -> Optional[Registration]:
        with self._lock:
            for row in self._rows.values():
                if row.event_id == event_id and row.ticket_code == ticket_code:
                    return replace(row)
            return None

    def mark_attended(self, registration_id: str, at: datetime) -> bool:
        with self._lock:
            row = self._rows.get(registration_id)
            if row is None or row.attended:
                return False
            self._rows[registration_id] = replace(row, attended=True, attended_at=at)
            return True

    def all(self) -> list[Registration]:
        with self._lock:
            return [replace(r) for r in self._rows.values()]


class InMemoryEventCatalog(EventCatalog):
    def __init__(self, *events: EventDefinition):
        self._events = {e.id: e for e in events}

    def add(self, event: EventDefinition) -> None:
        self._events[event.id] = event

    def get_event(self, event_id: str) -> Optional[EventDefinition]:
        return self._events.get(event_id)


class LoggingNotifier(Notifier):
    """Notifier that logs and remembers what it would have sent."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    def registration_completed(self, registration: Registration) -> None:
        self.sent.append(("registration_completed", registration.id))
        logger.info("notify registration_completed", extra={"registration_id": registration.id})

    def payment_approved(self, registration: Registration) -> None:
        self.sent.append(("payment_approved", registration.id))
        logger.info("notify payment_approved", extra={"registration_id": registration.id})
