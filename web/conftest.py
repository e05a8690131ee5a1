from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.cache import cache
from django.utils import timezone

from apps.registrations.adapters import (
    InMemoryEventCatalog,
    InMemoryInventoryStore,
    InMemoryRegistrationLedger,
    LoggingNotifier,
)
from apps.registrations.attendance import AttendanceService
from apps.registrations.domain import EventDefinition, EventKind, FormField, MerchItem, Variant
from apps.registrations.orchestrator import RegistrationService
from apps.registrations.payments import PaymentService


@pytest.fixture(autouse=True)
def use_local_stores_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    cache.clear()  # throttle counters


# ---------------- In-memory wiring ---------------- #

@dataclass
class Stack:
    catalog: InMemoryEventCatalog
    inventory: InMemoryInventoryStore
    ledger: InMemoryRegistrationLedger
    notifier: LoggingNotifier
    registrations: RegistrationService
    payments: PaymentService
    attendance: AttendanceService

    def add(self, event: EventDefinition, capacity_used: int = 0) -> EventDefinition:
        self.catalog.add(event)
        self.inventory.load(event, capacity_used=capacity_used)
        return event


@pytest.fixture
def stack():
    """Services wired to the in-memory adapters."""
    catalog = InMemoryEventCatalog()
    inventory = InMemoryInventoryStore()
    ledger = InMemoryRegistrationLedger()
    notifier = LoggingNotifier()
    return Stack(
        catalog=catalog,
        inventory=inventory,
        ledger=ledger,
        notifier=notifier,
        registrations=RegistrationService(catalog, inventory, ledger, notifier),
        payments=PaymentService(ledger, inventory, notifier),
        attendance=AttendanceService(catalog, ledger),
    )


def free_event(event_id="ev-free", capacity=10, **kw) -> EventDefinition:
    return EventDefinition(id=event_id, name="Open Day", capacity_limit=capacity, **kw)


def merch_event(event_id="ev-merch", capacity=10, fee=Decimal("0"), shirt_stock=(2, 2), cap_stock=5):
    """Merchandise event: required T-shirt (S/M) and optional cap."""
    shirt = MerchItem(
        id="shirt",
        name="T-Shirt",
        required=True,
        variants=(
            Variant(id="shirt-s", label="S", price=Decimal("20.00"), stock=shirt_stock[0]),
            Variant(id="shirt-m", label="M", price=Decimal("20.00"), stock=shirt_stock[1]),
        ),
    )
    cap = MerchItem(
        id="cap",
        name="Cap",
        required=False,
        variants=(Variant(id="cap-one", label="One size", price=Decimal("5.00"), stock=cap_stock),),
    )
    return EventDefinition(
        id=event_id,
        name="Merch Fest",
        kind=EventKind.MERCHANDISE,
        fee=fee,
        capacity_limit=capacity,
        form_fields=(FormField(id="size_note", label="Notes"),),
        items=(shirt, cap),
    )


@pytest.fixture
def make_free_event():
    return free_event


@pytest.fixture
def make_merch_event():
    return merch_event


# ---------------- Django fixtures ---------------- #

@pytest.fixture
def db_event(db):
    """Create an event row (plus optional merchandise) and return it."""
    from apps.registrations.models import EventModel, MerchItemModel, VariantModel

    def _make(capacity=10, fee=Decimal("0"), kind="normal", items=(), **kw):
        kw.setdefault("registration_open", True)
        event = EventModel.objects.create(
            name=kw.pop("name", "Campus Run"),
            kind=kind,
            capacity_limit=capacity,
            registration_fee=fee,
            **kw,
        )
        for pos, (name, required, variants) in enumerate(items):
            item = MerchItemModel.objects.create(event=event, name=name, required=required, position=pos)
            for vpos, (label, price, stock) in enumerate(variants):
                VariantModel.objects.create(
                    event=event, item=item, label=label, price=Decimal(price), stock=stock, position=vpos
                )
        return event

    return _make


def participant(pid="p-1", category="", email=None):
    headers = {"HTTP_X_PRINCIPAL_ID": pid, "HTTP_X_PRINCIPAL_ROLE": "participant"}
    if category:
        headers["HTTP_X_PRINCIPAL_CATEGORY"] = category
    headers["HTTP_X_PRINCIPAL_EMAIL"] = email or f"{pid}@example.org"
    return headers


def organizer(pid="org-1"):
    return {"HTTP_X_PRINCIPAL_ID": pid, "HTTP_X_PRINCIPAL_ROLE": "organizer"}


@pytest.fixture
def as_participant():
    return participant


@pytest.fixture
def as_organizer():
    return organizer


@pytest.fixture
def ongoing_window():
    now = timezone.now()
    return {"starts_at": now - timedelta(hours=1), "ends_at": now + timedelta(hours=2)}
