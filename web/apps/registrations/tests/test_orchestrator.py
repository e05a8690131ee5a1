"""Unit tests for ``RegistrationService.register`` against the in-memory adapters.

They cover the outcome of each step of the reservation flow and, above all,
that a failed call gives back every unit it took.
"""

from decimal import Decimal

import pytest

from apps.registrations.domain import Participant, PaymentState, RegistrationIntent
from apps.registrations.errors import (
    AlreadyRegistered,
    EventFull,
    EventNotFound,
    InvalidSelection,
    RequiredItemNotSelected,
    RequiredItemUnavailable,
    StorageFailure,
    VariantSoldOut,
)
from apps.registrations import orchestrator
from apps.registrations.orchestrator import CompensationStack


def intent(event_id, pid="p-1", selections=None, responses=None, category=""):
    return RegistrationIntent(
        event_id=event_id,
        participant=Participant(id=pid, category=category, email=f"{pid}@example.org"),
        form_responses=responses or {},
        selections=selections or {},
    )


def test_free_event_is_ticketed_immediately(stack, make_free_event):
    event = stack.add(make_free_event())
    reg = stack.registrations.register(intent(event.id))

    assert reg.payment_state == PaymentState.NOT_REQUIRED
    assert reg.ticket_code.startswith("EVT-")
    assert reg.ticket_artifact.startswith("data:image/png;base64,")
    assert stack.inventory.snapshot(event.id).capacity_used == 1
    assert stack.notifier.sent == [("registration_completed", reg.id)]


def test_paid_event_is_pending_without_ticket(stack, make_free_event):
    event = stack.add(make_free_event(fee=Decimal("12.50")))
    reg = stack.registrations.register(intent(event.id))

    assert reg.payment_state == PaymentState.PENDING
    assert reg.amount_due == Decimal("12.50")
    assert reg.ticket_artifact == ""
    assert reg.is_ticketed is False


def test_merch_amount_is_fee_plus_selected_variants(stack, make_merch_event):
    event = stack.add(make_merch_event(fee=Decimal("10.00")))
    reg = stack.registrations.register(intent(event.id, selections={"shirt": "shirt-m", "cap": "cap-one"}))

    assert reg.amount_due == Decimal("35.00")
    assert set(reg.committed_items) == {"shirt", "cap"}
    assert reg.committed_items["shirt"].variant_label == "M"
    snap = stack.inventory.snapshot(event.id)
    assert snap.stock_of("shirt-m") == 1
    assert snap.stock_of("cap-one") == 4


def test_unknown_event(stack):
    with pytest.raises(EventNotFound):
        stack.registrations.register(intent("nope"))


def test_second_registration_is_rejected_without_touching_counters(stack, make_free_event):
    event = stack.add(make_free_event())
    stack.registrations.register(intent(event.id))
    with pytest.raises(AlreadyRegistered):
        stack.registrations.register(intent(event.id))
    assert stack.inventory.snapshot(event.id).capacity_used == 1


def test_full_event(stack, make_free_event):
    event = stack.add(make_free_event(capacity=1), capacity_used=1)
    with pytest.raises(EventFull):
        stack.registrations.register(intent(event.id))
    assert stack.inventory.snapshot(event.id).capacity_used == 1
    assert stack.ledger.all() == []


def test_sold_out_variant_releases_capacity_and_earlier_items(stack, make_merch_event):
    # shirt S has stock, the cap does not: shirt and capacity must come back
    event = stack.add(make_merch_event(cap_stock=0))
    with pytest.raises(VariantSoldOut) as e:
        stack.registrations.register(intent(event.id, selections={"shirt": "shirt-s", "cap": "cap-one"}))

    assert e.value.field == "Cap"
    snap = stack.inventory.snapshot(event.id)
    assert snap.capacity_used == 0
    assert snap.stock_of("shirt-s") == 2
    assert snap.stock_of("cap-one") == 0


def test_missing_required_item_releases_capacity(stack, make_merch_event):
    event = stack.add(make_merch_event())
    with pytest.raises(RequiredItemNotSelected):
        stack.registrations.register(intent(event.id, selections={"cap": "cap-one"}))
    assert stack.inventory.snapshot(event.id).capacity_used == 0


def test_unknown_variant_is_invalid_selection(stack, make_merch_event):
    event = stack.add(make_merch_event())
    with pytest.raises(InvalidSelection):
        stack.registrations.register(intent(event.id, selections={"shirt": "shirt-xxl"}))
    snap = stack.inventory.snapshot(event.id)
    assert snap.capacity_used == 0
    assert snap.stock_of("shirt-s") == 2


def test_required_item_completely_sold_out_fails_before_reserving(stack, make_merch_event):
    event = stack.add(make_merch_event(shirt_stock=(0, 0)))
    with pytest.raises(RequiredItemUnavailable):
        stack.registrations.register(intent(event.id, selections={"shirt": "shirt-s"}))
    assert stack.inventory.snapshot(event.id).capacity_used == 0


def test_ledger_failure_unwinds_every_reservation(stack, make_merch_event, monkeypatch):
    event = stack.add(make_merch_event())

    def boom(registration):
        raise RuntimeError("disk full")

    monkeypatch.setattr(stack.ledger, "create", boom)
    with pytest.raises(StorageFailure):
        stack.registrations.register(intent(event.id, selections={"shirt": "shirt-s", "cap": "cap-one"}))

    snap = stack.inventory.snapshot(event.id)
    assert snap.capacity_used == 0
    assert snap.stock_of("shirt-s") == 2
    assert snap.stock_of("cap-one") == 5


def test_failure_log_names_the_error(stack, make_merch_event, monkeypatch):
    event = stack.add(make_merch_event())
    logged = []
    monkeypatch.setattr(orchestrator.logger, "warning", lambda msg, *a, **kw: logged.append((msg, kw.get("extra"))))

    with pytest.raises(InvalidSelection):
        stack.registrations.register(intent(event.id, pid="p-1", selections={"shirt": "shirt-xxl"}))

    def boom(registration):
        raise RuntimeError("disk full")

    monkeypatch.setattr(stack.ledger, "create", boom)
    with pytest.raises(StorageFailure):
        stack.registrations.register(intent(event.id, pid="p-2", selections={"shirt": "shirt-s"}))

    failures = [extra["error"] for msg, extra in logged if msg == "registration failed"]
    assert failures == ["INVALID_SELECTION", "RuntimeError"]


def test_notifier_failure_does_not_undo_registration(stack, make_free_event, monkeypatch):
    event = stack.add(make_free_event())

    def boom(registration):
        raise RuntimeError("smtp down")

    monkeypatch.setattr(stack.notifier, "registration_completed", boom)
    reg = stack.registrations.register(intent(event.id))
    assert reg.id is not None
    assert stack.inventory.snapshot(event.id).capacity_used == 1


def test_ticket_code_collision_is_retried(stack, make_free_event, monkeypatch):
    event = stack.add(make_free_event())
    codes = iter(["EVT-TAKEN", "EVT-FRESH"])
    monkeypatch.setattr("apps.registrations.tickets.new_ticket_code", lambda prefix: next(codes))
    monkeypatch.setattr(stack.ledger, "ticket_code_taken", lambda code: code == "EVT-TAKEN")

    reg = stack.registrations.register(intent(event.id))
    assert reg.ticket_code == "EVT-FRESH"


def test_ticket_code_exhaustion_releases_capacity(stack, make_free_event, monkeypatch):
    event = stack.add(make_free_event())
    monkeypatch.setattr(stack.ledger, "ticket_code_taken", lambda code: True)

    with pytest.raises(StorageFailure):
        stack.registrations.register(intent(event.id))
    assert stack.inventory.snapshot(event.id).capacity_used == 0


def test_my_registration(stack, make_free_event):
    event = stack.add(make_free_event())
    reg = stack.registrations.register(intent(event.id))
    assert stack.registrations.my_registration(event.id, "p-1").id == reg.id


# ---------------- CompensationStack ---------------- #

def test_compensations_run_newest_first_and_only_once():
    calls = []
    comp = CompensationStack()
    comp.push("a", lambda: calls.append("a"))
    comp.push("b", lambda: calls.append("b"))
    comp.unwind()
    comp.unwind()
    assert calls == ["b", "a"]
    assert len(comp) == 0


def test_failing_compensation_is_stranded_and_others_still_run():
    calls = []

    def broken():
        raise RuntimeError("store down")

    comp = CompensationStack()
    comp.push("a", lambda: calls.append("a"))
    comp.push("broken", broken)
    comp.push("c", lambda: calls.append("c"))
    comp.unwind()

    assert calls == ["c", "a"]
    assert [s.label for s in comp.stranded] == ["broken"]


def test_discard_keeps_reservations():
    calls = []
    comp = CompensationStack()
    comp.push("a", lambda: calls.append("a"))
    comp.discard()
    comp.unwind()
    assert calls == []
