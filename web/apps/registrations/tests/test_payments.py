"""Payment disposition: approve issues the ticket, reject returns the inventory."""

from decimal import Decimal

import pytest

from apps.registrations.domain import Decision, Participant, PaymentState, RegistrationIntent
from apps.registrations.errors import (
    AlreadyApproved,
    AlreadyRejected,
    InvalidPaymentState,
    RegistrationNotFound,
)


@pytest.fixture
def pending(stack, make_merch_event):
    event = stack.add(make_merch_event(fee=Decimal("10.00")))
    reg = stack.registrations.register(
        RegistrationIntent(
            event_id=event.id,
            participant=Participant(id="p-1", email="p-1@example.org"),
            selections={"shirt": "shirt-m", "cap": "cap-one"},
        )
    )
    assert reg.payment_state == PaymentState.PENDING
    return event, reg


def test_approve_issues_ticket_and_notifies(stack, pending):
    _, reg = pending
    out = stack.payments.dispose(reg.id, Decision.APPROVE, comment="ok")

    assert out.payment_state == PaymentState.APPROVED
    assert out.payment_comment == "ok"
    assert out.ticket_artifact.startswith("data:image/png;base64,")
    assert ("payment_approved", reg.id) in stack.notifier.sent


def test_approve_twice(stack, pending):
    _, reg = pending
    stack.payments.dispose(reg.id, Decision.APPROVE)
    with pytest.raises(AlreadyApproved):
        stack.payments.dispose(reg.id, Decision.APPROVE)


def test_reject_releases_exactly_the_committed_units(stack, pending):
    event, reg = pending
    before = stack.inventory.snapshot(event.id)
    assert before.capacity_used == 1
    assert before.stock_of("shirt-m") == 1

    out = stack.payments.dispose(reg.id, Decision.REJECT, comment="blurry receipt")

    assert out.payment_state == PaymentState.REJECTED
    assert out.ticket_artifact == ""
    assert out.inventory_held is False
    after = stack.inventory.snapshot(event.id)
    assert after.capacity_used == 0
    assert after.stock_of("shirt-m") == 2
    assert after.stock_of("cap-one") == 5
    assert after.stock_of("shirt-s") == 2


def test_reject_twice_does_not_release_again(stack, pending):
    event, reg = pending
    stack.payments.dispose(reg.id, Decision.REJECT)
    with pytest.raises(AlreadyRejected):
        stack.payments.dispose(reg.id, Decision.REJECT)
    assert stack.inventory.snapshot(event.id).capacity_used == 0


def test_reject_after_approval_clears_ticket_and_releases(stack, pending):
    event, reg = pending
    stack.payments.dispose(reg.id, Decision.APPROVE)
    out = stack.payments.dispose(reg.id, Decision.REJECT)
    assert out.ticket_artifact == ""
    assert stack.inventory.snapshot(event.id).capacity_used == 0


def test_resubmitted_proof_goes_back_to_pending_without_reacquiring(stack, pending):
    event, reg = pending
    stack.payments.dispose(reg.id, Decision.REJECT)

    out = stack.payments.resubmit_proof(event.id, "p-1", "https://files.example.org/receipt-2.pdf")
    assert out.payment_state == PaymentState.PENDING
    assert out.payment_proof.endswith("receipt-2.pdf")
    assert stack.inventory.snapshot(event.id).capacity_used == 0

    # a second rejection has nothing left to give back
    stack.payments.dispose(reg.id, Decision.REJECT)
    snap = stack.inventory.snapshot(event.id)
    assert snap.capacity_used == 0
    assert snap.stock_of("shirt-m") == 2


def test_proof_upload_on_free_registration_is_refused(stack, make_free_event):
    event = stack.add(make_free_event())
    stack.registrations.register(RegistrationIntent(event_id=event.id, participant=Participant(id="p-1")))
    with pytest.raises(InvalidPaymentState):
        stack.payments.resubmit_proof(event.id, "p-1", "https://files.example.org/r.pdf")


def test_unknown_registration(stack):
    with pytest.raises(RegistrationNotFound):
        stack.payments.dispose("missing", Decision.APPROVE)
