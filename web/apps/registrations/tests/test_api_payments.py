import pytest

from apps.registrations.models import EventModel, RegistrationModel, VariantModel


@pytest.fixture
def pending_registration(client, db_event, as_participant):
    event = db_event(kind="merchandise", fee="10.00", items=[("T-Shirt", True, [("M", "20.00", 2)])])
    shirt = VariantModel.objects.get(event=event)
    r = client.post(
        f"/api/events/{event.id}/registrations/",
        data={"selections": {str(shirt.item_id): str(shirt.id)}},
        content_type="application/json",
        **as_participant("p-1"),
    )
    assert r.status_code == 201
    return event, shirt, r.json()


def decide(client, headers, registration_id, decision, comment=""):
    return client.patch(
        f"/api/registrations/{registration_id}/payment/",
        data={"decision": decision, "comment": comment},
        content_type="application/json",
        **headers,
    )


@pytest.mark.django_db
def test_participant_cannot_decide(client, pending_registration, as_participant):
    _, _, reg = pending_registration
    r = decide(client, as_participant("p-1"), reg["id"], "approve")
    assert r.status_code == 403


@pytest.mark.django_db
def test_approve_issues_ticket(client, pending_registration, as_organizer):
    _, _, reg = pending_registration
    r = decide(client, as_organizer(), reg["id"], "approve", "thanks")
    assert r.status_code == 200
    assert r.json()["payment_state"] == "approved"
    assert r.json()["ticket_artifact"].startswith("data:image/png;base64,")

    again = decide(client, as_organizer(), reg["id"], "approve")
    assert again.status_code == 409
    assert again.json()["detail"] == "ALREADY_APPROVED"


@pytest.mark.django_db
def test_reject_returns_slot_and_shirt(client, pending_registration, as_organizer):
    event, shirt, reg = pending_registration
    r = decide(client, as_organizer(), reg["id"], "reject", "wrong amount")
    assert r.status_code == 200
    assert r.json()["payment_state"] == "rejected"
    assert "ticket_artifact" not in r.json()

    shirt.refresh_from_db()
    assert shirt.stock == 2
    assert EventModel.objects.get(pk=event.pk).capacity_used == 0
    assert RegistrationModel.objects.get(pk=reg["id"]).inventory_held is False


@pytest.mark.django_db
def test_invalid_decision_value(client, pending_registration, as_organizer):
    _, _, reg = pending_registration
    r = decide(client, as_organizer(), reg["id"], "maybe")
    assert r.status_code == 400


@pytest.mark.django_db
def test_unknown_registration(client, as_organizer):
    r = decide(client, as_organizer(), "00000000-0000-0000-0000-000000000000", "approve")
    assert r.status_code == 404


@pytest.mark.django_db
def test_proof_resubmission_after_reject(client, pending_registration, as_participant, as_organizer):
    event, shirt, reg = pending_registration
    decide(client, as_organizer(), reg["id"], "reject")

    r = client.patch(
        f"/api/events/{event.id}/registrations/me/payment-proof/",
        data={"payment_proof": "https://files.example.org/receipt.png"},
        content_type="application/json",
        **as_participant("p-1"),
    )
    assert r.status_code == 200
    assert r.json()["payment_state"] == "pending"
    assert r.json()["payment_proof"] == "https://files.example.org/receipt.png"

    # nothing is taken back from stock on resubmission
    shirt.refresh_from_db()
    assert shirt.stock == 2


@pytest.mark.django_db
def test_proof_must_be_a_url(client, pending_registration, as_participant):
    event, _, _ = pending_registration
    r = client.patch(
        f"/api/events/{event.id}/registrations/me/payment-proof/",
        data={"payment_proof": "not a url"},
        content_type="application/json",
        **as_participant("p-1"),
    )
    assert r.status_code == 400


@pytest.mark.django_db
def test_check_in_flow(client, pending_registration, as_organizer):
    event, _, reg = pending_registration
    scan = lambda: client.post(  # noqa: E731
        f"/api/events/{event.id}/check-in/",
        data={"ticket_code": reg["ticket_code"]},
        content_type="application/json",
        **as_organizer(),
    )
    r = scan()
    assert r.status_code == 409
    assert r.json()["detail"] == "PAYMENT_NOT_APPROVED"

    decide(client, as_organizer(), reg["id"], "approve")
    r = scan()
    assert r.status_code == 200
    assert r.json()["attended"] is True

    r = scan()
    assert r.status_code == 409
    assert r.json()["detail"] == "ALREADY_CHECKED_IN"


@pytest.mark.django_db
def test_check_in_unknown_code(client, db_event, as_organizer):
    event = db_event()
    r = client.post(
        f"/api/events/{event.id}/check-in/",
        data={"ticket_code": "EVT-DOESNOTEXIST"},
        content_type="application/json",
        **as_organizer(),
    )
    assert r.status_code == 404
    assert r.json()["detail"] == "INVALID_TICKET"


@pytest.mark.django_db
def test_attendance_override(client, db_event, as_participant, as_organizer):
    event = db_event()
    reg = client.post(
        f"/api/events/{event.id}/registrations/", data={}, content_type="application/json", **as_participant("p-9")
    ).json()
    r = client.post(
        f"/api/registrations/{reg['id']}/attendance/",
        data={"attended": True},
        content_type="application/json",
        **as_organizer(),
    )
    assert r.status_code == 200
    assert r.json()["attended"] is True
    assert RegistrationModel.objects.get(pk=reg["id"]).attended is True
