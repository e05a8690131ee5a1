"""Repository layer: registration ledger and event catalog over the Django ORM.

The repositories translate between ORM rows and the domain dataclasses so
services never see a model instance. The ledger relies on the
``registrations_one_per_participant`` unique constraint as the backstop
against two concurrent registrations for the same participant.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from .domain import (
    CommittedItem,
    EventCatalog,
    EventDefinition,
    EventKind,
    FormField,
    MerchItem,
    PaymentState,
    Registration,
    RegistrationLedger,
    Variant,
)
from .errors import AlreadyRegistered, StorageFailure
from .models import EventModel, RegistrationModel


def _items_to_json(items: dict[str, CommittedItem]) -> dict:
    return {
        key: {
            "item_name": c.item_name,
            "variant_id": c.variant_id,
            "variant_label": c.variant_label,
            "price": str(c.price),
        }
        for key, c in items.items()
    }


def _items_from_json(data: dict) -> dict[str, CommittedItem]:
    return {
        key: CommittedItem(
            item_id=key,
            item_name=v.get("item_name", ""),
            variant_id=v["variant_id"],
            variant_label=v.get("variant_label", ""),
            price=Decimal(v.get("price", "0")),
        )
        for key, v in (data or {}).items()
    }


def to_domain(obj: RegistrationModel) -> Registration:
    return Registration(
        id=str(obj.id),
        event_id=str(obj.event_id),
        participant_id=obj.participant_id,
        ticket_code=obj.ticket_code,
        payment_state=PaymentState(obj.payment_state),
        amount_due=obj.amount_due,
        committed_items=_items_from_json(obj.committed_items),
        form_responses=obj.form_responses or {},
        contact_email=obj.contact_email,
        ticket_artifact=obj.ticket_artifact,
        payment_proof=obj.payment_proof,
        payment_comment=obj.payment_comment,
        inventory_held=obj.inventory_held,
        attended=obj.attended,
        attended_at=obj.attended_at,
        registered_at=obj.registered_at,
    )


class DjangoRegistrationLedger(RegistrationLedger):
    """Registration records in the ``registrations`` table."""

    def exists(self, event_id: str, participant_id: str) -> bool:
        try:
            return RegistrationModel.objects.filter(
                event_id=event_id, participant_id=participant_id
            ).exists()
        except DatabaseError as exc:
            raise StorageFailure() from exc

    def ticket_code_taken(self, ticket_code: str) -> bool:
        try:
            return RegistrationModel.objects.filter(ticket_code=ticket_code).exists()
        except DatabaseError as exc:
            raise StorageFailure() from exc

    def create(self, registration: Registration) -> Registration:
        """Insert the registration.

        The insert runs in its own savepoint so an ``IntegrityError`` leaves
        any enclosing transaction usable. A violation is reported as
        ``AlreadyRegistered`` only when a row for the same participant now
        exists; anything else (a ticket code collision, for instance) is a
        ``StorageFailure``.
        """
        try:
            with transaction.atomic():
                obj = RegistrationModel.objects.create(
                    event_id=registration.event_id,
                    participant_id=registration.participant_id,
                    contact_email=registration.contact_email,
                    ticket_code=registration.ticket_code,
                    payment_state=registration.payment_state.value,
                    amount_due=registration.amount_due,
                    committed_items=_items_to_json(registration.committed_items),
                    form_responses=registration.form_responses,
                    ticket_artifact=registration.ticket_artifact,
                    payment_proof=registration.payment_proof,
                    inventory_held=registration.inventory_held,
                )
        except IntegrityError as exc:
            duplicate = RegistrationModel.objects.filter(
                event_id=registration.event_id, participant_id=registration.participant_id
            ).exists()
            if duplicate:
                raise AlreadyRegistered() from exc
            raise StorageFailure() from exc
        except DatabaseError as exc:
            raise StorageFailure() from exc
        return to_domain(obj)

    def transition_payment(
        self,
        registration_id: str,
        expected: PaymentState,
        target: PaymentState,
        *,
        expected_held: Optional[bool] = None,
        **fields,
    ) -> bool:
        """Compare-and-set on ``payment_state``; see ``RegistrationLedger``."""
        guard = {"pk": registration_id, "payment_state": expected.value}
        if expected_held is not None:
            guard["inventory_held"] = expected_held
        try:
            updated = RegistrationModel.objects.filter(**guard).update(
                payment_state=target.value, updated_at=timezone.now(), **fields
            )
        except DatabaseError as exc:
            raise StorageFailure() from exc
        return updated == 1

    def write_attendance(self, registration_id: str, attended: bool, at: Optional[datetime]) -> bool:
        try:
            updated = RegistrationModel.objects.filter(pk=registration_id).update(
                attended=attended, attended_at=at, updated_at=timezone.now()
            )
        except DatabaseError as exc:
            raise StorageFailure() from exc
        return updated == 1

    def get(self, registration_id: str) -> Optional[Registration]:
        try:
            obj = RegistrationModel.objects.filter(pk=registration_id).first()
        except DatabaseError as exc:
            raise StorageFailure() from exc
        return to_domain(obj) if obj else None

    def find(self, event_id: str, participant_id: str) -> Optional[Registration]:
        try:
            obj = RegistrationModel.objects.filter(
                event_id=event_id, participant_id=participant_id
            ).first()
        except DatabaseError as exc:
            raise StorageFailure() from exc
        return to_domain(obj) if obj else None

    def get_by_ticket(self, event_id: str, ticket_code: str) -> Optional[Registration]:
        try:
            obj = RegistrationModel.objects.filter(
                event_id=event_id, ticket_code=ticket_code
            ).first()
        except DatabaseError as exc:
            raise StorageFailure() from exc
        return to_domain(obj) if obj else None

    def mark_attended(self, registration_id: str, at: datetime) -> bool:
        try:
            updated = RegistrationModel.objects.filter(pk=registration_id, attended=False).update(
                attended=True, attended_at=at, updated_at=at
            )
        except DatabaseError as exc:
            raise StorageFailure() from exc
        return updated == 1


class DjangoEventCatalog(EventCatalog):
    """Reads event definitions (form, items, variants) from the event tables."""

    def get_event(self, event_id: str) -> Optional[EventDefinition]:
        try:
            obj = (
                EventModel.objects.prefetch_related("items__variants")
                .filter(pk=event_id)
                .first()
            )
        except DatabaseError as exc:
            raise StorageFailure() from exc
        if obj is None:
            return None

        items = tuple(
            MerchItem(
                id=str(it.id),
                name=it.name,
                required=it.required,
                variants=tuple(
                    Variant(id=str(v.id), label=v.label, price=v.price, stock=v.stock)
                    for v in it.variants.all()
                ),
            )
            for it in obj.items.all()
        )
        form_fields = tuple(
            FormField(
                id=str(f["id"]),
                label=f.get("label", ""),
                required=bool(f.get("required", False)),
                field_type=f.get("field_type", "text"),
            )
            for f in obj.form_fields or []
        )
        return EventDefinition(
            id=str(obj.id),
            name=obj.name,
            kind=EventKind(obj.kind),
            fee=obj.registration_fee,
            capacity_limit=obj.capacity_limit,
            eligibility=obj.eligibility,
            registration_open=obj.registration_open,
            registration_deadline=obj.registration_deadline,
            starts_at=obj.starts_at,
            ends_at=obj.ends_at,
            form_fields=form_fields,
            items=items,
        )
