"""Django ORM implementation of the ``InventoryStore`` port.

Each primitive is a single ``UPDATE ... WHERE <guard>`` issued through
``QuerySet.update`` with ``F`` expressions; the number of affected rows says
whether the guard held at the instant of the write. Nothing here reads a
counter and then writes it, and nothing runs inside a request-wide
transaction, so every primitive commits on its own.
"""

import logging
from typing import Optional

from django.db import DatabaseError
from django.db.models import F

from .domain import EventCapacity, InventoryStore, Variant
from .errors import StorageFailure
from .models import EventModel, VariantModel

logger = logging.getLogger("registrations")


class DjangoInventoryStore(InventoryStore):
    """Capacity and stock counters on the ``events`` / ``merch_variants`` tables."""

    def try_reserve_capacity(self, event_id: str) -> bool:
        try:
            updated = EventModel.objects.filter(
                pk=event_id, capacity_used__lt=F("capacity_limit")
            ).update(capacity_used=F("capacity_used") + 1)
        except DatabaseError as exc:
            raise StorageFailure() from exc
        return updated == 1

    def release_capacity(self, event_id: str) -> None:
        try:
            updated = EventModel.objects.filter(pk=event_id, capacity_used__gt=0).update(
                capacity_used=F("capacity_used") - 1
            )
        except DatabaseError as exc:
            raise StorageFailure() from exc
        if not updated:
            logger.error("capacity release underflow", extra={"event_id": str(event_id)})

    def try_reserve_variant_stock(self, event_id: str, variant_id: str) -> bool:
        try:
            updated = VariantModel.objects.filter(
                pk=variant_id, event_id=event_id, stock__gt=0
            ).update(stock=F("stock") - 1)
        except DatabaseError as exc:
            raise StorageFailure() from exc
        return updated == 1

    def release_variant_stock(self, event_id: str, variant_id: str) -> None:
        try:
            updated = VariantModel.objects.filter(pk=variant_id, event_id=event_id).update(
                stock=F("stock") + 1
            )
        except DatabaseError as exc:
            raise StorageFailure() from exc
        if not updated:
            raise StorageFailure("Unknown variant")

    def snapshot(self, event_id: str) -> Optional[EventCapacity]:
        try:
            event = EventModel.objects.filter(pk=event_id).first()
            if event is None:
                return None
            variants = VariantModel.objects.filter(event_id=event_id).order_by(
                "item__position", "item_id", "position", "id"
            )
            return EventCapacity(
                event_id=str(event.id),
                capacity_limit=event.capacity_limit,
                capacity_used=event.capacity_used,
                variants=tuple(
                    Variant(id=str(v.id), label=v.label, price=v.price, stock=v.stock)
                    for v in variants
                ),
            )
        except DatabaseError as exc:
            raise StorageFailure() from exc
