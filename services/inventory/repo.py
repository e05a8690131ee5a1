"""SQLAlchemy repository for event capacity and merchandise stock counters.

Two tables hold the counters the registration gateway reserves against:
``event_capacity`` (one row per event) and ``variant_stock`` (one row per
merchandise variant). Every reserve/release is a single
``UPDATE ... WHERE <guard>``; the affected row count tells whether the guard
held. Nothing reads a counter and writes it back.

A reserve or release may carry an operation key. The key is stored in
``counter_operations`` in the same transaction as the counter update, so a
request resent after a lost response returns the recorded outcome instead of
taking or returning a second unit.

The database is configured via ``DATABASE_URL`` or, when unset, the
``DB_*`` variables for the compose postgres.
"""

import os
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Integer, String, create_engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

DB_HOST = os.getenv("DB_HOST", "inventory-db")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "inventory")
DB_USER = os.getenv("DB_USER", "inventory_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "inventory-pass")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
engine = create_engine(DATABASE_URL, pool_pre_ping=True)


class Base(DeclarativeBase):
    pass


class EventCapacity(Base):
    __tablename__ = "event_capacity"
    __table_args__ = (
        CheckConstraint("capacity_used >= 0 AND capacity_used <= capacity_limit", name="capacity_in_range"),
    )

    event_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    capacity_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    capacity_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class VariantStock(Base):
    __tablename__ = "variant_stock"
    __table_args__ = (CheckConstraint("stock >= 0", name="stock_not_negative"),)

    event_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    variant_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    label: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class CounterOperation(Base):
    __tablename__ = "counter_operations"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    operation: Mapped[str] = mapped_column(String(200), nullable=False)
    applied: Mapped[bool] = mapped_column(Boolean, nullable=False)


class UnknownCounter(LookupError):
    """No counter row for the given event / variant."""


class OperationKeyReused(ValueError):
    """An operation key was already used for a different reserve/release."""


def init_db() -> None:
    Base.metadata.create_all(engine)


@contextmanager
def get_session():
    with Session(engine) as s:
        yield s


class InventoryRepo:
    """Guarded reserve/release primitives plus load and snapshot."""

    def upsert_event(self, event_id: str, capacity_limit: int, capacity_used: int, variants) -> None:
        """Create or replace an event's counters.

        Args:
            event_id: Event identifier.
            capacity_limit: Maximum registrations.
            capacity_used: Slots already taken.
            variants: Iterable of ``(variant_id, label, stock)``.
        """
        with get_session() as s:
            s.merge(EventCapacity(event_id=event_id, capacity_limit=capacity_limit, capacity_used=capacity_used))
            for pos, (variant_id, label, stock) in enumerate(variants):
                s.merge(
                    VariantStock(event_id=event_id, variant_id=variant_id, label=label, position=pos, stock=stock)
                )
            s.commit()

    def snapshot(self, event_id: str) -> Optional[dict]:
        with get_session() as s:
            cap = s.get(EventCapacity, event_id)
            if cap is None:
                return None
            rows = s.scalars(
                select(VariantStock)
                .where(VariantStock.event_id == event_id)
                .order_by(VariantStock.position, VariantStock.variant_id)
            ).all()
            return {
                "event_id": cap.event_id,
                "capacity_limit": cap.capacity_limit,
                "capacity_used": cap.capacity_used,
                "variants": [{"variant_id": v.variant_id, "label": v.label, "stock": v.stock} for v in rows],
            }


    @staticmethod
    def _replay(prior: CounterOperation, operation: str) -> bool:
        if prior.operation != operation:
            raise OperationKeyReused(prior.key)
        return prior.applied

    def _guarded(self, stmt, missing, operation: str, op_key: Optional[str] = None) -> bool:
        """Run one guarded update; with ``op_key``, at most once per key.

        Returns whether the guard held. A key seen before returns the
        outcome recorded the first time without touching the counter.
        """
        with get_session() as s:
            if op_key:
                prior = s.get(CounterOperation, op_key)
                if prior is not None:
                    return self._replay(prior, operation)

            applied = s.execute(stmt).rowcount == 1
            if not applied and s.get(*missing) is None:
                s.rollback()
                raise UnknownCounter(missing[1])
            if op_key:
                s.add(CounterOperation(key=op_key, operation=operation, applied=applied))
            try:
                s.commit()
            except IntegrityError:
                # a concurrent resend with the same key committed first
                s.rollback()
                prior = s.get(CounterOperation, op_key) if op_key else None
                if prior is None:
                    raise
                return self._replay(prior, operation)
            return applied

    def reserve_capacity(self, event_id: str, op_key: Optional[str] = None) -> bool:
        stmt = (
            update(EventCapacity)
            .where(EventCapacity.event_id == event_id, EventCapacity.capacity_used < EventCapacity.capacity_limit)
            .values(capacity_used=EventCapacity.capacity_used + 1)
        )
        return self._guarded(stmt, (EventCapacity, event_id), f"capacity.reserve:{event_id}", op_key)

    def release_capacity(self, event_id: str, op_key: Optional[str] = None) -> bool:
        """Give one slot back; False when the counter was already at zero."""
        stmt = (
            update(EventCapacity)
            .where(EventCapacity.event_id == event_id, EventCapacity.capacity_used > 0)
            .values(capacity_used=EventCapacity.capacity_used - 1)
        )
        return self._guarded(stmt, (EventCapacity, event_id), f"capacity.release:{event_id}", op_key)

    def reserve_variant(self, event_id: str, variant_id: str, op_key: Optional[str] = None) -> bool:
        stmt = (
            update(VariantStock)
            .where(
                VariantStock.event_id == event_id,
                VariantStock.variant_id == variant_id,
                VariantStock.stock > 0,
            )
            .values(stock=VariantStock.stock - 1)
        )
        return self._guarded(
            stmt, (VariantStock, (event_id, variant_id)), f"variant.reserve:{event_id}:{variant_id}", op_key
        )

    def release_variant(self, event_id: str, variant_id: str, op_key: Optional[str] = None) -> bool:
        stmt = (
            update(VariantStock)
            .where(VariantStock.event_id == event_id, VariantStock.variant_id == variant_id)
            .values(stock=VariantStock.stock + 1)
        )
        return self._guarded(
            stmt, (VariantStock, (event_id, variant_id)), f"variant.release:{event_id}:{variant_id}", op_key
        )
