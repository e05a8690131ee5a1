"""Pydantic schemas for the registrations API.

Request DTOs validate shape only; business rules (eligibility, required
fields, stock) are enforced by the services and reported as domain errors.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator

from .domain import Decision, Registration


class RegisterDTO(BaseModel):
    """Body of ``POST /api/events/{event_id}/registrations/``.

    Attributes:
        form_responses: Answers to the event's custom form, keyed by field id.
        selections: Merchandise choices, item id -> variant id.
    """

    model_config = ConfigDict(extra="forbid")

    form_responses: dict[str, Any] = Field(default_factory=dict)
    selections: dict[str, str] = Field(default_factory=dict)

    @field_validator("selections")
    @classmethod
    def drop_blank_selections(cls, v: dict[str, str]) -> dict[str, str]:
        return {k: s.strip() for k, s in v.items() if s and s.strip()}


class PaymentDecisionDTO(BaseModel):
    decision: Decision
    comment: str = Field(default="", max_length=2000)


class PaymentProofDTO(BaseModel):
    payment_proof: HttpUrl


class CheckInDTO(BaseModel):
    ticket_code: str = Field(min_length=1, max_length=64)

    @field_validator("ticket_code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip()


class AttendanceDTO(BaseModel):
    attended: bool


class CommittedItemOut(BaseModel):
    item_id: str
    item_name: str
    variant_id: str
    variant_label: str
    price: Decimal


class RegistrationReadDTO(BaseModel):
    """Registration as returned by the API."""

    id: str
    event_id: str
    participant_id: str
    ticket_code: str
    payment_state: str
    amount_due: Decimal
    committed_items: list[CommittedItemOut] = Field(default_factory=list)
    ticket_artifact: Optional[str] = None
    payment_proof: Optional[str] = None
    payment_comment: Optional[str] = None
    attended: bool = False
    attended_at: Optional[datetime] = None
    registered_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, r: Registration) -> "RegistrationReadDTO":
        return cls(
            id=str(r.id),
            event_id=str(r.event_id),
            participant_id=r.participant_id,
            ticket_code=r.ticket_code,
            payment_state=r.payment_state.value,
            amount_due=r.amount_due,
            committed_items=[
                CommittedItemOut(
                    item_id=c.item_id,
                    item_name=c.item_name,
                    variant_id=c.variant_id,
                    variant_label=c.variant_label,
                    price=c.price,
                )
                for c in r.committed_items.values()
            ],
            ticket_artifact=r.ticket_artifact or None,
            payment_proof=r.payment_proof or None,
            payment_comment=r.payment_comment or None,
            attended=r.attended,
            attended_at=r.attended_at,
            registered_at=r.registered_at,
        )

    def to_json(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class VariantStockOut(BaseModel):
    variant_id: str
    label: str
    stock: int


class InventoryReadDTO(BaseModel):
    event_id: str
    capacity_limit: int
    capacity_used: int
    remaining: int
    variants: list[VariantStockOut] = Field(default_factory=list)
