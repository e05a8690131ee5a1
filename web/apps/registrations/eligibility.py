"""Eligibility, registration-window and form completeness checks.

Pure functions: they take an event definition, the participant and the
submitted data, and either return None or raise a domain error. They never
touch storage. The merchandise availability pre-check reads a snapshot the
caller fetched; it is advisory only and the atomic reservation remains the
authoritative check.
"""

from datetime import datetime
from typing import Mapping, Optional

from .domain import ELIGIBLE_TO_ALL, EventCapacity, EventDefinition, Participant
from .errors import (
    IneligibleParticipant,
    InvalidSelection,
    MissingRequiredField,
    RegistrationClosed,
    RequiredItemUnavailable,
)


def is_missing(value) -> bool:
    """Return True for None, empty/blank strings and empty lists."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def check_eligibility(event: EventDefinition, participant: Participant) -> None:
    if event.eligibility and event.eligibility != ELIGIBLE_TO_ALL:
        if participant.category != event.eligibility:
            raise IneligibleParticipant(
                f"This event is for {event.eligibility} participants only",
                field="eligibility",
            )


def check_window(event: EventDefinition, now: datetime) -> None:
    if not event.registration_open:
        raise RegistrationClosed("Registration is not open for this event")
    if event.registration_deadline and now > event.registration_deadline:
        raise RegistrationClosed("Registration deadline passed", field="registration_deadline")
    if event.ends_at and now > event.ends_at:
        raise RegistrationClosed("Event has already ended", field="ends_at")


def check_required_fields(event: EventDefinition, responses: Mapping) -> None:
    for f in event.form_fields:
        if f.required and is_missing(responses.get(f.id)):
            raise MissingRequiredField(f"Required field missing: {f.label}", field=f.id)


def check_selection_keys(event: EventDefinition, selections: Mapping) -> None:
    """Reject selections naming items the event does not have."""
    for item_id in selections:
        if event.item(item_id) is None:
            raise InvalidSelection("Unknown merchandise item", field=item_id)


def check_required_items_available(
    event: EventDefinition, snapshot: Optional[EventCapacity]
) -> None:
    """Advisory pre-check: a required item whose every variant is out of stock."""
    if snapshot is None:
        return
    for item in event.items:
        if not item.required:
            continue
        if not any(snapshot.stock_of(v.id) > 0 for v in item.variants):
            raise RequiredItemUnavailable(
                f'Required item "{item.name}" is completely sold out', field=item.name
            )


def validate_intake(
    event: EventDefinition,
    participant: Participant,
    responses: Mapping,
    selections: Mapping,
    now: datetime,
) -> None:
    """Run every check that needs no storage, in the order callers expect."""
    check_eligibility(event, participant)
    check_window(event, now)
    check_required_fields(event, responses)
    if event.is_merchandise:
        check_selection_keys(event, selections)
