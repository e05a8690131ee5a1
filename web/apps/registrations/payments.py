"""Payment disposition for paid registrations.

Organizers approve or reject the payment proof a participant uploaded.
Approval issues the ticket artifact; rejection clears it and returns the
registration's capacity slot and committed merchandise units to circulation,
exactly the set recorded on the registration and never re-derived from
current stock. A rejected participant may upload a new proof, which puts the
registration back to pending without re-acquiring inventory.

Every transition is a compare-and-set on the ledger row. A decision that
loses a race re-reads the registration and is evaluated again, so two
concurrent rejections release the inventory once and the second one sees
``AlreadyRejected``.
"""

import logging
from typing import Callable, Optional

from . import tickets
from .domain import (
    Decision,
    InventoryStore,
    Notifier,
    PaymentState,
    Registration,
    RegistrationLedger,
)
from .errors import (
    AlreadyApproved,
    AlreadyRejected,
    InvalidPaymentState,
    RegistrationNotFound,
    StorageFailure,
)

logger = logging.getLogger("registrations")

MAX_TRANSITION_ATTEMPTS = 3


class PaymentService:
    """Drives ``payment_state`` transitions of existing registrations."""

    def __init__(self, ledger: RegistrationLedger, inventory: InventoryStore, notifier: Notifier):
        self.ledger = ledger
        self.inventory = inventory
        self.notifier = notifier

    def dispose(self, registration_id: str, decision: Decision, comment: str = "") -> Registration:
        """Approve or reject a registration's payment.

        Args:
            registration_id: Registration to update.
            decision: ``Decision.APPROVE`` or ``Decision.REJECT``.
            comment: Optional organizer comment stored on the registration.

        Returns:
            Registration: The updated registration.

        Raises:
            RegistrationNotFound: Unknown registration id.
            AlreadyApproved: Approving an approved registration.
            AlreadyRejected: Rejecting a rejected registration.
        """

        def load() -> Registration:
            registration = self.ledger.get(registration_id)
            if registration is None:
                raise RegistrationNotFound()
            return registration

        step = self._approve if decision == Decision.APPROVE else self._reject
        return self._transition(load, lambda registration: step(registration, comment))

    def _transition(
        self,
        load: Callable[[], Registration],
        step: Callable[[Registration], Optional[Registration]],
    ) -> Registration:
        for _ in range(MAX_TRANSITION_ATTEMPTS):
            done = step(load())
            if done is not None:
                return done
        raise StorageFailure("Registration is being updated concurrently")

    def _approve(self, registration: Registration, comment: str) -> Optional[Registration]:
        if registration.payment_state == PaymentState.APPROVED:
            raise AlreadyApproved()
        artifact = registration.ticket_artifact or tickets.render_ticket(registration.ticket_code)
        if not self.ledger.transition_payment(
            registration.id,
            registration.payment_state,
            PaymentState.APPROVED,
            payment_comment=comment,
            ticket_artifact=artifact,
        ):
            return None

        registration.payment_state = PaymentState.APPROVED
        registration.payment_comment = comment
        registration.ticket_artifact = artifact
        logger.info("payment approved", extra={"registration_id": registration.id})

        try:
            self.notifier.payment_approved(registration)
        except Exception:
            logger.exception("payment notification failed", extra={"registration_id": registration.id})
        return registration

    def _reject(self, registration: Registration, comment: str) -> Optional[Registration]:
        if registration.payment_state == PaymentState.REJECTED:
            raise AlreadyRejected()
        release = registration.inventory_held
        if not self.ledger.transition_payment(
            registration.id,
            registration.payment_state,
            PaymentState.REJECTED,
            expected_held=release,
            payment_comment=comment,
            ticket_artifact="",
            inventory_held=False,
        ):
            return None

        registration.payment_state = PaymentState.REJECTED
        registration.payment_comment = comment
        registration.ticket_artifact = ""
        registration.inventory_held = False
        if release:
            self._release_inventory(registration)
        logger.info(
            "payment rejected",
            extra={"registration_id": registration.id, "released": release},
        )
        return registration

    def _release_inventory(self, registration: Registration) -> None:
        event_id = registration.event_id
        self.inventory.release_capacity(event_id)
        for item in registration.committed_items.values():
            self.inventory.release_variant_stock(event_id, item.variant_id)

    def resubmit_proof(self, event_id: str, participant_id: str, proof_url: str) -> Registration:
        """Attach a (new) payment proof reference to the participant's registration.

        Raises:
            RegistrationNotFound: The participant is not registered.
            InvalidPaymentState: Payment is neither pending nor rejected.
        """

        def load() -> Registration:
            registration = self.ledger.find(event_id, participant_id)
            if registration is None:
                raise RegistrationNotFound("Not registered")
            return registration

        def step(registration: Registration) -> Optional[Registration]:
            if registration.payment_state not in (PaymentState.PENDING, PaymentState.REJECTED):
                raise InvalidPaymentState(field="payment_state")
            if not self.ledger.transition_payment(
                registration.id,
                registration.payment_state,
                PaymentState.PENDING,
                payment_proof=proof_url,
            ):
                return None
            registration.payment_state = PaymentState.PENDING
            registration.payment_proof = proof_url
            return registration

        return self._transition(load, step)
