"""Domain errors for the registrations module.

Every error carries a stable ``code``, a user-safe ``message`` and, where it
applies, the offending ``field`` (form field id, merchandise item name, ...)
so callers can render an actionable message. Views map these to HTTP
responses; services never build responses themselves.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Domain error codes."""

    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    EVENT_FULL = "EVENT_FULL"
    INELIGIBLE_PARTICIPANT = "INELIGIBLE_PARTICIPANT"
    REGISTRATION_CLOSED = "REGISTRATION_CLOSED"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    REQUIRED_ITEM_NOT_SELECTED = "REQUIRED_ITEM_NOT_SELECTED"
    INVALID_SELECTION = "INVALID_SELECTION"
    VARIANT_SOLD_OUT = "VARIANT_SOLD_OUT"
    REQUIRED_ITEM_UNAVAILABLE = "REQUIRED_ITEM_UNAVAILABLE"
    INVALID_TICKET = "INVALID_TICKET"
    PAYMENT_NOT_APPROVED = "PAYMENT_NOT_APPROVED"
    ALREADY_CHECKED_IN = "ALREADY_CHECKED_IN"
    ALREADY_APPROVED = "ALREADY_APPROVED"
    ALREADY_REJECTED = "ALREADY_REJECTED"
    STORAGE_FAILURE = "STORAGE_FAILURE"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    REGISTRATION_NOT_FOUND = "REGISTRATION_NOT_FOUND"
    INVALID_PAYMENT_STATE = "INVALID_PAYMENT_STATE"
    EVENT_NOT_ONGOING = "EVENT_NOT_ONGOING"


class RegistrationError(Exception):
    """Base domain error with code, user-safe message and optional field."""

    code: ErrorCode = ErrorCode.STORAGE_FAILURE
    default_message = "Registration error"

    def __init__(self, message: str | None = None, *, field: str | None = None) -> None:
        self.message = message or self.default_message
        self.field = field
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict:
        body = {"detail": self.code.value, "message": self.message}
        if self.field is not None:
            body["field"] = self.field
        return body


class AlreadyRegistered(RegistrationError):
    code = ErrorCode.ALREADY_REGISTERED
    default_message = "Already registered for this event"


class EventFull(RegistrationError):
    code = ErrorCode.EVENT_FULL
    default_message = "Event is full"


class IneligibleParticipant(RegistrationError):
    code = ErrorCode.INELIGIBLE_PARTICIPANT
    default_message = "Participant is not eligible for this event"


class RegistrationClosed(RegistrationError):
    code = ErrorCode.REGISTRATION_CLOSED
    default_message = "Registration is closed for this event"


class MissingRequiredField(RegistrationError):
    code = ErrorCode.MISSING_REQUIRED_FIELD
    default_message = "Required field missing"


class RequiredItemNotSelected(RegistrationError):
    code = ErrorCode.REQUIRED_ITEM_NOT_SELECTED
    default_message = "Required item not selected"


class InvalidSelection(RegistrationError):
    code = ErrorCode.INVALID_SELECTION
    default_message = "Invalid item selection"


class VariantSoldOut(RegistrationError):
    code = ErrorCode.VARIANT_SOLD_OUT
    default_message = "Selected option is sold out"


class RequiredItemUnavailable(RegistrationError):
    code = ErrorCode.REQUIRED_ITEM_UNAVAILABLE
    default_message = "Required item is completely sold out"


class InvalidTicket(RegistrationError):
    code = ErrorCode.INVALID_TICKET
    default_message = "Invalid ticket"


class PaymentNotApproved(RegistrationError):
    code = ErrorCode.PAYMENT_NOT_APPROVED
    default_message = "Payment not approved, cannot check in"


class AlreadyCheckedIn(RegistrationError):
    code = ErrorCode.ALREADY_CHECKED_IN
    default_message = "Already checked in"


class AlreadyApproved(RegistrationError):
    code = ErrorCode.ALREADY_APPROVED
    default_message = "Payment already approved"


class AlreadyRejected(RegistrationError):
    code = ErrorCode.ALREADY_REJECTED
    default_message = "Payment already rejected"


class StorageFailure(RegistrationError):
    """Raised by store adapters for backing-store errors not otherwise classified."""

    code = ErrorCode.STORAGE_FAILURE
    default_message = "Storage unavailable"


class EventNotFound(RegistrationError):
    code = ErrorCode.EVENT_NOT_FOUND
    default_message = "Event not found"


class RegistrationNotFound(RegistrationError):
    code = ErrorCode.REGISTRATION_NOT_FOUND
    default_message = "Registration not found"


class InvalidPaymentState(RegistrationError):
    code = ErrorCode.INVALID_PAYMENT_STATE
    default_message = "Payment proof cannot be uploaded for this registration"


class EventNotOngoing(RegistrationError):
    code = ErrorCode.EVENT_NOT_ONGOING
    default_message = "Attendance can only be taken while the event is ongoing"
