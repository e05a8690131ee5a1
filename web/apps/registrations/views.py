"""HTTP views for the registrations app.

Views stay thin: validate the body with a pydantic DTO, build the domain
input, call a service from ``providers`` and turn the result, or the
``RegistrationError`` it raised, into a response. Error bodies always carry
``detail`` (the stable code), ``message`` and, when known, ``field``.

Registration supports an ``Idempotency-Key`` header. The first request with a
key is processed and its response stored; a retry with the same key and body
gets the stored response back with ``Idempotent-Replay: true``; the same key
with a different body is a 409 ``IDEMPOTENCY_CONFLICT``.
"""

import logging

from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from .authentication import IsOrganizer, IsParticipant
from .domain import RegistrationIntent
from .errors import ErrorCode, EventNotFound, RegistrationError
from .idempotency import IdempotencyConflict, discard, finalize, get_or_create_idempotent
from .providers import (
    get_attendance_service,
    get_inventory,
    get_payment_service,
    get_registration_service,
)
from .schemas import (
    AttendanceDTO,
    CheckInDTO,
    InventoryReadDTO,
    PaymentDecisionDTO,
    PaymentProofDTO,
    RegisterDTO,
    RegistrationReadDTO,
    VariantStockOut,
)

logger = logging.getLogger("registrations")

STATUS_BY_CODE = {
    ErrorCode.EVENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.REGISTRATION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.INVALID_TICKET: status.HTTP_404_NOT_FOUND,
    ErrorCode.INELIGIBLE_PARTICIPANT: status.HTTP_403_FORBIDDEN,
    ErrorCode.REGISTRATION_CLOSED: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_REGISTERED: status.HTTP_409_CONFLICT,
    ErrorCode.EVENT_FULL: status.HTTP_409_CONFLICT,
    ErrorCode.VARIANT_SOLD_OUT: status.HTTP_409_CONFLICT,
    ErrorCode.REQUIRED_ITEM_UNAVAILABLE: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_CHECKED_IN: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_APPROVED: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_REJECTED: status.HTTP_409_CONFLICT,
    ErrorCode.PAYMENT_NOT_APPROVED: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_PAYMENT_STATE: status.HTTP_409_CONFLICT,
    ErrorCode.EVENT_NOT_ONGOING: status.HTTP_409_CONFLICT,
    ErrorCode.MISSING_REQUIRED_FIELD: status.HTTP_400_BAD_REQUEST,
    ErrorCode.REQUIRED_ITEM_NOT_SELECTED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_SELECTION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.STORAGE_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def error_response(exc: RegistrationError) -> Response:
    code = STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST)
    return Response(exc.to_dict(), status=code)


def validation_response(exc: ValidationError) -> Response:
    return Response(
        {
            "detail": "VALIDATION_ERROR",
            "message": "Invalid request body",
            "errors": exc.errors(include_url=False, include_context=False),
        },
        status=status.HTTP_400_BAD_REQUEST,
    )


class ScopedAPIView(APIView):
    throttle_classes = [ScopedRateThrottle]


class EventRegistrationsView(ScopedAPIView):
    """Register the calling participant for an event."""

    permission_classes = [IsParticipant]
    throttle_scope = "registrations_create"

    def post(self, request, event_id):
        """Create a registration.

        Returns:
            Response: One of the following.
            - 201 with the registration (``not_required`` + ticket, or ``pending``).
            - 200 with the stored body and ``Idempotent-Replay: true`` on a retry.
            - 409 ``IDEMPOTENCY_CONFLICT`` when a key is reused with another body.
            - 400 for body validation errors and form/selection errors.
            - 403/404/409/503 for the domain errors listed in ``STATUS_BY_CODE``.
        """
        event_id = str(event_id)
        try:
            dto = RegisterDTO.model_validate(request.data)
        except ValidationError as e:
            return validation_response(e)

        idem_key = request.headers.get("Idempotency-Key")
        rec = None
        if idem_key:
            fingerprint = {
                "event_id": event_id,
                "participant_id": request.user.id,
                "body": dto.model_dump(),
            }
            try:
                existing, rec = get_or_create_idempotent(idem_key, fingerprint)
            except IdempotencyConflict:
                return Response(
                    {"detail": "IDEMPOTENCY_CONFLICT", "message": "Idempotency key reused"},
                    status=status.HTTP_409_CONFLICT,
                )
            if existing and rec.response_status:
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        intent = RegistrationIntent(
            event_id=event_id,
            participant=request.user.as_participant(),
            form_responses=dto.form_responses,
            selections=dto.selections,
        )
        try:
            registration = get_registration_service().register(intent)
        except RegistrationError as e:
            resp = error_response(e)
            if rec:
                finalize(rec, resp.status_code, resp.data)
            return resp
        except Exception:
            if rec:
                discard(rec)
            raise

        body = RegistrationReadDTO.from_domain(registration).to_json()
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, registration_id=registration.id)
        return Response(body, status=status.HTTP_201_CREATED)


class MyRegistrationView(ScopedAPIView):
    permission_classes = [IsParticipant]
    throttle_scope = "registrations_read"

    def get(self, request, event_id):
        try:
            registration = get_registration_service().my_registration(str(event_id), request.user.id)
        except RegistrationError as e:
            return error_response(e)
        return Response(RegistrationReadDTO.from_domain(registration).to_json())


class PaymentProofView(ScopedAPIView):
    """Participant uploads (or re-uploads after rejection) a payment proof link."""

    permission_classes = [IsParticipant]
    throttle_scope = "registrations_update"

    def patch(self, request, event_id):
        try:
            dto = PaymentProofDTO.model_validate(request.data)
        except ValidationError as e:
            return validation_response(e)
        try:
            registration = get_payment_service().resubmit_proof(
                str(event_id), request.user.id, str(dto.payment_proof)
            )
        except RegistrationError as e:
            return error_response(e)
        return Response(RegistrationReadDTO.from_domain(registration).to_json())


class PaymentDecisionView(ScopedAPIView):
    permission_classes = [IsOrganizer]
    throttle_scope = "organizer"

    def patch(self, request, registration_id):
        try:
            dto = PaymentDecisionDTO.model_validate(request.data)
        except ValidationError as e:
            return validation_response(e)
        try:
            registration = get_payment_service().dispose(
                str(registration_id), dto.decision, dto.comment
            )
        except RegistrationError as e:
            return error_response(e)
        logger.info(
            "payment disposition",
            extra={
                "registration_id": registration.id,
                "decision": dto.decision.value,
                "organizer_id": request.user.id,
            },
        )
        return Response(RegistrationReadDTO.from_domain(registration).to_json())


class CheckInView(ScopedAPIView):
    """Scan a ticket at the door."""

    permission_classes = [IsOrganizer]
    throttle_scope = "organizer"

    def post(self, request, event_id):
        try:
            dto = CheckInDTO.model_validate(request.data)
        except ValidationError as e:
            return validation_response(e)
        try:
            registration = get_attendance_service().check_in(str(event_id), dto.ticket_code)
        except RegistrationError as e:
            return error_response(e)
        return Response(
            {
                "registration_id": registration.id,
                "participant_id": registration.participant_id,
                "attended": registration.attended,
                "attended_at": registration.attended_at.isoformat(),
            }
        )


class AttendanceView(ScopedAPIView):
    permission_classes = [IsOrganizer]
    throttle_scope = "organizer"

    def post(self, request, registration_id):
        try:
            dto = AttendanceDTO.model_validate(request.data)
        except ValidationError as e:
            return validation_response(e)
        try:
            registration = get_attendance_service().set_attendance(
                str(registration_id), dto.attended
            )
        except RegistrationError as e:
            return error_response(e)
        return Response(RegistrationReadDTO.from_domain(registration).to_json())


class EventInventoryView(ScopedAPIView):
    """Current capacity and per-variant stock. Display only."""

    permission_classes = [IsParticipant]
    throttle_scope = "registrations_read"

    def get(self, request, event_id):
        try:
            snap = get_inventory().snapshot(str(event_id))
            if snap is None:
                raise EventNotFound(field="event_id")
        except RegistrationError as e:
            return error_response(e)
        dto = InventoryReadDTO(
            event_id=snap.event_id,
            capacity_limit=snap.capacity_limit,
            capacity_used=snap.capacity_used,
            remaining=snap.remaining,
            variants=[VariantStockOut(variant_id=v.id, label=v.label, stock=v.stock) for v in snap.variants],
        )
        return Response(dto.model_dump(mode="json"))
