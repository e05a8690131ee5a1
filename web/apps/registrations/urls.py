from django.urls import path

from .views import (
    AttendanceView,
    CheckInView,
    EventInventoryView,
    EventRegistrationsView,
    MyRegistrationView,
    PaymentDecisionView,
    PaymentProofView,
)

app_name = "registrations"

urlpatterns = [
    path("events/<uuid:event_id>/registrations/", EventRegistrationsView.as_view(), name="register"),
    path("events/<uuid:event_id>/registrations/me/", MyRegistrationView.as_view(), name="my-registration"),
    path(
        "events/<uuid:event_id>/registrations/me/payment-proof/",
        PaymentProofView.as_view(),
        name="payment-proof",
    ),
    path("events/<uuid:event_id>/check-in/", CheckInView.as_view(), name="check-in"),
    path("events/<uuid:event_id>/inventory/", EventInventoryView.as_view(), name="inventory"),
    path(
        "registrations/<uuid:registration_id>/payment/",
        PaymentDecisionView.as_view(),
        name="payment-decision",
    ),
    path(
        "registrations/<uuid:registration_id>/attendance/",
        AttendanceView.as_view(),
        name="attendance",
    ),
]
