"""Service provider helpers for wiring the registration services with ports.

The factories return services wired to the Django stores, or, when
``settings.USE_HTTP_ADAPTERS`` is truthy, to the HTTP clients for the
inventory and notifications services. The event catalog and the
registration ledger always live in this service's database.
"""

from django.conf import settings

from .adapters import LoggingNotifier
from .attendance import AttendanceService
from .domain import InventoryStore, Notifier
from .http_adapters import HttpInventoryClient, HttpNotifierClient
from .inventory import DjangoInventoryStore
from .orchestrator import RegistrationService
from .payments import PaymentService
from .repository import DjangoEventCatalog, DjangoRegistrationLedger


def _use_http() -> bool:
    return bool(getattr(settings, "USE_HTTP_ADAPTERS", False))


def get_inventory() -> InventoryStore:
    if _use_http():
        return HttpInventoryClient()
    return DjangoInventoryStore()


def get_notifier() -> Notifier:
    if _use_http():
        return HttpNotifierClient()
    return LoggingNotifier()


def get_registration_service() -> RegistrationService:
    """Return a ``RegistrationService`` for the current settings."""
    return RegistrationService(
        catalog=DjangoEventCatalog(),
        inventory=get_inventory(),
        ledger=DjangoRegistrationLedger(),
        notifier=get_notifier(),
        ticket_prefix=getattr(settings, "TICKET_CODE_PREFIX", "EVT"),
        max_code_attempts=getattr(settings, "TICKET_CODE_MAX_ATTEMPTS", 5),
    )


def get_payment_service() -> PaymentService:
    return PaymentService(
        ledger=DjangoRegistrationLedger(),
        inventory=get_inventory(),
        notifier=get_notifier(),
    )


def get_attendance_service() -> AttendanceService:
    return AttendanceService(catalog=DjangoEventCatalog(), ledger=DjangoRegistrationLedger())
