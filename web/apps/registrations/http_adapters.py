"""HTTP adapter clients with retries, circuit breakers, and context headers.

Concrete ``httpx`` clients for the ports whose backing service runs out of
process:

- ``HttpInventoryClient`` talks to the inventory service, which owns the
    capacity and stock counters when ``USE_HTTP_ADAPTERS`` is on. A 409 from
    a reserve endpoint is the guard failing (full / sold out) and maps to
    ``False``; it is a business outcome, not a circuit failure. Every
    reserve and release carries its own ``Idempotency-Key``, the same on
    each retry, so a request resent after a lost response is applied once.
- ``HttpNotifierClient`` posts registration and payment notifications.

Both propagate ``X-Request-ID`` from the ContextVar set by the gateway
middleware, share one circuit breaker per downstream service, and retry
transport errors and 5xx with capped exponential backoff. Failures that
survive the retries surface as ``StorageFailure`` so the orchestrator can
compensate.
"""

import threading
import time
import uuid
from typing import Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from .domain import EventCapacity, InventoryStore, Notifier, Registration, Variant
from .errors import StorageFailure

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED -> OPEN when consecutive failures reach ``fail_threshold``.
    - OPEN -> HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN -> CLOSED on a successful probe, back to OPEN on failure.
      Only one probe may be in flight at a time.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Return the state the call runs under.

        Raises:
            StorageFailure: If the circuit is OPEN or a HALF_OPEN probe is busy.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise StorageFailure(f"{self.name} unavailable (circuit open)")
            if st == "HALF_OPEN":
                if self._probe_in_flight:
                    raise StorageFailure(f"{self.name} unavailable (probe in flight)")
                self._probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (
                self._failures >= self.fail_threshold and self._state != "OPEN"
            ):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._probe_in_flight = False

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._probe_in_flight = False

    def reset(self):
        self.on_success()


def _breaker(name: str) -> CircuitBreaker:
    return CircuitBreaker(
        name,
        getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
        getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
    )


_inventory_cb = _breaker("inventory")
_notifications_cb = _breaker("notifications")


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Base headers: ``X-Request-ID`` when a request is in flight, plus extras."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy() -> tuple[int, float, float]:
    """Return ``(max_retries, backoff_base, max_sleep)`` from settings."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 3),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
        getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    if exc is not None:
        return True
    return resp is not None and 500 <= resp.status_code < 600


def send_with_retry(
    breaker: CircuitBreaker,
    method: str,
    url: str,
    *,
    timeout: float,
    json: Optional[dict] = None,
    ok_statuses: tuple[int, ...] = (200,),
    extra_headers: Optional[dict] = None,
) -> httpx.Response:
    """Issue one logical request through ``breaker`` with retries.

    ``extra_headers`` are sent unchanged on every attempt. Any status in
    ``ok_statuses`` is returned to the caller and counts as a
    success for the breaker. Transport errors and 5xx are retried up to
    ``HTTP_RETRY_MAX`` times; anything else, or the last failed attempt,
    raises ``StorageFailure``.
    """
    max_retries, backoff, cap = _retry_policy()
    tries = 0
    state = breaker.before_call()
    headers = _request_headers({**(extra_headers or {}), "X-Circuit-State": state, "X-Retry-Count": "0"})

    try:
        with httpx.Client(timeout=timeout) as client:
            while True:
                resp = None
                exc = None
                try:
                    resp = client.request(method, url, json=json, headers=headers)
                    if resp.status_code in ok_statuses:
                        breaker.on_success()
                        return resp
                except httpx.RequestError as e:
                    exc = e

                tries += 1
                headers["X-Retry-Count"] = str(tries)

                if tries > max_retries or not _should_retry(resp, exc):
                    breaker.on_failure()
                    detail = repr(exc) if exc else f"HTTP {resp.status_code}"
                    raise StorageFailure(f"{breaker.name} call failed: {detail}") from exc

                sleep_s = backoff * (2 ** (tries - 1))
                if sleep_s > 0:
                    time.sleep(min(sleep_s, cap))
    finally:
        breaker.on_finish()


# ---------------- Inventory Adapter ---------------- #

class HttpInventoryClient(InventoryStore):
    """``InventoryStore`` backed by the inventory service."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.INVENTORY_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def _call(self, method: str, path: str, ok_statuses=(200,), keyed: bool = False) -> httpx.Response:
        extra = {"Idempotency-Key": str(uuid.uuid4())} if keyed else None
        return send_with_retry(
            _inventory_cb,
            method,
            f"{self.base_url}{path}",
            timeout=self.timeout,
            ok_statuses=ok_statuses,
            extra_headers=extra,
        )

    def try_reserve_capacity(self, event_id: str) -> bool:
        resp = self._call("POST", f"/events/{event_id}/capacity/reserve", ok_statuses=(200, 409), keyed=True)
        return resp.status_code == 200 and bool(resp.json().get("reserved", False))

    def release_capacity(self, event_id: str) -> None:
        self._call("POST", f"/events/{event_id}/capacity/release", keyed=True)

    def try_reserve_variant_stock(self, event_id: str, variant_id: str) -> bool:
        resp = self._call(
            "POST", f"/events/{event_id}/variants/{variant_id}/reserve", ok_statuses=(200, 409), keyed=True
        )
        return resp.status_code == 200 and bool(resp.json().get("reserved", False))

    def release_variant_stock(self, event_id: str, variant_id: str) -> None:
        self._call("POST", f"/events/{event_id}/variants/{variant_id}/release", keyed=True)

    def snapshot(self, event_id: str) -> Optional[EventCapacity]:
        resp = self._call("GET", f"/events/{event_id}", ok_statuses=(200, 404))
        if resp.status_code == 404:
            return None
        data = resp.json()
        return EventCapacity(
            event_id=str(data["event_id"]),
            capacity_limit=int(data["capacity_limit"]),
            capacity_used=int(data["capacity_used"]),
            variants=tuple(
                Variant(id=str(v["variant_id"]), label=v.get("label", ""), stock=int(v["stock"]))
                for v in data.get("variants", [])
            ),
        )


# ---------------- Notifications Adapter ---------------- #

class HttpNotifierClient(Notifier):
    """``Notifier`` that posts to the notifications service."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.NOTIFICATIONS_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def _send(self, kind: str, registration: Registration) -> None:
        payload = {
            "kind": kind,
            "registration_id": registration.id,
            "event_id": registration.event_id,
            "participant_id": registration.participant_id,
            "email": registration.contact_email,
            "ticket_code": registration.ticket_code,
            "payment_state": registration.payment_state.value,
            "amount_due": str(registration.amount_due),
            "ticket_artifact": registration.ticket_artifact or None,
        }
        send_with_retry(
            _notifications_cb,
            "POST",
            f"{self.base_url}/notifications",
            timeout=self.timeout,
            json=payload,
            ok_statuses=(200, 201, 202),
        )

    def registration_completed(self, registration: Registration) -> None:
        self._send("registration_completed", registration)

    def payment_approved(self, registration: Registration) -> None:
        self._send("payment_approved", registration)
