"""HTTP clients for the inventory and notification services.

``httpx.Client.request`` is monkeypatched, so no network is involved. The
breakers are module-level singletons and are reset before each test.
"""

import httpx
import pytest

from apps.registrations import http_adapters
from apps.registrations.domain import PaymentState, Registration
from apps.registrations.errors import StorageFailure
from apps.registrations.http_adapters import CircuitBreaker, HttpInventoryClient, HttpNotifierClient


class DummyResp:
    def __init__(self, status_code=200, json_data=None):
        self.status_code = status_code
        self._json = json_data or {}

    def json(self):
        return self._json


@pytest.fixture(autouse=True)
def fast_retries(settings, monkeypatch):
    settings.HTTP_RETRY_MAX = 2
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
    http_adapters._inventory_cb.reset()
    http_adapters._notifications_cb.reset()
    monkeypatch.setattr("time.sleep", lambda *a, **k: None, raising=True)


def respond(monkeypatch, *responses):
    calls = []
    seq = iter(responses)

    def fake_request(self, method, url, json=None, headers=None, **kw):
        calls.append((method, url, json, headers))
        nxt = next(seq)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    return calls


def test_reserve_capacity_ok(monkeypatch):
    calls = respond(monkeypatch, DummyResp(200, {"reserved": True}))
    assert HttpInventoryClient(base_url="http://inventory:9001").try_reserve_capacity("ev-1") is True
    method, url, _, _ = calls[0]
    assert method == "POST"
    assert url == "http://inventory:9001/events/ev-1/capacity/reserve"


def test_reserve_conflict_is_false_without_retry(monkeypatch):
    calls = respond(monkeypatch, DummyResp(409, {"reserved": False}))
    assert HttpInventoryClient(base_url="http://x").try_reserve_variant_stock("ev-1", "v-1") is False
    assert len(calls) == 1
    assert http_adapters._inventory_cb.state == "CLOSED"


def test_retries_on_5xx_then_succeeds(monkeypatch):
    calls = respond(monkeypatch, DummyResp(503), DummyResp(200, {"reserved": True}))
    assert HttpInventoryClient(base_url="http://x").try_reserve_capacity("ev-1") is True
    assert len(calls) == 2
    assert calls[1][3]["X-Retry-Count"] == "1"


def test_transport_errors_become_storage_failure(monkeypatch):
    respond(monkeypatch, *[httpx.ConnectError("boom")] * 3)
    with pytest.raises(StorageFailure):
        HttpInventoryClient(base_url="http://x").release_capacity("ev-1")


def test_4xx_is_not_retried(monkeypatch):
    calls = respond(monkeypatch, DummyResp(400))
    with pytest.raises(StorageFailure):
        HttpInventoryClient(base_url="http://x").release_variant_stock("ev-1", "v-1")
    assert len(calls) == 1


def test_snapshot_maps_payload(monkeypatch):
    respond(
        monkeypatch,
        DummyResp(
            200,
            {
                "event_id": "ev-1",
                "capacity_limit": 10,
                "capacity_used": 4,
                "variants": [{"variant_id": "v-1", "label": "S", "stock": 3}],
            },
        ),
    )
    snap = HttpInventoryClient(base_url="http://x").snapshot("ev-1")
    assert snap.remaining == 6
    assert snap.stock_of("v-1") == 3


def test_snapshot_unknown_event(monkeypatch):
    respond(monkeypatch, DummyResp(404))
    assert HttpInventoryClient(base_url="http://x").snapshot("missing") is None


def test_request_id_is_propagated(monkeypatch):
    calls = respond(monkeypatch, DummyResp(200, {"reserved": True}))
    token = http_adapters.REQUEST_ID_CTX.set("rid-123")
    try:
        HttpInventoryClient(base_url="http://x").try_reserve_capacity("ev-1")
    finally:
        http_adapters.REQUEST_ID_CTX.reset(token)
    assert calls[0][3]["X-Request-ID"] == "rid-123"


def test_notifier_posts_registration(monkeypatch):
    calls = respond(monkeypatch, DummyResp(202))
    reg = Registration(
        id="r-1", event_id="ev-1", participant_id="p-1", ticket_code="EVT-1", payment_state=PaymentState.APPROVED
    )
    HttpNotifierClient(base_url="http://notify").payment_approved(reg)
    method, url, payload, _ = calls[0]
    assert url == "http://notify/notifications"
    assert payload["kind"] == "payment_approved"
    assert payload["ticket_code"] == "EVT-1"


def test_breaker_opens_after_threshold_and_half_opens():
    cb = CircuitBreaker("t", fail_threshold=2, reset_timeout=0.0)
    cb.before_call()
    cb.on_failure()
    cb.on_failure()
    # zero timeout: next read moves straight to HALF_OPEN
    assert cb.state == "HALF_OPEN"
    cb.before_call()
    with pytest.raises(StorageFailure):
        cb.before_call()
    cb.on_success()
    assert cb.state == "CLOSED"


def test_open_breaker_refuses_calls():
    cb = CircuitBreaker("t", fail_threshold=1, reset_timeout=60.0)
    cb.on_failure()
    with pytest.raises(StorageFailure):
        cb.before_call()


def keyed_counter(monkeypatch, *failures):
    """Fake inventory counter that applies each Idempotency-Key once.

    Each entry in ``failures`` is raised after the matching attempt has
    already been applied, the way a response lost in transit looks.
    """
    server = {"used": 0, "seen": {}, "keys": []}
    lost = iter(failures)

    def fake_request(self, method, url, json=None, headers=None, **kw):
        key = headers["Idempotency-Key"]
        server["keys"].append(key)
        if key not in server["seen"]:
            server["used"] += 1 if url.endswith("/reserve") else -1
            server["seen"][key] = True
        exc = next(lost, None)
        if exc is not None:
            raise exc
        return DummyResp(200, {"reserved": True, "released": True})

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    return server


def test_reserve_resent_after_lost_response_takes_one_slot(monkeypatch):
    server = keyed_counter(monkeypatch, httpx.ReadTimeout("lost"))
    assert HttpInventoryClient(base_url="http://x").try_reserve_capacity("ev-1") is True
    assert len(server["keys"]) == 2
    assert len(set(server["keys"])) == 1
    assert server["used"] == 1


def test_release_resent_after_lost_response_returns_one_unit(monkeypatch):
    server = keyed_counter(monkeypatch, httpx.ReadTimeout("lost"))
    server["used"] = 1
    HttpInventoryClient(base_url="http://x").release_variant_stock("ev-1", "v-1")
    assert server["used"] == 0


def test_each_operation_gets_its_own_key(monkeypatch):
    server = keyed_counter(monkeypatch)
    client = HttpInventoryClient(base_url="http://x")
    client.try_reserve_capacity("ev-1")
    client.try_reserve_capacity("ev-1")
    assert len(set(server["keys"])) == 2
    assert server["used"] == 2


def test_snapshot_is_not_keyed(monkeypatch):
    calls = respond(monkeypatch, DummyResp(404))
    HttpInventoryClient(base_url="http://x").snapshot("ev-1")
    assert "Idempotency-Key" not in calls[0][3]
