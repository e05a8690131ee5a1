"""Inventory service API built with FastAPI.

Owns the capacity and per-variant stock counters when the registration
gateway runs with ``USE_HTTP_ADAPTERS``. Each reserve endpoint is one guarded
update in ``repo.InventoryRepo``:

- 200 ``{"reserved": true}`` when the unit was taken,
- 409 ``{"reserved": false}`` when the guard failed (full / sold out),
- 404 when the event or variant has no counter row.

Reserve and release accept an ``Idempotency-Key`` header. A resent request
with the same key gets the first outcome back; reusing a key for a different
operation is a 422 ``IDEMPOTENCY_CONFLICT``.

Events are loaded (or reloaded) with ``PUT /events/{event_id}``.
"""

import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated, List, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pythonjsonlogger.json import JsonFormatter
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from repo import InventoryRepo, OperationKeyReused, UnknownCounter, engine, init_db

logger = logging.getLogger("inventory")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logger.addHandler(h)
    logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

DB_WAIT_SECS = float(os.getenv("DB_WAIT_SECS", "30"))


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # wait briefly for the database to accept connections
    deadline = time.monotonic() + DB_WAIT_SECS
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except OperationalError:
            if time.monotonic() > deadline:
                raise
            time.sleep(1)
    init_db()
    yield


app = FastAPI(title="Inventory Service", lifespan=lifespan)


class VariantIn(BaseModel):
    variant_id: str = Field(min_length=1, max_length=64)
    label: str = ""
    stock: int = Field(ge=0)


class EventIn(BaseModel):
    """Counters for one event.

    Attributes:
        capacity_limit: Maximum registrations (>= 1).
        capacity_used: Slots already taken; may not exceed the limit.
        variants: Merchandise variants with their starting stock.
    """

    capacity_limit: int = Field(ge=1)
    capacity_used: int = Field(default=0, ge=0)
    variants: List[VariantIn] = Field(default_factory=list)


class VariantOut(BaseModel):
    variant_id: str
    label: str
    stock: int


class EventOut(BaseModel):
    event_id: str
    capacity_limit: int
    capacity_used: int
    variants: List[VariantOut]


def _reserved(ok: bool, detail: str):
    if ok:
        return {"reserved": True}
    return JSONResponse(status_code=409, content={"reserved": False, "detail": detail})


@app.get("/health")
def health():
    return {"ok": True}


@app.put("/events/{event_id}", response_model=EventOut)
def load_event(event_id: str, body: EventIn):
    if body.capacity_used > body.capacity_limit:
        raise HTTPException(status_code=422, detail="CAPACITY_USED_EXCEEDS_LIMIT")
    repo = InventoryRepo()
    repo.upsert_event(
        event_id,
        body.capacity_limit,
        body.capacity_used,
        [(v.variant_id, v.label, v.stock) for v in body.variants],
    )
    logger.info("event counters loaded", extra={"event_id": event_id, "variants": len(body.variants)})
    return repo.snapshot(event_id)


@app.get("/events/{event_id}", response_model=EventOut)
def get_event(event_id: str):
    snap = InventoryRepo().snapshot(event_id)
    if snap is None:
        raise HTTPException(status_code=404, detail="EVENT_NOT_FOUND")
    return snap


IdempotencyKeyHeader = Annotated[Optional[str], Header(alias="Idempotency-Key", max_length=128)]


def _counter_call(fn, not_found: str, *args):
    try:
        return fn(*args)
    except UnknownCounter:
        raise HTTPException(status_code=404, detail=not_found)
    except OperationKeyReused:
        raise HTTPException(status_code=422, detail="IDEMPOTENCY_CONFLICT")


@app.post("/events/{event_id}/capacity/reserve")
def reserve_capacity(event_id: str, idempotency_key: IdempotencyKeyHeader = None):
    ok = _counter_call(InventoryRepo().reserve_capacity, "EVENT_NOT_FOUND", event_id, idempotency_key)
    return _reserved(ok, "EVENT_FULL")


@app.post("/events/{event_id}/capacity/release")
def release_capacity(event_id: str, idempotency_key: IdempotencyKeyHeader = None):
    released = _counter_call(InventoryRepo().release_capacity, "EVENT_NOT_FOUND", event_id, idempotency_key)
    if not released:
        logger.error("capacity release underflow", extra={"event_id": event_id})
    return {"released": released}


@app.post("/events/{event_id}/variants/{variant_id}/reserve")
def reserve_variant(event_id: str, variant_id: str, idempotency_key: IdempotencyKeyHeader = None):
    ok = _counter_call(
        InventoryRepo().reserve_variant, "VARIANT_NOT_FOUND", event_id, variant_id, idempotency_key
    )
    return _reserved(ok, "VARIANT_SOLD_OUT")


@app.post("/events/{event_id}/variants/{variant_id}/release")
def release_variant(event_id: str, variant_id: str, idempotency_key: IdempotencyKeyHeader = None):
    released = _counter_call(
        InventoryRepo().release_variant, "VARIANT_NOT_FOUND", event_id, variant_id, idempotency_key
    )
    return {"released": released}


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    started = time.perf_counter()
    try:
        response = await call_next(request)
    finally:
        logger.info(
            "request handled",
            extra={
                "request_id": rid,
                "path": request.url.path,
                "method": request.method,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
    response.headers["X-Request-ID"] = rid
    return response
