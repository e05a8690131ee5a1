"""Idempotency keys for the registration endpoint.

A client that retries ``POST .../registrations/`` with the same
``Idempotency-Key`` and body gets the stored response back instead of a
second ``ALREADY_REGISTERED``. The key is scoped to the caller and event by
hashing them into the request fingerprint, so reusing a key with another
body (or for another participant) is a conflict.
"""

import hashlib
import json

from django.db import IntegrityError, transaction

from .models import IdempotencyKey


class IdempotencyConflict(Exception):
    """Key reused with a different request fingerprint."""


def _hash(payload: dict) -> str:
    """Stable SHA-256 of a JSON-serializable payload (sorted keys, compact)."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@transaction.atomic
def get_or_create_idempotent(key: str, payload: dict) -> tuple[bool, IdempotencyKey]:
    """Fetch or create the record for ``key``.

    Returns:
        tuple[bool, IdempotencyKey]: ``(existing, rec)``; ``existing`` is
        True when an earlier request already created the record.

    Raises:
        IdempotencyConflict: The key exists with a different fingerprint.
    """
    h = _hash(payload)
    try:
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(
                key=key, request_hash=h, response_status=0, response_body={}
            )
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h:
            raise IdempotencyConflict(key)
        return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict, registration_id=None) -> None:
    """Store the response so later retries can replay it."""
    rec.response_status = status_code
    rec.response_body = body
    if registration_id is not None:
        rec.registration_id = registration_id
    rec.save(update_fields=["response_status", "response_body", "registration_id"])


def discard(rec: IdempotencyKey) -> None:
    """Drop a record whose request died without a response to replay."""
    IdempotencyKey.objects.filter(pk=rec.pk, response_status=0).delete()
