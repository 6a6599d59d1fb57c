"""Idempotency utilities for order creation.

A client that retries ``POST /api/orders/`` with the same
``Idempotency-Key`` must not create a second order or reserve stock
twice. The first request records the key with a hash of its payload and,
once it finishes, the response it produced. Retries with the same payload
replay that response; retries with a different payload are rejected.
"""

import hashlib
import json

from django.db import IntegrityError, transaction

from retailhub.errors import Conflict

from .models import IdempotencyKey


def _hash(payload: dict) -> str:
    """Compute a stable SHA-256 hash for a JSON-serializable payload.

    The payload is serialized with sorted keys and compact separators so
    equal payloads always hash the same.
    """
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@transaction.atomic
def get_or_create_idempotent(key: str, payload: dict):
    """Get-or-create the idempotency record for ``key``.

    The create runs in a nested savepoint so an ``IntegrityError`` only
    rolls back that block; the existing row is then read under
    ``SELECT ... FOR UPDATE``.

    Args:
        key: Client-provided idempotency key.
        payload: Request payload used to compute the request hash.

    Returns:
        tuple[bool, IdempotencyKey]: ``(existing, rec)``. ``existing`` is
        False when this call created the record and the caller must
        process the request and ``finalize`` it; True when ``rec`` holds a
        finished response to replay.

    Raises:
        Conflict: ``IDEMPOTENCY_CONFLICT`` if the key was used with another
            payload, ``IDEMPOTENCY_IN_PROGRESS`` if the first request has
            not finished yet.
    """
    h = _hash(payload)

    try:
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(key=key, request_hash=h)
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h:
            raise Conflict("idempotency key reused with a different payload", code="IDEMPOTENCY_CONFLICT")
        if rec.response_status == 0:
            raise Conflict("request with this idempotency key is still running", code="IDEMPOTENCY_IN_PROGRESS")
        return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict, order_id=None):
    """Store the final response for an idempotent request.

    Args:
        rec: The record created by ``get_or_create_idempotent``.
        status_code: HTTP status of the response.
        body: JSON-serializable response body.
        order_id: The created order, if any.
    """
    rec.response_status = status_code
    rec.response_body = body
    if order_id is not None:
        rec.order_id = order_id
    rec.save(update_fields=["response_status", "response_body", "order"])
