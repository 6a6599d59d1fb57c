"""Request id propagation, body size limit and error rendering."""

import logging

import pytest
from rest_framework import exceptions

from gateway.exceptions import api_exception_handler
from gateway.logging_config import REQUEST_ID_CTX, RequestIdFilter
from retailhub.errors import Forbidden, InsufficientStock


@pytest.mark.django_db
def test_request_id_is_echoed(client):
    r = client.get("/api/orders/ping/", HTTP_X_REQUEST_ID="abc-123")
    assert r["X-Request-ID"] == "abc-123"


@pytest.mark.django_db
def test_request_id_is_generated(client):
    r = client.get("/api/orders/ping/")
    assert len(r["X-Request-ID"]) == 36


@pytest.mark.django_db
def test_oversized_body_is_rejected(api, settings):
    settings.API_MAX_BYTES = 10
    r = api.post("/api/orders/", data={"customer_id": "x" * 50, "items": []}, content_type="application/json")
    assert r.status_code == 413
    assert r.json() == {"detail": "PAYLOAD_TOO_LARGE"}


def test_domain_error_payload():
    r = api_exception_handler(InsufficientStock("Widget", 2), {})
    assert r.status_code == 422
    assert r.data["detail"] == "INSUFFICIENT_STOCK"
    assert r.data["available"] == 2


def test_drf_errors_are_normalized():
    r = api_exception_handler(exceptions.PermissionDenied(), {})
    assert r.status_code == 403
    assert r.data == {"detail": "FORBIDDEN"}


def test_permission_denied_renders_as_forbidden():
    denied = api_exception_handler(exceptions.PermissionDenied("nope"), {})
    ours = api_exception_handler(Forbidden(), {})
    assert (denied.status_code, denied.data) == (ours.status_code, ours.data) == (403, {"detail": "FORBIDDEN"})


def test_throttled_keeps_drf_status():
    r = api_exception_handler(exceptions.Throttled(wait=5), {})
    assert r.status_code == 429
    assert r.data == {"detail": "THROTTLED"}


def test_filter_stamps_request_id():
    token = REQUEST_ID_CTX.set("rid-1")
    try:
        record = logging.LogRecord("orders", logging.INFO, __file__, 1, "msg", None, None)
        assert RequestIdFilter().filter(record) is True
        assert record.request_id == "rid-1"
    finally:
        REQUEST_ID_CTX.reset(token)
