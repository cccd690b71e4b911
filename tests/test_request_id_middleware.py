from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

from gatekeeper.main import app


client = TestClient(app)


def test_preserves_incoming_request_id_header():
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing():
    resp = client.get("/health")

    assert resp.status_code == 200
    generated = resp.headers.get("X-Request-ID")
    assert uuid.UUID(generated)
    assert resp.headers.get("X-Request-Duration-ms") is not None


def test_replaces_oversized_request_id():
    resp = client.get("/health", headers={"X-Request-ID": "x" * 500})

    assert uuid.UUID(resp.headers["X-Request-ID"])


def test_request_id_on_denied_requests():
    resp = client.get("/v1/challenge", headers={"X-Request-ID": "req-denied"})

    assert resp.status_code == 403
    assert resp.headers.get("X-Request-ID") == "req-denied"
