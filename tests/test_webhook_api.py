"""Webhook endpoint: signature boundary and acknowledgement semantics."""

import hashlib
import hmac
import json
import time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from conftest import WEBHOOK_SECRET, add_account, add_payment_session, add_product, checkout_event
from marketpay.services.fulfillment.api import create_app
from marketpay.services.fulfillment.models import Order


def _signed(event: dict, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> tuple[str, dict]:
    payload = json.dumps(event)
    timestamp = timestamp or int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return payload, {"Stripe-Signature": f"t={timestamp},v1={digest}", "Content-Type": "application/json"}


@pytest.fixture
def client(context, storage):
    add_account(context.session_factory, "seller-1")
    add_product(context, storage)
    add_payment_session(context)
    return TestClient(create_app(context))


def _orders(context) -> int:
    with context.session_factory() as db:
        return db.execute(select(func.count()).select_from(Order)).scalar_one()


def test_valid_event_is_fulfilled(client, context):
    payload, headers = _signed(checkout_event())

    resp = client.post("/webhooks/stripe", content=payload, headers=headers)

    assert resp.status_code == 200
    assert resp.json() == {"received": True, "outcome": "fulfilled"}
    assert _orders(context) == 1


def test_bad_signature_is_rejected_before_processing(client, context):
    payload, headers = _signed(checkout_event(), secret="whsec_wrong")

    resp = client.post("/webhooks/stripe", content=payload, headers=headers)

    assert resp.status_code == 400
    assert _orders(context) == 0


def test_missing_signature_header_is_rejected(client):
    resp = client.post("/webhooks/stripe", content=json.dumps(checkout_event()))
    assert resp.status_code == 400


def test_tampered_body_is_rejected(client, context):
    payload, headers = _signed(checkout_event())
    tampered = payload.replace("prod-1", "prod-2")

    resp = client.post("/webhooks/stripe", content=tampered, headers=headers)

    assert resp.status_code == 400


def test_stale_timestamp_is_rejected(client):
    payload, headers = _signed(checkout_event(), timestamp=int(time.time()) - 3600)
    assert client.post("/webhooks/stripe", content=payload, headers=headers).status_code == 400


def test_other_event_types_are_acknowledged_and_ignored(client, context):
    event = checkout_event()
    event["type"] = "payment_intent.created"
    payload, headers = _signed(event)

    resp = client.post("/webhooks/stripe", content=payload, headers=headers)

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    assert _orders(context) == 0


def test_missing_metadata_is_acknowledged(client, context):
    payload, headers = _signed(checkout_event(buyer_email=None))

    resp = client.post("/webhooks/stripe", content=payload, headers=headers)

    assert resp.status_code == 200
    assert _orders(context) == 0


def test_duplicate_delivery_is_acknowledged_once_fulfilled(client, context):
    payload, headers = _signed(checkout_event())

    first = client.post("/webhooks/stripe", content=payload, headers=headers)
    second = client.post("/webhooks/stripe", content=payload, headers=headers)

    assert first.json()["outcome"] == "fulfilled"
    assert second.status_code == 200
    assert second.json()["outcome"] == "duplicate"
    assert _orders(context) == 1


def test_storage_outage_asks_sender_to_retry(client, context, storage):
    storage.unavailable = True
    payload, headers = _signed(checkout_event())

    resp = client.post("/webhooks/stripe", content=payload, headers=headers)

    assert resp.status_code == 503
    assert _orders(context) == 0


def test_health_and_metrics(client):
    assert client.get("/health").json() == {"ok": True}
    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert b"webhook_requests_total" in metrics.content
