"""Notification outbox draining and email rendering."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from marketpay.services.notification.api import create_app
from marketpay.services.notification.models import NotificationOutbox
from marketpay.services.notification.service import NotificationService, enqueue_notification
from marketpay.services.notification.templates import render


def _enqueue(session_factory, kind="sale_notification", recipient="seller-1@sellers.example.com", **payload):
    payload = payload or {"product_title": "Lo-fi Beats Vol. 1", "gross_cents": 10000, "net_cents": 8480}
    with session_factory() as db:
        intent = enqueue_notification(db, kind, recipient, payload)
        db.commit()
    return intent.id


def _row(session_factory, intent_id) -> NotificationOutbox:
    with session_factory() as db:
        return db.get(NotificationOutbox, intent_id)


@pytest.mark.asyncio
async def test_drain_sends_and_marks_intents(session_factory, mailer):
    intent_id = _enqueue(session_factory)
    service = NotificationService(session_factory, mailer)

    assert await service.drain_once() == 1
    assert await service.drain_once() == 0

    [message] = mailer.sent
    assert message.to == "seller-1@sellers.example.com"
    assert message.subject == "New Sale: Lo-fi Beats Vol. 1"
    assert "$84.80" in message.html
    row = _row(session_factory, intent_id)
    assert row.status == "SENT"
    assert row.sent_at is not None


@pytest.mark.asyncio
async def test_failed_delivery_is_retried_then_parked(session_factory, mailer):
    intent_id = _enqueue(session_factory)
    mailer.failing_recipients.add("seller-1@sellers.example.com")
    service = NotificationService(session_factory, mailer, max_attempts=2)

    assert await service.drain_once() == 0
    row = _row(session_factory, intent_id)
    assert row.status == "PENDING"
    assert row.attempts == 1
    assert "rejected" in row.last_error

    assert await service.drain_once() == 0
    row = _row(session_factory, intent_id)
    assert row.status == "FAILED"
    assert row.attempts == 2

    mailer.failing_recipients.clear()
    assert await service.drain_once() == 0
    assert mailer.sent == []


@pytest.mark.asyncio
async def test_one_bad_intent_does_not_block_the_batch(session_factory, mailer):
    bad = _enqueue(session_factory, kind="no_such_template", note="x")
    good = _enqueue(session_factory, kind="min_balance_not_reached", balance_cents=999, minimum_cents=1000)

    assert await NotificationService(session_factory, mailer).drain_once() == 1

    assert _row(session_factory, bad).status == "PENDING"
    assert _row(session_factory, good).status == "SENT"
    assert "$9.99" in mailer.sent[0].html


def test_templates_escape_user_content():
    subject, body = render(
        "purchase_confirmation",
        {
            "product_title": "<script>alert(1)</script>",
            "gross_cents": 10000,
            "access_url": "https://shop.test/access.html?token=abc",
        },
    )
    assert "<script>" not in body
    assert "&lt;script&gt;" in body
    assert "$100.00" in body
    assert 'href="https://shop.test/access.html?token=abc"' in body


def test_payout_templates_show_net_amount():
    subject, body = render(
        "payout_notification",
        {"first_name": "Ada", "net_cents": 916, "destination": "ada@paypal.example.com", "listings_count": 2},
    )
    assert subject == "Your Payout Has Been Processed"
    assert "Hello Ada," in body
    assert "$9.16" in body


def test_unknown_kind_is_rejected():
    with pytest.raises(ValueError):
        render("carrier_pigeon", {})


def test_drain_endpoint(context, mailer):
    _enqueue(context.session_factory)
    with TestClient(create_app(context, run_drainer=False)) as client:
        resp = client.post("/outbox/drain")
        assert client.get("/health").json() == {"ok": True}
    assert resp.json() == {"sent": 1}
    assert len(mailer.sent) == 1
    with context.session_factory() as db:
        assert db.execute(select(NotificationOutbox.status)).scalar_one() == "SENT"
