"""Weekly payout batch and the PayPal payout client."""

import json

import httpx
import pytest
from sqlalchemy import select

from conftest import NOW, add_account
from marketpay.common.errors import PayoutNetworkError
from marketpay.services.ledger.models import LedgerTransaction, PayoutRecord, UserAccount
from marketpay.services.notification.models import NotificationOutbox
from marketpay.services.payouts.client import PayoutRequest, PayPalPayoutClient, classify_payout_error
from marketpay.services.payouts.models import PayoutError, PayoutSession
from marketpay.services.payouts.service import PayoutBatchProcessor


def _seller(context, user_id, balance_cents, payout_email=None, **fields):
    add_account(
        context.session_factory,
        user_id,
        balance_cents=balance_cents,
        payout_email=payout_email if payout_email is not None else f"{user_id}@paypal.example.com",
        **fields,
    )


def _intents(context, kind):
    with context.session_factory() as db:
        return db.execute(select(NotificationOutbox).where(NotificationOutbox.kind == kind)).scalars().all()


@pytest.mark.asyncio
async def test_exact_minimum_is_paid_and_debited_gross(context, payout_network):
    _seller(context, "seller-1", 1000)

    summary = await PayoutBatchProcessor(context).run()

    assert summary.successful_payouts == 1
    assert summary.total_amount_cents == 1000
    request = payout_network.requests[0]
    assert request.amount == "9.16"
    assert request.destination == "seller-1@paypal.example.com"
    assert request.sender_batch_id == f"payout_{int(NOW.timestamp() * 1000)}_seller-1"
    with context.session_factory() as db:
        assert db.get(UserAccount, "seller-1").balance_cents == 0
        line = db.execute(select(LedgerTransaction)).scalar_one()
        record = db.execute(select(PayoutRecord)).scalar_one()
    assert line.type == "payout"
    assert line.balance_delta_cents == -1000
    assert line.fee_cents == 84
    assert line.amount_cents == 916
    assert record.batch_id == "PB-1"
    assert record.net_cents == 916
    [notice] = _intents(context, "payout_notification")
    assert notice.payload["net_cents"] == 916
    assert notice.payload["first_name"] == "Ada"


@pytest.mark.asyncio
async def test_below_minimum_gets_a_notice_and_no_transfer(context, payout_network):
    _seller(context, "seller-1", 999)

    summary = await PayoutBatchProcessor(context).run()

    assert payout_network.requests == []
    assert summary.below_minimum_notices == 1
    assert summary.processed_users == 0
    [notice] = _intents(context, "min_balance_not_reached")
    assert notice.payload == {"balance_cents": 999, "minimum_cents": 1000}
    with context.session_factory() as db:
        assert db.get(UserAccount, "seller-1").balance_cents == 999


@pytest.mark.asyncio
async def test_one_failure_does_not_stop_the_batch(context, payout_network):
    """Largest balance first; the failing user keeps their balance."""

    _seller(context, "seller-a", 5000)
    _seller(context, "seller-b", 3000)
    _seller(context, "seller-c", 2000)
    payout_network.failures["seller-a"] = PayoutNetworkError("insufficient funds", error_type="insufficient_funds")

    summary = await PayoutBatchProcessor(context).run()

    assert [r.user_id for r in payout_network.requests] == ["seller-a", "seller-b", "seller-c"]
    assert summary.processed_users == 3
    assert summary.successful_payouts == 2
    assert summary.failed_user_ids == ["seller-a"]
    assert summary.total_amount_cents == 5000
    with context.session_factory() as db:
        balances = {a.id: a.balance_cents for a in db.execute(select(UserAccount)).scalars()}
        error = db.execute(select(PayoutError)).scalar_one()
        run = db.get(PayoutSession, summary.session_id)
    assert balances == {"seller-a": 5000, "seller-b": 0, "seller-c": 0}
    assert error.user_id == "seller-a"
    assert error.error_type == "insufficient_funds"
    assert error.session_id == summary.session_id
    assert run.status == "completed"
    assert run.successful_payouts == 2
    assert run.failed_payouts == 1
    assert _intents(context, "payout_failed") == []


@pytest.mark.asyncio
async def test_invalid_receiver_asks_seller_to_fix_their_email(context, payout_network):
    _seller(context, "seller-1", 2500)
    payout_network.failures["seller-1"] = PayoutNetworkError("receiver unregistered", error_type="invalid_receiver")

    await PayoutBatchProcessor(context).run()

    [notice] = _intents(context, "payout_failed")
    assert notice.recipient == "seller-1@paypal.example.com"
    assert notice.payload["gross_cents"] == 2500


@pytest.mark.asyncio
async def test_malformed_destination_is_recorded_without_calling_the_network(context, payout_network):
    _seller(context, "seller-1", 2500, payout_email="not-an-address")
    _seller(context, "seller-2", 500, payout_email="also bad")
    _seller(context, "seller-3", 2500, payout_email="   ")

    summary = await PayoutBatchProcessor(context).run()

    assert payout_network.requests == []
    assert summary.failed_user_ids == ["seller-1"]
    assert summary.below_minimum_notices == 0
    with context.session_factory() as db:
        error = db.execute(select(PayoutError)).scalar_one()
    assert error.error_type == "invalid_destination"


@pytest.mark.asyncio
async def test_sellers_are_processed_across_chunks(context, payout_network):
    context.settings.payout_chunk_size = 1
    for i, balance in enumerate([1500, 4000, 2500]):
        _seller(context, f"seller-{i}", balance)

    summary = await PayoutBatchProcessor(context).run()

    assert summary.successful_payouts == 3
    assert [r.user_id for r in payout_network.requests] == ["seller-1", "seller-2", "seller-0"]


@pytest.mark.asyncio
async def test_zero_balances_and_missing_destinations_are_ignored(context, payout_network):
    _seller(context, "empty", 0)
    add_account(context.session_factory, "no-destination", balance_cents=5000)

    summary = await PayoutBatchProcessor(context).run()

    assert summary.processed_users == 0
    assert payout_network.requests == []


def test_classify_payout_error():
    assert classify_payout_error(422, {"name": "INSUFFICIENT_FUNDS"}) == "insufficient_funds"
    assert classify_payout_error(422, {"name": "RECEIVER_UNREGISTERED"}) == "invalid_receiver"
    assert classify_payout_error(400, {"details": [{"issue": "Receiver is invalid"}]}) == "invalid_receiver"
    assert classify_payout_error(500, None, "upstream exploded") == "unknown"


def _paypal(settings, handler):
    settings.paypal_client_id = "client"
    settings.paypal_client_secret = "secret"
    return PayPalPayoutClient(settings, transport=httpx.MockTransport(handler))


REQUEST = PayoutRequest(
    user_id="seller-1",
    destination="seller-1@paypal.example.com",
    amount="9.16",
    currency="USD",
    sender_batch_id="payout_1_seller-1",
)


@pytest.mark.asyncio
async def test_paypal_client_authenticates_and_posts_one_item(settings):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "tok"})
        return httpx.Response(201, json={"batch_header": {"payout_batch_id": "PB-9", "batch_status": "PENDING"}})

    receipt = await _paypal(settings, handler).send_payout(REQUEST)

    assert receipt.batch_id == "PB-9"
    payout_call = seen[1]
    assert payout_call.headers["Authorization"] == "Bearer tok"
    body = json.loads(payout_call.content)
    assert body["sender_batch_header"]["sender_batch_id"] == "payout_1_seller-1"
    assert body["items"][0]["amount"] == {"value": "9.16", "currency": "USD"}


@pytest.mark.asyncio
async def test_paypal_client_classifies_rejections(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "tok"})
        return httpx.Response(422, json={"name": "INSUFFICIENT_FUNDS", "message": "Sender has insufficient funds"})

    with pytest.raises(PayoutNetworkError) as excinfo:
        await _paypal(settings, handler).send_payout(REQUEST)
    assert excinfo.value.error_type == "insufficient_funds"


@pytest.mark.asyncio
async def test_paypal_client_reports_timeouts(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(PayoutNetworkError) as excinfo:
        await _paypal(settings, handler).send_payout(REQUEST)
    assert excinfo.value.error_type == "timeout"


@pytest.mark.asyncio
async def test_unexpected_error_for_one_seller_does_not_stop_the_batch(context, payout_network):
    _seller(context, "seller-a", 5000)
    _seller(context, "seller-b", 3000)
    _seller(context, "seller-c", 2000)
    payout_network.failures["seller-a"] = ValueError("malformed 2xx body from network")

    summary = await PayoutBatchProcessor(context).run()

    assert summary.processed_users == 3
    assert summary.successful_payouts == 2
    assert summary.failed_user_ids == ["seller-a"]
    with context.session_factory() as db:
        balances = {a.id: a.balance_cents for a in db.execute(select(UserAccount)).scalars()}
        error = db.execute(select(PayoutError)).scalar_one()
        run = db.get(PayoutSession, summary.session_id)
    assert balances == {"seller-a": 5000, "seller-b": 0, "seller-c": 0}
    assert error.error_type == "unknown"
    assert "malformed" in error.error_message
    assert run.status == "completed"
    assert run.failed_payouts == 1


@pytest.mark.asyncio
async def test_payout_session_is_closed_when_the_run_aborts(context, monkeypatch):
    processor = PayoutBatchProcessor(context)

    def broken_load():
        raise RuntimeError("database went away")

    monkeypatch.setattr(processor, "_load_payees", broken_load)

    with pytest.raises(RuntimeError):
        await processor.run()

    with context.session_factory() as db:
        run = db.execute(select(PayoutSession)).scalar_one()
    assert run.status == "failed"
    assert run.finished_at is not None


@pytest.mark.asyncio
async def test_below_minimum_notice_goes_to_the_account_email(context):
    _seller(context, "seller-1", 999)
    _seller(context, "seller-2", 500, email=None)

    await PayoutBatchProcessor(context).run()

    recipients = sorted(n.recipient for n in _intents(context, "min_balance_not_reached"))
    assert recipients == ["seller-1@sellers.example.com", "seller-2@paypal.example.com"]


@pytest.mark.asyncio
async def test_paypal_client_rejects_unreadable_success_body(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "tok"})
        return httpx.Response(201, text="<html>gateway</html>")

    with pytest.raises(PayoutNetworkError) as excinfo:
        await _paypal(settings, handler).send_payout(REQUEST)
    assert excinfo.value.error_type == "unknown"


@pytest.mark.asyncio
async def test_paypal_client_rejects_token_response_without_token(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"scope": "payouts"})

    with pytest.raises(PayoutNetworkError) as excinfo:
        await _paypal(settings, handler).send_payout(REQUEST)
    assert excinfo.value.error_type == "unknown"


@pytest.mark.asyncio
async def test_unreadable_network_response_fails_only_that_seller(context, settings):
    """A garbled gateway reply is recorded for the seller and the batch moves on."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "tok"})
        body = json.loads(request.content)
        if body["items"][0]["sender_item_id"] == "seller-a":
            return httpx.Response(201, text="<html>gateway</html>")
        return httpx.Response(201, json={"batch_header": {"payout_batch_id": "PB-ok", "batch_status": "SUCCESS"}})

    context.payout_network = _paypal(settings, handler)
    _seller(context, "seller-a", 5000)
    _seller(context, "seller-b", 3000)

    summary = await PayoutBatchProcessor(context).run()

    assert summary.failed_user_ids == ["seller-a"]
    assert summary.successful_payouts == 1
    with context.session_factory() as db:
        assert db.get(UserAccount, "seller-b").balance_cents == 0
        assert db.get(UserAccount, "seller-a").balance_cents == 5000
