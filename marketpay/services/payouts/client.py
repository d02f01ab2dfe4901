"""PayPal Payouts REST client.

One payout per request; the sender batch id makes retries of the same
request idempotent on the network side.
"""

from dataclasses import dataclass
from typing import Protocol

import httpx

from marketpay.common.config import Settings
from marketpay.common.errors import PayoutNetworkError


@dataclass(frozen=True)
class PayoutRequest:
    user_id: str
    destination: str
    amount: str
    currency: str
    sender_batch_id: str
    note: str = "Weekly payout"


@dataclass(frozen=True)
class PayoutReceipt:
    batch_id: str
    status: str


class PayoutNetwork(Protocol):
    async def send_payout(self, request: PayoutRequest) -> PayoutReceipt: ...


def classify_payout_error(status_code: int | None, body: dict | None, message: str = "") -> str:
    """Map a failed payout call onto a coarse error type."""

    name = str((body or {}).get("name", "")).upper()
    details = " ".join(str(d.get("issue", "")) for d in (body or {}).get("details", []) if isinstance(d, dict))
    text = f"{name} {details} {message}".lower()
    if "insufficient" in text:
        return "insufficient_funds"
    if "receiver" in text and ("invalid" in text or "unregistered" in text or "unable" in text):
        return "invalid_receiver"
    if name in ("RECEIVER_UNREGISTERED", "RECEIVER_UNCONFIRMED", "RECEIVER_ACCOUNT_LOCKED"):
        return "invalid_receiver"
    return "unknown"


class PayPalPayoutClient:
    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url = settings.paypal_base_url.rstrip("/")
        self.client_id = settings.paypal_client_id
        self.client_secret = settings.paypal_client_secret
        self.timeout = settings.external_timeout_seconds
        self.transport = transport

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        resp = await client.post(
            "/v1/oauth2/token",
            auth=(self.client_id, self.client_secret),
            data={"grant_type": "client_credentials"},
        )
        if resp.status_code >= 400:
            raise PayoutNetworkError(f"paypal auth failed status={resp.status_code}", error_type="unknown")
        try:
            return resp.json()["access_token"]
        except (ValueError, KeyError, TypeError) as exc:
            raise PayoutNetworkError("paypal auth response has no access token", error_type="unknown") from exc

    async def send_payout(self, request: PayoutRequest) -> PayoutReceipt:
        body = {
            "sender_batch_header": {
                "sender_batch_id": request.sender_batch_id,
                "email_subject": "You have a payout!",
            },
            "items": [
                {
                    "recipient_type": "EMAIL",
                    "amount": {"value": request.amount, "currency": request.currency},
                    "receiver": request.destination,
                    "note": request.note,
                    "sender_item_id": request.user_id,
                }
            ],
        }
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                token = await self._access_token(client)
                resp = await client.post(
                    "/v1/payments/payouts",
                    headers={"Authorization": f"Bearer {token}"},
                    json=body,
                )
        except httpx.TimeoutException as exc:
            raise PayoutNetworkError(f"paypal payout timed out: {exc}", error_type="timeout") from exc
        except httpx.HTTPError as exc:
            raise PayoutNetworkError(f"paypal payout request failed: {exc}", error_type="unknown") from exc

        if resp.status_code >= 400:
            try:
                error_body = resp.json()
            except ValueError:
                error_body = {}
            if not isinstance(error_body, dict):
                error_body = {}
            error_type = classify_payout_error(resp.status_code, error_body, resp.text)
            message = error_body.get("message") or resp.text[:200]
            raise PayoutNetworkError(f"paypal payout rejected status={resp.status_code} {message}", error_type=error_type)

        try:
            header = resp.json().get("batch_header") or {}
        except (ValueError, AttributeError) as exc:
            raise PayoutNetworkError(
                f"paypal payout response unreadable status={resp.status_code} body={resp.text[:200]}", error_type="unknown"
            ) from exc
        return PayoutReceipt(batch_id=header.get("payout_batch_id", ""), status=header.get("batch_status", "PENDING"))
