"""Sign a `checkout.session.completed` event and POST it to the webhook.

Useful for duplicate-delivery drills: `--repeat 3` sends the same event id
three times and prints each outcome.
"""

import argparse
import hashlib
import hmac
import json
import time
from uuid import uuid4

import httpx


def build_event(event_id: str, session_id: str, product_id: str, seller_id: str, buyer_email: str, title: str) -> dict:
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": f"cs_test_{uuid4().hex[:24]}",
                "payment_intent": f"pi_test_{uuid4().hex[:24]}",
                "customer_details": {"email": buyer_email},
                "metadata": {
                    "app_session_id": session_id,
                    "app_product_id": product_id,
                    "app_seller_uid": seller_id,
                    "app_product_title": title,
                },
            }
        },
    }


def sign(payload: str, secret: str, timestamp: int | None = None) -> str:
    """Build a `Stripe-Signature` header value (`t=...,v1=...`)."""

    timestamp = timestamp or int(time.time())
    digest = hmac.new(secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def main() -> None:
    parser = argparse.ArgumentParser(description="Send a signed checkout-completed webhook.")
    parser.add_argument("--url", default="http://localhost:8002/webhooks/stripe")
    parser.add_argument("--secret", required=True, help="Webhook signing secret (whsec_...)")
    parser.add_argument("--session-id", required=True)
    parser.add_argument("--product-id", required=True)
    parser.add_argument("--seller-id", required=True)
    parser.add_argument("--buyer-email", default="buyer@example.com")
    parser.add_argument("--title", default="Product")
    parser.add_argument("--event-id", default=None)
    parser.add_argument("--repeat", type=int, default=1)
    args = parser.parse_args()

    event = build_event(
        args.event_id or f"evt_test_{uuid4().hex[:24]}",
        args.session_id,
        args.product_id,
        args.seller_id,
        args.buyer_email,
        args.title,
    )
    payload = json.dumps(event)
    for attempt in range(1, args.repeat + 1):
        resp = httpx.post(
            args.url,
            content=payload,
            headers={"Stripe-Signature": sign(payload, args.secret), "Content-Type": "application/json"},
            timeout=10.0,
        )
        print(f"attempt={attempt} status={resp.status_code} body={resp.text}")


if __name__ == "__main__":
    main()
