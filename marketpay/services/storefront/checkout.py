"""Hosted checkout session creation with Stripe."""

import asyncio
from dataclasses import dataclass
from typing import Protocol

import stripe

from marketpay.common.config import Settings
from marketpay.common.errors import CheckoutError


@dataclass(frozen=True)
class CheckoutRequest:
    session_id: str
    product_id: str
    seller_id: str
    product_title: str
    price_cents: int
    currency: str
    buyer_email: str
    success_url: str
    cancel_url: str


@dataclass(frozen=True)
class CheckoutSession:
    external_id: str
    url: str
    status: str | None = None


class CheckoutGateway(Protocol):
    async def create_session(self, request: CheckoutRequest) -> CheckoutSession: ...


class StripeCheckoutGateway:
    """Creates Stripe Checkout Sessions carrying the metadata the webhook needs."""

    def __init__(self, settings: Settings) -> None:
        self.api_key = settings.stripe_secret_key
        self.timeout = settings.external_timeout_seconds

    async def create_session(self, request: CheckoutRequest) -> CheckoutSession:
        try:
            session = await asyncio.wait_for(
                asyncio.to_thread(
                    stripe.checkout.Session.create,
                    api_key=self.api_key,
                    mode="payment",
                    payment_method_types=["card"],
                    line_items=[
                        {
                            "price_data": {
                                "currency": request.currency,
                                "product_data": {"name": request.product_title},
                                "unit_amount": request.price_cents,
                            },
                            "quantity": 1,
                        }
                    ],
                    customer_email=request.buyer_email,
                    success_url=request.success_url,
                    cancel_url=request.cancel_url,
                    metadata={
                        "app_session_id": request.session_id,
                        "app_product_id": request.product_id,
                        "app_seller_uid": request.seller_id,
                        "app_product_title": request.product_title,
                    },
                    idempotency_key=f"checkout_{request.session_id}",
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise CheckoutError(f"checkout session create timed out session_id={request.session_id}") from exc
        except stripe.StripeError as exc:
            raise CheckoutError(f"checkout session create failed: {exc}") from exc
        return CheckoutSession(external_id=session.id, url=session.url, status=session.status)
