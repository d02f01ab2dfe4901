"""Signature verification over the raw webhook body."""

import json

import stripe

from marketpay.common.config import Settings
from marketpay.common.errors import SignatureError


class StripeWebhookVerifier:
    def __init__(self, settings: Settings) -> None:
        self.secret = settings.stripe_webhook_secret
        self.tolerance = settings.stripe_signature_tolerance_seconds

    def verify(self, payload: bytes, signature: str | None) -> dict:
        """Return the decoded event once the signature checks out."""

        if not signature:
            raise SignatureError("missing Stripe-Signature header")
        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(body, signature, self.secret, self.tolerance)
        except stripe.SignatureVerificationError as exc:
            raise SignatureError(str(exc)) from exc
        except UnicodeDecodeError as exc:
            raise SignatureError("payload is not valid utf-8") from exc
        try:
            event = json.loads(body)
        except json.JSONDecodeError as exc:
            raise SignatureError("payload is not valid json") from exc
        if not isinstance(event, dict):
            raise SignatureError("payload is not a json object")
        return event
